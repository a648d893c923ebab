import json

from django.contrib.auth.decorators import login_required
from django.core.exceptions import BadRequest
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from movies.catalog import CatalogStore
from .availability import AvailabilityIndex
from .models import Booking
from .services import BookingService


def _payload(request):
    if not request.body:
        return {}
    try:
        return json.loads(request.body)
    except ValueError:
        raise BadRequest("Request body must be valid JSON.")


def serialize_booking(booking):
    return {
        'id': booking.id,
        'movie_id': booking.movie_id,
        'movie_title': booking.movie_title,
        'cinema_name': booking.cinema_name,
        'screen_name': booking.screen_name,
        'showtime_id': booking.showtime_id,
        'showtime_date': booking.showtime_date.isoformat(),
        'showtime_time': booking.showtime_time.strftime('%H:%M'),
        'seats': booking.seats,
        'total_price': str(booking.total_price),
        'status': booking.status,
        'hold_expires_at': booking.hold_expires_at.isoformat() if booking.hold_expires_at else None,
        'created_at': booking.created_at.isoformat(),
        'updated_at': booking.updated_at.isoformat(),
    }


@require_GET
def seat_map(request, showtime_id):
    showtime = CatalogStore().get_showtime(showtime_id)
    screen = showtime.screen
    booked = AvailabilityIndex().booked_seats(showtime)

    return JsonResponse({
        'showtime_id': showtime.id,
        'screen': screen.name,
        'rows': screen.rows,
        'seats_per_row': screen.seats_per_row,
        'vip_rows': screen.vip_rows,
        'capacity': screen.capacity,
        'price': str(showtime.price),
        'booked': sorted(booked),
        'available': screen.capacity - len(booked),
    })


@login_required
@require_POST
def create_booking(request, showtime_id):
    data = _payload(request)
    booking = BookingService().create_booking(
        request.user,
        showtime_id,
        data.get('seats', []),
        total_price=data.get('total_price'),
        payment_method=data.get('payment_method', 'card'),
        card_last_four=data.get('card_last_four'),
    )
    return JsonResponse({'booking': serialize_booking(booking)}, status=201)


@login_required
@require_POST
def hold_seats(request, showtime_id):
    data = _payload(request)
    booking = BookingService().hold_seats(request.user, showtime_id, data.get('seats', []))
    return JsonResponse({'booking': serialize_booking(booking)}, status=201)


@login_required
@require_POST
def confirm_booking(request, booking_id):
    data = _payload(request)
    booking = BookingService().confirm_booking(
        booking_id,
        request.user,
        payment_method=data.get('payment_method', 'card'),
        card_last_four=data.get('card_last_four'),
    )
    return JsonResponse({'booking': serialize_booking(booking)})


@login_required
@require_POST
def cancel_booking(request, booking_id):
    booking = BookingService().cancel_booking(booking_id, request.user)
    return JsonResponse({
        'booking': serialize_booking(booking),
        'message': "Your booking has been cancelled. A refund will be processed within 3-5 business days."
    })


@login_required
@require_GET
def my_bookings(request):
    bookings = Booking.objects.filter(user=request.user)

    limit = request.GET.get('limit')
    if limit and limit.isdigit():
        bookings = bookings[:int(limit)]

    return JsonResponse({'bookings': [serialize_booking(b) for b in bookings]})
