import json

from django.contrib.auth.decorators import login_required
from django.core.exceptions import BadRequest
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from users.roles import back_office_required
from .history import RefundHistoryLog
from .services import PaymentService


def _payload(request):
    if not request.body:
        return {}
    try:
        return json.loads(request.body)
    except ValueError:
        raise BadRequest("Request body must be valid JSON.")


def serialize_payment(payment):
    booking = payment.booking
    return {
        'id': payment.id,
        'booking_id': payment.booking_id,
        'user_id': payment.user_id,
        'amount': str(payment.amount),
        'payment_method': payment.payment_method,
        'card_last_four': payment.card_last_four,
        'transaction_id': payment.transaction_id,
        'status': payment.status,
        'created_at': payment.created_at.isoformat(),
        'booking': {
            'movie_title': booking.movie_title,
            'showtime_date': booking.showtime_date.isoformat(),
            'showtime_time': booking.showtime_time.strftime('%H:%M'),
            'seats': booking.seats,
            'cinema_name': booking.cinema_name,
            'screen_name': booking.screen_name,
        },
        'profile': {
            'email': payment.user.email,
            'full_name': payment.user.get_full_name() or None,
        },
    }


@login_required
@back_office_required
@require_GET
def refund_list(request):
    payments = PaymentService().refundable_payments()
    return JsonResponse({'payments': [serialize_payment(p) for p in payments]})


@login_required
@back_office_required
@require_POST
def start_processing(request, payment_id):
    data = _payload(request)
    payment = PaymentService().start_processing(payment_id, request.user, notes=data.get('notes'))
    return JsonResponse({'payment': serialize_payment(payment)})


@login_required
@back_office_required
@require_POST
def complete_refund(request, payment_id):
    data = _payload(request)
    payment = PaymentService().complete_refund(payment_id, request.user, notes=data.get('notes'))
    return JsonResponse({'payment': serialize_payment(payment)})


@login_required
@back_office_required
@require_POST
def bulk_transition(request):
    data = _payload(request)
    payment_ids = data.get('payment_ids')
    if not isinstance(payment_ids, list):
        raise BadRequest("payment_ids must be a list.")
    result = PaymentService().bulk_transition(
        payment_ids,
        data.get('status'),
        request.user,
        notes=data.get('notes'),
    )
    return JsonResponse(result)


@login_required
@back_office_required
@require_GET
def refund_timeline(request, payment_id):
    payment = PaymentService().get_payment(payment_id)
    events = RefundHistoryLog().timeline(payment.id, payment.booking.created_at)
    return JsonResponse({
        'payment_id': payment.id,
        'current_status': payment.status,
        'events': [event.as_dict() for event in events],
    })
