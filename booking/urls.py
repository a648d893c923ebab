from django.urls import path
from . import views

app_name = 'booking'

urlpatterns = [
    path('showtimes/<int:showtime_id>/seats/', views.seat_map, name='seat_map'),
    path('showtimes/<int:showtime_id>/book/', views.create_booking, name='create_booking'),
    path('showtimes/<int:showtime_id>/hold/', views.hold_seats, name='hold_seats'),
    path('bookings/', views.my_bookings, name='my_bookings'),
    path('bookings/<int:booking_id>/confirm/', views.confirm_booking, name='confirm_booking'),
    path('bookings/<int:booking_id>/cancel/', views.cancel_booking, name='cancel_booking'),
]
