from django.contrib import admin
from .models import Booking, SeatClaim


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'movie_title', 'showtime_date', 'showtime_time', 'status', 'total_price')
    list_filter = ('status', 'showtime_date')
    search_fields = ('movie_title', 'user__username', 'user__email')
    readonly_fields = ('seats', 'created_at', 'updated_at')


admin.site.register(SeatClaim)
