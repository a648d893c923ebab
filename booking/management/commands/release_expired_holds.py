from django.core.management.base import BaseCommand

from booking.services import BookingService


class Command(BaseCommand):
    help = "Release seat holds that expired before payment (run periodically, e.g. from cron)"

    def handle(self, *args, **kwargs):
        released = BookingService().expire_holds()

        if released:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Released {len(released)} expired holds:\n" +
                    "\n".join(
                        f"  - Booking {b.id}: {', '.join(b.seats)} (Showtime: {b.showtime_id})"
                        for b in released
                    )
                )
            )
        else:
            self.stdout.write("No expired holds found.")
