from datetime import datetime, timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from loguru import logger

from cinebook.exceptions import InvalidShowtime, NotFound, ShowtimeConflict
from .models import Movie, Screen, Showtime


class CatalogStore:
    """Read access to movies, screens and showtimes, plus showtime scheduling."""

    def get_movie(self, movie_id):
        try:
            return Movie.objects.get(pk=movie_id)
        except Movie.DoesNotExist:
            raise NotFound(f"Movie {movie_id} not found.")

    def get_screen(self, screen_id):
        try:
            return Screen.objects.get(pk=screen_id)
        except Screen.DoesNotExist:
            raise NotFound(f"Screen {screen_id} not found.")

    def get_showtime(self, showtime_id):
        try:
            return Showtime.objects.select_related('movie', 'screen').get(pk=showtime_id)
        except Showtime.DoesNotExist:
            raise NotFound(f"Showtime {showtime_id} not found.")

    def find_conflict(self, screen, show_date, show_time, duration, exclude_id=None):
        """Return the first showtime on ``screen`` whose running window overlaps.

        A window runs from the start time for the movie's duration plus
        SHOWTIME_CLEANUP_MINUTES. Neighbouring days are checked as well so
        late shows that run past midnight are caught.
        """
        cleanup = settings.SHOWTIME_CLEANUP_MINUTES
        start = datetime.combine(show_date, show_time)
        end = start + timedelta(minutes=duration + cleanup)

        candidates = Showtime.objects.select_related('movie').filter(
            screen=screen,
            show_date__range=(show_date - timedelta(days=1), show_date + timedelta(days=1))
        )
        if exclude_id is not None:
            candidates = candidates.exclude(pk=exclude_id)

        for other in candidates:
            if other.starts_at < end and start < other.ends_at(cleanup):
                return other
        return None

    def schedule_showtime(self, movie_id, screen_id, show_date, show_time, price, force=False):
        movie = self.get_movie(movie_id)
        screen = self.get_screen(screen_id)

        showtime = Showtime(movie=movie, screen=screen, show_date=show_date, show_time=show_time, price=price)
        try:
            showtime.full_clean()
        except ValidationError as e:
            raise InvalidShowtime("; ".join(e.messages))

        conflict = self.find_conflict(screen, show_date, show_time, movie.duration)
        if conflict is not None:
            message = (
                f'Potential conflict with "{conflict.movie.title}" at '
                f'{conflict.show_time.strftime("%H:%M")} on {screen.name}'
            )
            if not force:
                raise ShowtimeConflict(message, conflicting=conflict)
            logger.warning(f"Scheduling despite conflict: {message}")

        showtime.save()
        logger.info(f"Scheduled showtime {showtime.id}: {movie.title} on {screen.name} at {showtime.starts_at}")
        return showtime
