from datetime import date, time
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase, override_settings

from cinebook.exceptions import InvalidShowtime, NotFound, ShowtimeConflict
from movies.catalog import CatalogStore
from movies.models import Movie, Screen, Showtime


class MovieFilterTestCase(TestCase):
    def setUp(self):
        self.movie1 = Movie.objects.create(
            title="Action Movie",
            duration=120,
            genre=["Action", "Thriller"],
            synopsis="An action packed movie",
            director="Director A",
            status=Movie.STATUS_NOW_SHOWING
        )
        self.movie2 = Movie.objects.create(
            title="Comedy Movie",
            duration=95,
            genre=["Comedy"],
            synopsis="A funny comedy",
            director="Director B",
            status=Movie.STATUS_COMING_SOON
        )

    def titles(self, response):
        return [m['title'] for m in response.json()['movies']]

    def test_search_filter(self):
        response = self.client.get('/movies/', {'search': 'Action'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.titles(response), ["Action Movie"])

    def test_genre_filter(self):
        response = self.client.get('/movies/', {'genre': 'comedy'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.titles(response), ["Comedy Movie"])

    def test_status_filter(self):
        response = self.client.get('/movies/', {'status': 'now_showing'})
        self.assertEqual(self.titles(response), ["Action Movie"])

    def test_movie_detail_lists_showtimes(self):
        screen = Screen.objects.create(name="Screen 1", rows=5, seats_per_row=8)
        Showtime.objects.create(
            movie=self.movie1,
            screen=screen,
            show_date=date(2026, 11, 1),
            show_time=time(18, 30),
            price=Decimal('12.50')
        )
        response = self.client.get(f'/movies/{self.movie1.id}/')
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['movie']['title'], "Action Movie")
        self.assertEqual(body['showtimes'][0]['show_time'], "18:30")
        self.assertEqual(body['showtimes'][0]['price'], "12.50")

    def test_missing_movie_returns_404(self):
        response = self.client.get('/movies/9999/')
        self.assertEqual(response.status_code, 404)
        self.assertIn("not found", response.json()['detail'])

    def test_genre_is_deduplicated(self):
        movie = Movie.objects.create(title="Dupes", duration=100, genre=["Drama", "drama ", "Crime"])
        self.assertEqual(movie.genre, ["Drama", "Crime"])


class ScreenLayoutTestCase(TestCase):
    def test_capacity_is_rows_times_seats(self):
        screen = Screen.objects.create(name="Screen 1", rows=10, seats_per_row=12, vip_rows=[9, 8, 9])
        self.assertEqual(screen.capacity, 120)
        self.assertEqual(screen.vip_rows, [8, 9])

    def test_clean_rejects_mismatched_capacity(self):
        screen = Screen(name="Screen 2", rows=4, seats_per_row=5, capacity=30)
        with self.assertRaises(ValidationError):
            screen.full_clean()

    def test_clean_rejects_vip_row_outside_layout(self):
        screen = Screen(name="Screen 3", rows=4, seats_per_row=5, capacity=20, vip_rows=[4])
        with self.assertRaises(ValidationError):
            screen.full_clean()

    def test_seat_labels(self):
        screen = Screen.objects.create(name="Tiny", rows=2, seats_per_row=3, vip_rows=[1])
        self.assertEqual(screen.seat_labels(), ["A1", "A2", "A3", "B1", "B2", "B3"])
        self.assertTrue(screen.has_seat("B3"))
        self.assertFalse(screen.has_seat("C1"))
        self.assertFalse(screen.has_seat("A4"))
        self.assertFalse(screen.has_seat("A0"))
        self.assertFalse(screen.has_seat("1A"))
        self.assertTrue(screen.is_vip("B2"))
        self.assertFalse(screen.is_vip("A2"))


@override_settings(SHOWTIME_CLEANUP_MINUTES=30)
class ShowtimeConflictTestCase(TestCase):
    def setUp(self):
        self.catalog = CatalogStore()
        self.screen = Screen.objects.create(name="Screen 1", rows=10, seats_per_row=10)
        self.other_screen = Screen.objects.create(name="Screen 2", rows=10, seats_per_row=10)
        self.long_movie = Movie.objects.create(title="Epic", duration=180)
        self.short_movie = Movie.objects.create(title="Short", duration=90)
        self.evening = self.catalog.schedule_showtime(
            self.long_movie.id, self.screen.id, date(2026, 11, 1), time(18, 0), Decimal('12.50')
        )

    def test_overlap_uses_movie_duration_and_cleanup(self):
        # 18:00 + 180 min + 30 min cleanup = 21:30
        conflict = self.catalog.find_conflict(self.screen, date(2026, 11, 1), time(21, 0), 90)
        self.assertEqual(conflict, self.evening)

    def test_no_conflict_after_cleanup_window(self):
        conflict = self.catalog.find_conflict(self.screen, date(2026, 11, 1), time(21, 30), 90)
        self.assertIsNone(conflict)

    def test_new_show_running_into_existing_one(self):
        # 16:00 + 90 + 30 = 18:00 exactly, no overlap; 16:01 overlaps
        self.assertIsNone(self.catalog.find_conflict(self.screen, date(2026, 11, 1), time(16, 0), 90))
        self.assertEqual(
            self.catalog.find_conflict(self.screen, date(2026, 11, 1), time(16, 1), 90),
            self.evening
        )

    def test_other_screen_is_free(self):
        self.assertIsNone(self.catalog.find_conflict(self.other_screen, date(2026, 11, 1), time(18, 0), 90))

    def test_late_show_crossing_midnight(self):
        late = self.catalog.schedule_showtime(
            self.long_movie.id, self.screen.id, date(2026, 11, 1), time(23, 0), Decimal('10.00'), force=True
        )
        conflict = self.catalog.find_conflict(self.screen, date(2026, 11, 2), time(1, 0), 90)
        self.assertEqual(conflict, late)

    def test_schedule_raises_on_conflict(self):
        with self.assertRaises(ShowtimeConflict) as ctx:
            self.catalog.schedule_showtime(
                self.short_movie.id, self.screen.id, date(2026, 11, 1), time(19, 0), Decimal('9.00')
            )
        self.assertEqual(ctx.exception.conflicting, self.evening)
        self.assertEqual(Showtime.objects.count(), 1)

    def test_schedule_with_force_overrides(self):
        showtime = self.catalog.schedule_showtime(
            self.short_movie.id, self.screen.id, date(2026, 11, 1), time(19, 0), Decimal('9.00'), force=True
        )
        self.assertEqual(Showtime.objects.count(), 2)
        self.assertEqual(showtime.movie, self.short_movie)

    def test_schedule_rejects_non_positive_price(self):
        for price in (Decimal('0'), Decimal('-5.00')):
            with self.assertRaises(InvalidShowtime):
                self.catalog.schedule_showtime(
                    self.short_movie.id, self.other_screen.id, date(2026, 11, 1), time(12, 0), price
                )
        self.assertEqual(Showtime.objects.count(), 1)

    def test_missing_catalog_rows_raise_not_found(self):
        with self.assertRaises(NotFound):
            self.catalog.get_showtime(9999)
        with self.assertRaises(NotFound):
            self.catalog.get_screen(9999)
        with self.assertRaises(NotFound):
            self.catalog.schedule_showtime(9999, self.screen.id, date(2026, 11, 3), time(12, 0), Decimal('5.00'))


class TrailerEmbedTestCase(TestCase):
    def test_youtube_watch_url(self):
        movie = Movie.objects.create(
            title="Test Movie",
            duration=100,
            trailer_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        )
        self.assertIn("embed", movie.trailer_embed_url)
        self.assertIn("dQw4w9WgXcQ", movie.trailer_embed_url)

    def test_youtube_short_url(self):
        movie = Movie.objects.create(
            title="Test Movie 2",
            duration=100,
            trailer_url="https://youtu.be/dQw4w9WgXcQ"
        )
        self.assertIn("embed", movie.trailer_embed_url)
        self.assertIn("dQw4w9WgXcQ", movie.trailer_embed_url)

    def test_youtube_url_with_params(self):
        movie = Movie.objects.create(
            title="Test Movie 3",
            duration=100,
            trailer_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ&si=123456"
        )
        self.assertIn("embed", movie.trailer_embed_url)
        self.assertIn("dQw4w9WgXcQ", movie.trailer_embed_url)
        self.assertNotIn("si=", movie.trailer_embed_url)

    def test_no_trailer(self):
        movie = Movie.objects.create(title="No Trailer", duration=100)
        self.assertIsNone(movie.trailer_embed_url)
