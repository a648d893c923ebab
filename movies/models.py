import string
from decimal import Decimal
from datetime import datetime, timedelta

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

ROW_LETTERS = string.ascii_uppercase


class Movie(models.Model):
    STATUS_NOW_SHOWING = 'now_showing'
    STATUS_COMING_SOON = 'coming_soon'

    STATUS_CHOICES = (
        (STATUS_NOW_SHOWING, 'Now Showing'),
        (STATUS_COMING_SOON, 'Coming Soon'),
    )

    title = models.CharField(max_length=255)
    duration = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Running time in minutes"
    )
    genre = models.JSONField(default=list, blank=True)
    rating = models.CharField(max_length=10, blank=True)
    synopsis = models.TextField(blank=True)
    director = models.CharField(max_length=255, blank=True)
    cast = models.JSONField(default=list, blank=True)
    poster_url = models.URLField(blank=True, null=True)
    trailer_url = models.URLField(blank=True, null=True, help_text="YouTube trailer URL (e.g., https://www.youtube.com/watch?v=xxxxx)")
    release_date = models.DateField(blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_COMING_SOON)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'movies'
        ordering = ['title']

    def __str__(self):
        return self.title

    def save(self, *args, **kwargs):
        # genre is a set; keep the first spelling of each entry
        seen = set()
        genres = []
        for name in self.genre or []:
            key = name.strip().lower()
            if key and key not in seen:
                seen.add(key)
                genres.append(name.strip())
        self.genre = genres
        super().save(*args, **kwargs)

    @property
    def trailer_embed_url(self):
        if self.trailer_url:
            video_id = None
            if 'youtube.com/watch?v=' in self.trailer_url:
                video_id = self.trailer_url.split('watch?v=')[-1].split('&')[0].split('?')[0]
            elif 'youtu.be/' in self.trailer_url:
                video_id = self.trailer_url.split('youtu.be/')[-1].split('?')[0].split('&')[0]
            elif 'youtube.com/embed/' in self.trailer_url:
                video_id = self.trailer_url.split('embed/')[-1].split('?')[0].split('&')[0]

            if video_id:
                return f"https://www.youtube.com/embed/{video_id}?rel=0&modestbranding=1"
        return None


class Screen(models.Model):
    name = models.CharField(max_length=100, unique=True)
    rows = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(26)])
    seats_per_row = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(30)])
    vip_rows = models.JSONField(default=list, blank=True, help_text="0-based row indices")
    capacity = models.PositiveIntegerField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'screens'
        ordering = ['name']

    def __str__(self):
        return self.name

    def clean(self):
        if self.rows and self.seats_per_row:
            expected = self.rows * self.seats_per_row
            if self.capacity is not None and self.capacity != expected:
                raise ValidationError({
                    'capacity': f"Capacity must equal rows x seats per row ({expected})."
                })
            bad_rows = [r for r in self.vip_rows or [] if not 0 <= r < self.rows]
            if bad_rows:
                raise ValidationError({'vip_rows': f"Rows out of range: {bad_rows}"})

    def save(self, *args, **kwargs):
        self.capacity = self.rows * self.seats_per_row
        self.vip_rows = sorted(set(self.vip_rows or []))
        super().save(*args, **kwargs)

    def seat_labels(self):
        return [
            f"{ROW_LETTERS[row]}{number}"
            for row in range(self.rows)
            for number in range(1, self.seats_per_row + 1)
        ]

    def has_seat(self, label):
        if len(label) < 2 or label[0] not in ROW_LETTERS or not label[1:].isdigit():
            return False
        row = ROW_LETTERS.index(label[0])
        number = int(label[1:])
        return row < self.rows and 1 <= number <= self.seats_per_row

    def is_vip(self, label):
        return self.has_seat(label) and ROW_LETTERS.index(label[0]) in self.vip_rows


class Showtime(models.Model):
    movie = models.ForeignKey(Movie, on_delete=models.CASCADE, related_name='showtimes')
    screen = models.ForeignKey(Screen, on_delete=models.CASCADE, related_name='showtimes')
    show_date = models.DateField()
    show_time = models.TimeField()
    price = models.DecimalField(max_digits=8, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'showtimes'
        ordering = ['show_date', 'show_time']
        indexes = [
            models.Index(fields=['screen', 'show_date'], name='showtimes_screen_date_idx'),
        ]

    def __str__(self):
        return f"{self.movie.title} - {self.show_date} {self.show_time}"

    @property
    def starts_at(self):
        return datetime.combine(self.show_date, self.show_time)

    def ends_at(self, cleanup_minutes=0):
        return self.starts_at + timedelta(minutes=self.movie.duration + cleanup_minutes)
