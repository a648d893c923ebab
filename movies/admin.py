from django import forms
from django.contrib import admin

from .catalog import CatalogStore
from .models import Movie, Screen, Showtime


class ShowtimeAdminForm(forms.ModelForm):
    class Meta:
        model = Showtime
        fields = '__all__'

    def clean(self):
        cleaned = super().clean()
        movie = cleaned.get('movie')
        screen = cleaned.get('screen')
        if movie and screen and cleaned.get('show_date') and cleaned.get('show_time'):
            conflict = CatalogStore().find_conflict(
                screen,
                cleaned['show_date'],
                cleaned['show_time'],
                movie.duration,
                exclude_id=self.instance.pk,
            )
            if conflict is not None:
                raise forms.ValidationError(
                    f'Conflicts with "{conflict.movie.title}" at {conflict.show_time.strftime("%H:%M")}'
                )
        return cleaned


@admin.register(Movie)
class MovieAdmin(admin.ModelAdmin):
    list_display = ('title', 'status', 'duration', 'rating')
    list_filter = ('status',)
    search_fields = ('title', 'director')


@admin.register(Screen)
class ScreenAdmin(admin.ModelAdmin):
    list_display = ('name', 'rows', 'seats_per_row', 'capacity')


@admin.register(Showtime)
class ShowtimeAdmin(admin.ModelAdmin):
    form = ShowtimeAdminForm
    list_display = ('movie', 'screen', 'show_date', 'show_time', 'price')
    list_filter = ('screen', 'show_date')
