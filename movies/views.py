from django.db.models import Q
from django.http import JsonResponse
from django.views.decorators.http import require_GET

from .catalog import CatalogStore
from .models import Movie


def serialize_movie(movie):
    return {
        'id': movie.id,
        'title': movie.title,
        'duration': movie.duration,
        'genre': movie.genre,
        'rating': movie.rating,
        'synopsis': movie.synopsis,
        'director': movie.director,
        'cast': movie.cast,
        'poster_url': movie.poster_url,
        'trailer_url': movie.trailer_url,
        'trailer_embed_url': movie.trailer_embed_url,
        'status': movie.status,
    }


def serialize_showtime(showtime):
    return {
        'id': showtime.id,
        'movie_id': showtime.movie_id,
        'screen_id': showtime.screen_id,
        'screen_name': showtime.screen.name,
        'show_date': showtime.show_date.isoformat(),
        'show_time': showtime.show_time.strftime('%H:%M'),
        'price': str(showtime.price),
    }


@require_GET
def movie_list(request):
    movies = Movie.objects.all()

    search_query = request.GET.get('search', '')
    if search_query:
        movies = movies.filter(
            Q(title__icontains=search_query) |
            Q(synopsis__icontains=search_query) |
            Q(director__icontains=search_query)
        )

    status = request.GET.get('status', '')
    if status:
        movies = movies.filter(status=status)

    movies = list(movies)

    # genre is stored as a JSON list, so match it in Python
    genre = request.GET.get('genre', '')
    if genre:
        movies = [m for m in movies if genre.lower() in {g.lower() for g in m.genre}]

    return JsonResponse({
        'movies': [serialize_movie(m) for m in movies]
    })


@require_GET
def movie_detail(request, movie_id):
    movie = CatalogStore().get_movie(movie_id)
    showtimes = movie.showtimes.select_related('screen')

    return JsonResponse({
        'movie': serialize_movie(movie),
        'showtimes': [serialize_showtime(s) for s in showtimes]
    })
