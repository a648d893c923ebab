from django.contrib.auth.decorators import login_required
from django.http import JsonResponse

from .roles import current_user


@login_required
def me(request):
    return JsonResponse(current_user(request))
