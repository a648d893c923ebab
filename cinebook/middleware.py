from django.http import JsonResponse
from loguru import logger

from cinebook.exceptions import CineBookError


class DomainErrorMiddleware:
    """Render CineBookError subclasses as JSON error responses."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if not isinstance(exception, CineBookError):
            return None

        if exception.status_code >= 500:
            logger.opt(exception=exception).error(
                f"{request.method} {request.path} failed: {exception.message}"
            )
        else:
            logger.warning(f"{request.method} {request.path} rejected: {exception.message}")
        return JsonResponse({'detail': exception.message}, status=exception.status_code)
