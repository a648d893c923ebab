from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .models import Notification


@login_required
@require_GET
def notification_list(request):
    notifications = Notification.objects.filter(user=request.user)[:20]
    return JsonResponse({
        'unread': Notification.objects.filter(user=request.user, is_read=False).count(),
        'notifications': [
            {
                'id': n.id,
                'kind': n.kind,
                'title': n.title,
                'message': n.message,
                'is_read': n.is_read,
                'created_at': n.created_at.isoformat(),
            }
            for n in notifications
        ]
    })


@login_required
@require_POST
def mark_all_read(request):
    updated = Notification.objects.filter(user=request.user, is_read=False).update(is_read=True)
    return JsonResponse({'updated': updated})
