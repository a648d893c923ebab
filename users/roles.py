from functools import wraps

from cinebook.exceptions import Forbidden
from .models import UserRole

BACK_OFFICE_ROLES = (UserRole.ROLE_STAFF, UserRole.ROLE_ADMIN)


def role_for(user):
    """Resolve the application role of a user.

    An explicit UserRole row wins; otherwise superusers are admins, staff
    accounts are staff and everybody else is a customer.
    """
    if user is None or not user.is_authenticated:
        return None
    try:
        return user.app_role.role
    except UserRole.DoesNotExist:
        pass
    if user.is_superuser:
        return UserRole.ROLE_ADMIN
    if user.is_staff:
        return UserRole.ROLE_STAFF
    return UserRole.ROLE_CUSTOMER


def is_back_office(user):
    return role_for(user) in BACK_OFFICE_ROLES


def ensure_back_office(user, action="perform this action"):
    if not is_back_office(user):
        raise Forbidden(f"Only staff or admins may {action}.")


def current_user(request):
    user = request.user
    if not user.is_authenticated:
        return None
    return {'id': user.id, 'role': role_for(user)}


def back_office_required(view_func):
    @wraps(view_func)
    def _wrapped(request, *args, **kwargs):
        ensure_back_office(request.user)
        return view_func(request, *args, **kwargs)
    return _wrapped
