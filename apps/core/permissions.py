"""
DRF permission classes and decorators for RBAC permission enforcement.

This module provides:
- HasGlobalPermissions: DRF permission class that enforces permission requirements
- @requires_permissions: Decorator to declare required permissions on views
"""
import logging
from functools import wraps
from rest_framework.permissions import BasePermission

logger = logging.getLogger(__name__)


class HasGlobalPermissions(BasePermission):
    """
    DRF permission class that enforces global permission requirements.

    The acting user's effective permission set is re-derived from their
    Global Role on every request; client-side checks are never trusted.

    Usage in views:
        class MyView(APIView):
            permission_classes = [HasGlobalPermissions]
            required_permissions = {'users.read'}

    Or with the decorator:
        @requires_permissions('users.read')
        class MyView(APIView):
            permission_classes = [HasGlobalPermissions]

    Views may set ``allow_self_access = True`` so that a user reaching
    their own record (``user_id`` URL kwarg) passes without the permission.
    """

    message = 'You do not have permission to perform this action.'

    def has_permission(self, request, view):
        required_permissions = getattr(view, 'required_permissions', None)

        if not required_permissions:
            return True

        if isinstance(required_permissions, str):
            required_permissions = {required_permissions}
        else:
            required_permissions = set(required_permissions)

        user = request.user
        if not getattr(user, 'is_authenticated', False) or not hasattr(user, 'global_role'):
            return False

        if getattr(view, 'allow_self_access', False):
            target_id = view.kwargs.get('user_id') if hasattr(view, 'kwargs') else None
            if target_id is not None and str(target_id) == str(user.id):
                return True

        from apps.rbac.services import RBACService
        user_permissions = RBACService.calculate_effective_permissions(user.global_role)

        missing_permissions = required_permissions - user_permissions

        if missing_permissions:
            logger.warning(
                f"Permission denied: User {user.email} missing permissions: {sorted(missing_permissions)}",
                extra={
                    'user_email': user.email,
                    'global_role': user.global_role,
                    'required_permissions': sorted(required_permissions),
                    'missing_permissions': sorted(missing_permissions),
                    'view': view.__class__.__name__,
                    'method': request.method,
                    'path': request.path,
                    'request_id': getattr(request, 'request_id', None),
                }
            )
            return False

        return True


def requires_permissions(*permissions):
    """
    Decorator to declare required permissions on view classes or methods.

    Sets the required_permissions attribute checked by HasGlobalPermissions.

    Usage:
        @requires_permissions('users.read')
        class UserListView(APIView):
            permission_classes = [HasGlobalPermissions]

    Or on individual methods:
        class UserDetailView(APIView):
            permission_classes = [HasGlobalPermissions]

            @requires_permissions('users.delete')
            def delete(self, request, user_id):
                pass

    Method-level declarations are enforced when the method runs, since DRF
    has already evaluated permission classes by then.
    """
    def decorator(view_or_method):
        if isinstance(view_or_method, type):
            view_or_method.required_permissions = set(permissions)
            return view_or_method

        @wraps(view_or_method)
        def wrapped(self, request, *args, **kwargs):
            self.required_permissions = set(permissions)
            if not HasGlobalPermissions().has_permission(request, self):
                self.permission_denied(request, message=HasGlobalPermissions.message)
            return view_or_method(self, request, *args, **kwargs)

        wrapped.required_permissions = set(permissions)
        return wrapped

    return decorator
