"""
RBAC API URLs.

Provides endpoints for:
- User listing, detail and deletion
- Invites
- Global Role, Project Role and status changes
- Audit log and effective permission lookup
"""
from django.urls import path
from apps.rbac.views import (
    UserListView,
    UserInviteView,
    UserDetailView,
    UserGlobalRoleView,
    UserProjectRoleView,
    UserProjectRoleDetailView,
    UserStatusView,
    UserAuditLogView,
    UserPermissionsView,
)

app_name = 'rbac'

urlpatterns = [
    path('users', UserListView.as_view(), name='user-list'),
    path('users/invite', UserInviteView.as_view(), name='user-invite'),
    path('users/<uuid:user_id>', UserDetailView.as_view(), name='user-detail'),

    # Role and status changes
    path('users/<uuid:user_id>/global-role', UserGlobalRoleView.as_view(), name='user-global-role'),
    path('users/<uuid:user_id>/project-roles', UserProjectRoleView.as_view(), name='user-project-roles'),
    path(
        'users/<uuid:user_id>/project-roles/<uuid:project_id>',
        UserProjectRoleDetailView.as_view(),
        name='user-project-role-detail'
    ),
    path('users/<uuid:user_id>/status', UserStatusView.as_view(), name='user-status'),

    # Read-only views of a user
    path('users/<uuid:user_id>/audit-log', UserAuditLogView.as_view(), name='user-audit-log'),
    path('users/<uuid:user_id>/permissions', UserPermissionsView.as_view(), name='user-permissions'),
]
