"""
Django admin configuration for RBAC app.
"""
from django.contrib import admin
from .models import User, ProjectMembership, AuditLog


class ProjectMembershipInline(admin.TabularInline):
    model = ProjectMembership
    extra = 0
    fields = ['project', 'role', 'added_at']
    readonly_fields = ['added_at']


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    """Admin interface for User model."""
    list_display = ['email', 'name', 'global_role', 'status', 'sso_source', 'last_login_at', 'created_at']
    list_filter = ['global_role', 'status', 'sso_source']
    search_fields = ['email', 'name']
    ordering = ['email']

    fieldsets = (
        (None, {
            'fields': ('email', 'name', 'avatar')
        }),
        ('Access', {
            'fields': ('global_role', 'status', 'sso_source')
        }),
        ('Activity', {
            'fields': ('last_login_at', 'version', 'created_at', 'updated_at')
        }),
    )

    readonly_fields = ['last_login_at', 'version', 'created_at', 'updated_at']
    inlines = [ProjectMembershipInline]


@admin.register(ProjectMembership)
class ProjectMembershipAdmin(admin.ModelAdmin):
    """Admin interface for ProjectMembership model."""
    list_display = ['user', 'project', 'role', 'added_at']
    list_filter = ['role', 'project']
    search_fields = ['user__email', 'project__key', 'project__name']
    readonly_fields = ['added_at', 'created_at', 'updated_at']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    """Read-only view of the audit trail."""
    list_display = ['timestamp', 'user_id', 'action', 'resource', 'actor_email', 'ip_address']
    list_filter = ['action', 'resource']
    search_fields = ['user_id', 'actor_email', 'details', 'request_id']
    ordering = ['-timestamp', '-id']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
