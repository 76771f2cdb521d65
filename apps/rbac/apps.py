"""
RBAC app configuration.
"""
from django.apps import AppConfig


class RbacConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.rbac'
    verbose_name = 'RBAC (Role-Based Access Control)'

    def ready(self):
        """Refuse to start with inconsistent role grant tables."""
        from apps.rbac.roles import validate_grant_tables
        validate_grant_tables()
