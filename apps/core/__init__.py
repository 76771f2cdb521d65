# Export RBAC permission classes and decorators for easy importing
from apps.core.permissions import HasGlobalPermissions, requires_permissions

__all__ = ['HasGlobalPermissions', 'requires_permissions']
