"""
RBAC (Role-Based Access Control) application.

Provides HAIDA user management with:
- A fixed permission catalog and role grant tables
- Effective permissions as the union of Global and Project Role grants
- Gated, versioned membership changes
- Append-only audit logging
"""
