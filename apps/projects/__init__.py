"""
Project registry.

Projects are owned by the board/report modules; access control only needs
their identity (id, key, name) to attach per-project memberships.
"""
