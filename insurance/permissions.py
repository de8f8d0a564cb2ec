"""
Custom permission classes for role based access control.

Roles are read from ``User.roles``, the explicit list assigned when the
account was registered.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

from insurance.models import User


def _has_role(request, *roles: str) -> bool:
    user = getattr(request, "user", None)
    return bool(user and user.is_authenticated and any(r in (getattr(user, "roles", None) or []) for r in roles))


class IsAdminRole(BasePermission):
    """Allow access only to accounts holding the ADMIN role."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, User.ROLE_ADMIN)


class IsAdminOrUserRole(BasePermission):
    """ADMIN or USER."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, User.ROLE_ADMIN, User.ROLE_USER)


class ReadOnly(BasePermission):
    """Allow read-only access (GET, HEAD, OPTIONS)."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return request.method in SAFE_METHODS
