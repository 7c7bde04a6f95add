"""
Permission classes for role and approval based access control.

``IsUsableAccount`` is installed as a default permission class, so every
authenticated endpoint is gated on approval unless a view opts out.
Object-level decisions live in :mod:`referrals.policy`.
"""
from rest_framework.permissions import BasePermission

from .models import ROLE_DOCTOR, ROLE_HOSPITAL, ROLE_SUPER_ADMIN
from .workflow import usability

USABILITY_MESSAGES = {
    'account_inactive': 'Your account has been deactivated.',
    'account_pending': 'Your account is pending approval.',
    'account_rejected': 'Your account registration was rejected.',
    'hospital_missing': 'Your account is not linked to a hospital.',
    'hospital_not_approved': 'Your hospital is pending approval.',
}


class IsUsableAccount(BasePermission):
    """Approved, active accounts only; doctors also need an approved hospital."""
    message = 'Account not approved'
    code = 'approval_required'

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated):
            # IsAuthenticated answers for anonymous requests
            return True
        ok, reason = usability(user)
        if not ok:
            self.message = USABILITY_MESSAGES.get(reason, self.message)
        return ok


class _RolePermission(IsUsableAccount):
    roles: frozenset = frozenset()

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated):
            return False
        if getattr(user, "role", None) not in self.roles:
            self.message = 'Access denied'
            self.code = 'access_denied'
            return False
        return super().has_permission(request, view)


class IsSuperAdmin(_RolePermission):
    """Only the super admin."""
    roles = frozenset({ROLE_SUPER_ADMIN})


class IsHospitalAdminOrSuper(_RolePermission):
    """Hospital administrators or the super admin."""
    roles = frozenset({ROLE_HOSPITAL, ROLE_SUPER_ADMIN})


class IsStaffRole(_RolePermission):
    """Anyone but patients."""
    roles = frozenset({ROLE_SUPER_ADMIN, ROLE_HOSPITAL, ROLE_DOCTOR})
