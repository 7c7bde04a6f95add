"""
State machines for approvals and referrals.

Approval: ``pending -> approved | rejected``; both outcomes are final.

Referral: ``pending -> accepted -> in_progress -> completed`` with
``rejected`` and ``cancelled`` reachable from any non-final state.  The
graph is advisory unless ``REFERRAL_STRICT_TRANSITIONS`` is enabled, in
which case any other move is refused.
"""
from __future__ import annotations

from typing import Optional

from .exceptions import AccessDenied, InvalidArgument, InvalidTransition
from .models import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    PRACTICE_HOSPITAL,
    ROLE_DOCTOR,
    Hospital,
    Referral,
)

REASON_MIN_LENGTH = 10
REASON_MAX_LENGTH = 500

REFERRAL_STATUSES = tuple(value for value, _ in Referral.STATUS_CHOICES)

REFERRAL_TRANSITIONS = {
    Referral.STATUS_PENDING: {Referral.STATUS_ACCEPTED, Referral.STATUS_REJECTED, Referral.STATUS_CANCELLED},
    Referral.STATUS_ACCEPTED: {Referral.STATUS_IN_PROGRESS, Referral.STATUS_REJECTED, Referral.STATUS_CANCELLED},
    Referral.STATUS_IN_PROGRESS: {Referral.STATUS_COMPLETED, Referral.STATUS_REJECTED, Referral.STATUS_CANCELLED},
    Referral.STATUS_COMPLETED: set(),
    Referral.STATUS_REJECTED: set(),
    Referral.STATUS_CANCELLED: set(),
}


def validate_rejection_reason(reason: Optional[str]) -> str:
    reason = (reason or '').strip()
    if len(reason) < REASON_MIN_LENGTH:
        raise InvalidArgument(f'Rejection reason must be at least {REASON_MIN_LENGTH} characters')
    if len(reason) > REASON_MAX_LENGTH:
        raise InvalidArgument(f'Rejection reason cannot exceed {REASON_MAX_LENGTH} characters')
    return reason


def ensure_pending(current: str, what: str) -> None:
    if current != APPROVAL_PENDING:
        raise InvalidTransition(f'{what} is already {current}')


def validate_referral_status(status: Optional[str]) -> str:
    if status not in REFERRAL_STATUSES:
        raise InvalidArgument(f"Invalid status '{status}'. Expected one of: {', '.join(REFERRAL_STATUSES)}")
    return status


def is_advisory_transition(current: str, new: str) -> bool:
    return new in REFERRAL_TRANSITIONS.get(current, set())


def check_referral_transition(current: str, new: str, strict: bool) -> None:
    if strict and not is_advisory_transition(current, new):
        raise InvalidTransition(f'Cannot move referral from {current} to {new}')


def default_status_note(status: str) -> str:
    return f'Status changed to {status}'


def usability(account) -> tuple[bool, Optional[str]]:
    """Return ``(usable, reason_code)`` for an authenticated account.

    A hospital-practice doctor stays unusable while their hospital is not
    approved, even after their own approval.
    """
    if not account.is_active:
        return False, 'account_inactive'
    if account.approval_status != APPROVAL_APPROVED:
        return False, f'account_{account.approval_status}'
    if account.role == ROLE_DOCTOR and account.practice_type == PRACTICE_HOSPITAL:
        hospital = account.hospital
        if hospital is None:
            return False, 'hospital_missing'
        if hospital.status != Hospital.STATUS_APPROVED:
            return False, 'hospital_not_approved'
    return True, None


def ensure_usable(account) -> None:
    ok, reason = usability(account)
    if not ok:
        raise AccessDenied('Account cannot use the system yet', code=reason, extra={'reason': reason})
