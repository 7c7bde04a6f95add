"""
Approval workflow for accounts and hospitals.

Each decision is checked in a fixed order: the rejection reason, then
the approver's authority, then the ``pending`` state.  The state write
itself is a conditional UPDATE on ``status = pending``, so of two racing
approvers only one wins and the other gets ``InvalidTransition``.

Approving a hospital also approves the pending hospital-admin account
registered with the same email (and the reverse when the account is
approved first).  Both writes run inside a :class:`Saga` so a failure in
the second step reverts the first.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db.models import Count
from django.utils import timezone

from referrals import policy, workflow
from referrals.exceptions import AccessDenied, InvalidTransition
from referrals.models import (
    APPROVAL_APPROVED,
    APPROVAL_CHOICES,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    AUTO_APPROVED_ROLES,
    PRACTICE_HOSPITAL,
    ROLE_CHOICES,
    ROLE_DOCTOR,
    ROLE_HOSPITAL,
    Hospital,
)
from referrals.services import notifications
from referrals.services.audit import log_action
from referrals.services.saga import Saga

logger = logging.getLogger(__name__)

User = get_user_model()

APPROVED_HOSPITALS_CACHE_KEY = 'hospitals:approved'


# ---------------------------------------------------------------------
# Conditional state writes and their compensations
# ---------------------------------------------------------------------
def _transition_account(account, new_status: str, approver_id: int, now, *, reason: str = '', hospital=None):
    fields = {
        'approval_status': new_status,
        'approved_by_id': approver_id,
        'approved_at': now,
        'rejection_reason': reason,
    }
    if hospital is not None and account.hospital_id is None:
        fields['hospital_id'] = hospital.id
    updated = User.objects.filter(pk=account.pk, approval_status=APPROVAL_PENDING).update(**fields)
    if not updated:
        raise InvalidTransition('Account is no longer pending')
    previous_hospital_id = account.hospital_id
    for key, value in fields.items():
        setattr(account, key, value)
    return previous_hospital_id


def _revert_account(pk: int, previous_hospital_id) -> None:
    User.objects.filter(pk=pk).update(
        approval_status=APPROVAL_PENDING,
        approved_by_id=None,
        approved_at=None,
        rejection_reason='',
        hospital_id=previous_hospital_id,
    )


def _transition_hospital(hospital: Hospital, new_status: str, approver_id: int, now, *, reason: str = '') -> None:
    fields = {
        'status': new_status,
        'approved_by_id': approver_id,
        'approved_at': now,
        'rejection_reason': reason,
    }
    updated = Hospital.objects.filter(pk=hospital.pk, status=Hospital.STATUS_PENDING).update(**fields)
    if not updated:
        raise InvalidTransition('Hospital is no longer pending')
    for key, value in fields.items():
        setattr(hospital, key, value)


def _revert_hospital(pk: int) -> None:
    Hospital.objects.filter(pk=pk).update(
        status=Hospital.STATUS_PENDING,
        approved_by_id=None,
        approved_at=None,
        rejection_reason='',
    )
    cache.delete(APPROVED_HOSPITALS_CACHE_KEY)


def _account_notice(account, **extra) -> dict:
    return {'name': account.full_name, 'role': account.get_role_display(), **extra}


def _hospital_notice(hospital: Hospital, **extra) -> dict:
    return {'hospital_name': hospital.name, **extra}


# ---------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------
def approve_account(actor, account_id: int, message: Optional[str] = None):
    actor = policy.as_actor(actor)
    account = policy.get_for_actor(User.objects.select_related('hospital'), actor, policy.APPROVE, pk=account_id)
    workflow.ensure_pending(account.approval_status, 'Account')
    now = timezone.now()

    with Saga('approve_account') as saga:
        saga.step(
            'approve_account',
            lambda: _transition_account(account, APPROVAL_APPROVED, actor.id, now),
            lambda previous: _revert_account(account.pk, previous),
        )
        if account.role == ROLE_HOSPITAL:
            hospital = (
                Hospital.objects.filter(email=account.email, status=Hospital.STATUS_PENDING).first()
            )
            if hospital is not None:
                saga.step(
                    'approve_hospital',
                    lambda: _transition_hospital(hospital, Hospital.STATUS_APPROVED, actor.id, now),
                    lambda _: _revert_hospital(hospital.pk),
                )
                if account.hospital_id is None:
                    User.objects.filter(pk=account.pk).update(hospital_id=hospital.id)
                    account.hospital_id = hospital.id
                cache.delete(APPROVED_HOSPITALS_CACHE_KEY)
                logger.info('Approving account %s also approved hospital %s', account.pk, hospital.pk)

    notifications.notify(account.email, notifications.ACCOUNT_APPROVED, _account_notice(account, message=message or ''))
    log_action(user=actor, action='account_approve', object_type='user', object_id=account.pk,
               detail={'message': message or ''})
    return account


def reject_account(actor, account_id: int, reason: Optional[str]):
    reason = workflow.validate_rejection_reason(reason)
    actor = policy.as_actor(actor)
    account = policy.get_for_actor(User, actor, policy.APPROVE, pk=account_id)
    workflow.ensure_pending(account.approval_status, 'Account')
    _transition_account(account, APPROVAL_REJECTED, actor.id, timezone.now(), reason=reason)

    notifications.notify(account.email, notifications.ACCOUNT_REJECTED, _account_notice(account, reason=reason))
    log_action(user=actor, action='account_reject', object_type='user', object_id=account.pk,
               detail={'reason': reason})
    return account


# ---------------------------------------------------------------------
# Hospitals
# ---------------------------------------------------------------------
def approve_hospital(actor, hospital_id: int, message: Optional[str] = None) -> Hospital:
    actor = policy.as_actor(actor)
    hospital = policy.get_for_actor(Hospital, actor, policy.APPROVE, pk=hospital_id)
    workflow.ensure_pending(hospital.status, 'Hospital')
    now = timezone.now()

    with Saga('approve_hospital') as saga:
        saga.step(
            'approve_hospital',
            lambda: _transition_hospital(hospital, Hospital.STATUS_APPROVED, actor.id, now),
            lambda _: _revert_hospital(hospital.pk),
        )
        admin = User.objects.filter(
            role=ROLE_HOSPITAL, email=hospital.email, approval_status=APPROVAL_PENDING
        ).first()
        if admin is not None:
            saga.step(
                'approve_admin_account',
                lambda: _transition_account(admin, APPROVAL_APPROVED, actor.id, now, hospital=hospital),
                lambda previous: _revert_account(admin.pk, previous),
            )
            logger.info('Approving hospital %s also approved account %s', hospital.pk, admin.pk)

    cache.delete(APPROVED_HOSPITALS_CACHE_KEY)
    notifications.notify(hospital.email, notifications.HOSPITAL_APPROVED, _hospital_notice(hospital, message=message or ''))
    log_action(user=actor, action='hospital_approve', object_type='hospital', object_id=hospital.pk,
               detail={'message': message or '', 'cascadedAccount': admin.pk if admin else None})
    return hospital


def reject_hospital(actor, hospital_id: int, reason: Optional[str]) -> Hospital:
    reason = workflow.validate_rejection_reason(reason)
    actor = policy.as_actor(actor)
    hospital = policy.get_for_actor(Hospital, actor, policy.APPROVE, pk=hospital_id)
    workflow.ensure_pending(hospital.status, 'Hospital')
    _transition_hospital(hospital, Hospital.STATUS_REJECTED, actor.id, timezone.now(), reason=reason)

    notifications.notify(hospital.email, notifications.HOSPITAL_REJECTED, _hospital_notice(hospital, reason=reason))
    log_action(user=actor, action='hospital_reject', object_type='hospital', object_id=hospital.pk,
               detail={'reason': reason})
    return hospital


# ---------------------------------------------------------------------
# Queues and stats
# ---------------------------------------------------------------------
def pending_accounts(actor, role: Optional[str] = None):
    """Pending accounts the actor could decide on."""
    actor = policy.as_actor(actor)
    qs = User.objects.filter(approval_status=APPROVAL_PENDING).exclude(role__in=AUTO_APPROVED_ROLES)
    if actor.is_hospital_admin and actor.hospital_id is not None:
        qs = qs.filter(role=ROLE_DOCTOR, practice_type=PRACTICE_HOSPITAL, hospital_id=actor.hospital_id)
    elif not actor.is_super:
        raise AccessDenied('Only administrators can review approvals')
    if role:
        qs = qs.filter(role=role)
    return qs.select_related('hospital', 'clinic').order_by('created_at', 'id')


def pending_doctors(actor):
    return pending_accounts(actor, role=ROLE_DOCTOR)


def pending_hospitals(actor):
    actor = policy.as_actor(actor)
    if not actor.is_super:
        raise AccessDenied('Only the super admin can review hospitals')
    return Hospital.objects.filter(status=Hospital.STATUS_PENDING).order_by('created_at', 'id')


def approval_stats(actor) -> dict:
    actor = policy.as_actor(actor)
    if not actor.is_super:
        raise AccessDenied('Only the super admin can view approval statistics')
    accounts = {
        role: {status: 0 for status, _ in APPROVAL_CHOICES}
        for role, _ in ROLE_CHOICES if role not in AUTO_APPROVED_ROLES
    }
    rows = (User.objects.exclude(role__in=AUTO_APPROVED_ROLES).order_by()
            .values('role', 'approval_status').annotate(n=Count('id')))
    for row in rows:
        accounts[row['role']][row['approval_status']] = row['n']
    hospitals = {status: 0 for status, _ in Hospital.STATUS_CHOICES}
    for row in Hospital.objects.order_by().values('status').annotate(n=Count('id')):
        hospitals[row['status']] = row['n']
    return {
        'accounts': accounts,
        'hospitals': hospitals,
        'pendingTotal': sum(v[APPROVAL_PENDING] for v in accounts.values()) + hospitals[Hospital.STATUS_PENDING],
    }
