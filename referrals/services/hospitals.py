"""
Hospital registration and maintenance.

A hospital registered by the public starts ``pending``.  A super admin
may register one with any status and, in the same call, its admin
account; the two inserts run as a saga so the hospital is removed again
when the account cannot be created.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import Count, ProtectedError, Q
from django.utils import timezone

from referrals import policy
from referrals.exceptions import AccessDenied, Conflict, InvalidArgument, PreconditionFailed
from referrals.models import APPROVAL_APPROVED, APPROVAL_PENDING, ROLE_HOSPITAL, Hospital
from referrals.services.accounts import create_account
from referrals.services.approvals import APPROVED_HOSPITALS_CACHE_KEY
from referrals.services.audit import log_action
from referrals.services.common import iso, paginate
from referrals.services.saga import Saga

logger = logging.getLogger(__name__)

User = get_user_model()

HOSPITAL_FIELDS = (
    'name', 'email', 'phone', 'address', 'type', 'specialties', 'services',
    'capacity', 'website', 'description',
)

SEARCH_FIELDS = ('name', 'email', 'phone')


def format_hospital(h: Hospital, *, brief: bool = False) -> dict:
    data = {
        'id': h.id,
        'name': h.name,
        'email': h.email,
        'phone': h.phone,
        'address': h.address,
        'type': h.type,
        'specialties': h.specialties,
        'status': h.status,
    }
    if brief:
        return data
    data.update({
        'services': h.services,
        'capacity': h.capacity,
        'website': h.website or None,
        'description': h.description or None,
        'isActive': h.is_active,
        'approvedBy': h.approved_by_id,
        'approvedAt': iso(h.approved_at),
        'rejectionReason': h.rejection_reason or None,
        'createdAt': iso(h.created_at),
        'updatedAt': iso(h.updated_at),
    })
    return data


def _delete_hospital_row(hospital: Hospital) -> None:
    Hospital.objects.filter(pk=hospital.pk).delete()


def _insert_hospital(fields: Dict[str, Any]) -> Hospital:
    try:
        with transaction.atomic():
            return Hospital.objects.create(**fields)
    except IntegrityError:
        raise Conflict('A hospital with this email already exists')


def create_hospital(data: Dict[str, Any], actor=None, admin: Optional[Dict[str, Any]] = None) -> Hospital:
    """Register a hospital, optionally with its admin account.

    ``actor`` is ``None`` for public registration.  Only the super admin
    may pick the initial status or attach an admin account.
    """
    actor = policy.as_actor(actor) if actor is not None else None
    is_super = bool(actor and actor.is_super)
    if actor is not None and not is_super:
        raise AccessDenied('Only the super admin can register hospitals on behalf of others')

    fields = {k: data[k] for k in HOSPITAL_FIELDS if data.get(k) is not None}
    fields['email'] = (fields.get('email') or '').strip().lower()
    if not fields.get('name') or not fields['email']:
        raise InvalidArgument('Hospital name and email are required')
    if Hospital.objects.filter(email__iexact=fields['email']).exists():
        raise Conflict('A hospital with this email already exists')

    status = data.get('status') if is_super else None
    if status and status not in dict(Hospital.STATUS_CHOICES):
        raise InvalidArgument('Unknown hospital status')
    fields['status'] = status or Hospital.STATUS_PENDING
    if is_super and fields['status'] == Hospital.STATUS_APPROVED:
        fields['approved_by_id'] = actor.id
        fields['approved_at'] = timezone.now()

    with Saga('register_hospital') as saga:
        hospital = saga.step('create_hospital', lambda: _insert_hospital(fields), _delete_hospital_row)
        if admin and is_super:
            saga.step('create_admin_account', lambda: _create_admin_account(hospital, admin, actor))

    if hospital.status == Hospital.STATUS_APPROVED:
        cache.delete(APPROVED_HOSPITALS_CACHE_KEY)
    log_action(user=actor, action='hospital_create', object_type='hospital', object_id=hospital.pk,
               detail={'status': hospital.status, 'withAdmin': bool(admin and is_super)})
    return hospital


def _create_admin_account(hospital: Hospital, admin: Dict[str, Any], actor) -> Any:
    account = create_account({
        'role': ROLE_HOSPITAL,
        'email': admin.get('email') or hospital.email,
        'password': admin.get('password'),
        'first_name': admin.get('first_name', ''),
        'last_name': admin.get('last_name', ''),
        'phone': admin.get('phone') or hospital.phone,
        'department': admin.get('department', 'Administration'),
        'position': admin.get('position', 'Hospital Administrator'),
        'hospital_id': hospital.pk,
    }, actor=actor)
    if hospital.status == Hospital.STATUS_APPROVED:
        User.objects.filter(pk=account.pk).update(approval_status=APPROVAL_APPROVED, approved_by_id=actor.id,
                                                  approved_at=hospital.approved_at)
        account.approval_status = APPROVAL_APPROVED
    return account


def list_hospitals(actor, *, status=None, search=None, page=None, limit=None):
    actor = policy.as_actor(actor)
    if not actor.is_super:
        raise AccessDenied('Only the super admin can list all hospitals')
    filters = Q()
    if status and status != 'all':
        if status not in dict(Hospital.STATUS_CHOICES):
            raise InvalidArgument('Unknown hospital status')
        filters &= Q(status=status)
    qs = Hospital.objects.filter(policy.combine(None, filters, policy.search_terms(search, SEARCH_FIELDS)))
    items, pagination = paginate(qs.order_by('name', 'id'), page, limit)
    return [format_hospital(h) for h in items], pagination


def approved_hospitals() -> list:
    """Public directory of approved, active hospitals (cached)."""
    data = cache.get(APPROVED_HOSPITALS_CACHE_KEY)
    if data is None:
        qs = Hospital.objects.filter(status=Hospital.STATUS_APPROVED, is_active=True).order_by('name', 'id')
        data = [format_hospital(h, brief=True) for h in qs]
        cache.set(APPROVED_HOSPITALS_CACHE_KEY, data, getattr(settings, 'APPROVED_HOSPITALS_CACHE_TTL', 300))
    return data


def get_hospital(actor, pk: int) -> Hospital:
    return policy.get_for_actor(Hospital, actor, policy.VIEW, pk=pk)


def update_hospital(actor, pk: int, patch: Dict[str, Any]) -> Hospital:
    actor = policy.as_actor(actor)
    hospital = policy.get_for_actor(Hospital, actor, policy.UPDATE, pk=pk)
    changed = []
    for key in HOSPITAL_FIELDS:
        if key in patch and key != 'email':
            setattr(hospital, key, patch[key])
            changed.append(key)
    if 'is_active' in patch and actor.is_super:
        hospital.is_active = bool(patch['is_active'])
        changed.append('is_active')
    if 'status' in patch and patch['status'] != hospital.status:
        if not actor.is_super:
            raise AccessDenied('Only the super admin can change hospital status')
        if patch['status'] not in dict(Hospital.STATUS_CHOICES):
            raise InvalidArgument('Unknown hospital status')
        hospital.status = patch['status']
        changed.append('status')
    if changed:
        hospital.save(update_fields=changed + ['updated_at'])
        cache.delete(APPROVED_HOSPITALS_CACHE_KEY)
    return hospital


def delete_hospital(actor, pk: int, *, delete_users: bool = False) -> dict:
    """Delete a hospital; its accounts go too only when ``delete_users`` is set."""
    actor = policy.as_actor(actor)
    hospital = policy.get_for_actor(Hospital, actor, policy.DELETE, pk=pk)
    accounts = User.objects.filter(hospital_id=hospital.pk)
    count = accounts.count()
    if count and not delete_users:
        raise PreconditionFailed(
            f'Hospital has {count} associated account(s); pass deleteUsers=true to delete them as well',
            extra={'associatedAccounts': count},
        )
    try:
        with transaction.atomic():
            if count:
                accounts.delete()
            hospital.delete()
    except ProtectedError:
        raise PreconditionFailed('Hospital or its accounts are referenced by referrals or records')
    cache.delete(APPROVED_HOSPITALS_CACHE_KEY)
    log_action(user=actor, action='hospital_delete', object_type='hospital', object_id=pk,
               detail={'name': hospital.name, 'deletedAccounts': count})
    logger.info('Deleted hospital %s with %s account(s)', pk, count)
    return {'deletedAccounts': count}


def hospital_overview(actor, pk: int) -> dict:
    """Counts for one hospital's dashboard."""
    hospital = get_hospital(actor, pk)
    accounts = User.objects.filter(hospital_id=hospital.pk).order_by()
    by_role = {row['role']: row['n'] for row in accounts.values('role').annotate(n=Count('id'))}
    return {
        'hospital': format_hospital(hospital),
        'doctors': by_role.get('doctor', 0),
        'patients': by_role.get('patient', 0),
        'pendingDoctors': accounts.filter(role='doctor', approval_status=APPROVAL_PENDING).count(),
        'referralsSent': hospital.referrals_sent.count(),
        'referralsReceived': hospital.referrals_received.count(),
    }
