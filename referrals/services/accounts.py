"""
Account registration and management.

Registration of an own-clinic doctor writes two records (the account,
then its clinic) as a :class:`~referrals.services.saga.Saga`: if the
clinic cannot be created the account is deleted again, so a failed
registration leaves no account behind.
"""
from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count, ProtectedError, Q
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken

from referrals import policy
from referrals.exceptions import AccessDenied, Conflict, InvalidArgument, PreconditionFailed
from referrals.models import (
    APPROVAL_CHOICES,
    PRACTICE_CHOICES,
    PRACTICE_HOSPITAL,
    PRACTICE_OWN_CLINIC,
    ROLE_CHOICES,
    ROLE_DOCTOR,
    ROLE_HOSPITAL,
    ROLE_PATIENT,
    ROLE_SUPER_ADMIN,
    Clinic,
    Hospital,
)
from referrals.services.audit import log_action
from referrals.services.common import existing_hospital, iso, paginate
from referrals.services.saga import Saga

logger = logging.getLogger(__name__)

User = get_user_model()

PUBLIC_ROLES = {ROLE_HOSPITAL, ROLE_DOCTOR, ROLE_PATIENT}

PROFILE_FIELDS = (
    'first_name',
    'last_name',
    'phone',
    'license_number',
    'specialization',
    'years_of_experience',
    'qualification',
    'department',
    'position',
    'date_of_birth',
    'gender',
    'emergency_contact',
    'emergency_phone',
    'medical_history',
    'admin_level',
    'organization',
)

CLINIC_FIELDS = ('name', 'address', 'phone', 'email', 'website', 'description')

SEARCH_FIELDS = ('first_name', 'last_name', 'email', 'phone')


def format_account(u) -> dict:
    return {
        'id': u.id,
        'email': u.email,
        'firstName': u.first_name,
        'lastName': u.last_name,
        'name': u.full_name,
        'phone': u.phone,
        'role': u.role,
        'approvalStatus': u.approval_status,
        'approvedBy': u.approved_by_id,
        'approvedAt': iso(u.approved_at),
        'rejectionReason': u.rejection_reason or None,
        'isActive': u.is_active,
        'practiceType': u.practice_type or None,
        'hospitalId': u.hospital_id,
        'hospitalName': u.hospital.name if u.hospital_id else None,
        'clinicId': u.clinic_id,
        'specialization': u.specialization or None,
        'licenseNumber': u.license_number or None,
        'yearsOfExperience': u.years_of_experience,
        'qualification': u.qualification or None,
        'department': u.department or None,
        'position': u.position or None,
        'createdAt': iso(u.created_at),
    }


def _check_password(password: Optional[str]) -> None:
    if not password:
        raise InvalidArgument('Password is required')
    try:
        validate_password(password)
    except DjangoValidationError as e:
        raise InvalidArgument(' '.join(e.messages))


def _ensure_email_free(email: str) -> None:
    if User.objects.filter(email__iexact=email).exists():
        raise Conflict('An account with this email already exists')


def _insert_account(email: str, password: str, **fields):
    try:
        with transaction.atomic():
            return User.objects.create_user(email=email, password=password, **fields)
    except IntegrityError:
        raise Conflict('An account with this email already exists')


def _delete_account(user) -> None:
    User.objects.filter(pk=user.pk).delete()


def _link_clinic(user, clinic: Clinic) -> None:
    user.clinic = clinic
    user.save(update_fields=['clinic'])


def create_account(data: Dict[str, Any], actor=None):
    """Register an account.

    ``actor`` is ``None`` for public sign-up, which cannot create super
    admins.  Hospital admins may create doctors and patients for their
    own hospital only; doctors may create patients.  A patient created on
    someone else's behalf without a password gets a random one.
    """
    data = dict(data)
    role = data.get('role')
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')
    practice_type = data.get('practice_type') or ''
    hospital_id = data.get('hospital_id')
    clinic_data = data.get('clinic') or {}

    if role not in dict(ROLE_CHOICES):
        raise InvalidArgument('Unknown role')
    if actor is None:
        if role not in PUBLIC_ROLES:
            raise InvalidArgument('This role cannot be registered publicly')
    else:
        actor = policy.as_actor(actor)
        if actor.is_hospital_admin:
            if role not in (ROLE_DOCTOR, ROLE_PATIENT):
                raise AccessDenied('Hospital administrators can only create doctors and patients')
            hospital_id = actor.hospital_id
            if role == ROLE_DOCTOR:
                practice_type = PRACTICE_HOSPITAL
        elif actor.is_doctor:
            if role != ROLE_PATIENT:
                raise AccessDenied('Doctors can only create patient accounts')
            hospital_id = actor.hospital_id
        elif not actor.is_super:
            raise AccessDenied('Only administrators can create accounts')

    if not email:
        raise InvalidArgument('Email is required')
    _ensure_email_free(email)
    if actor is not None and role == ROLE_PATIENT and not password:
        password = secrets.token_urlsafe(12)
    _check_password(password)

    fields = {k: data[k] for k in PROFILE_FIELDS if data.get(k) is not None}
    hospital = None
    if role == ROLE_DOCTOR:
        if practice_type not in dict(PRACTICE_CHOICES):
            raise InvalidArgument("practiceType must be 'own_clinic' or 'hospital'")
        if practice_type == PRACTICE_HOSPITAL:
            hospital = existing_hospital(hospital_id)
        elif not clinic_data.get('name'):
            raise InvalidArgument('Clinic name is required for own-clinic practice')
    else:
        practice_type = ''
        if role == ROLE_HOSPITAL:
            # only the super admin may bind an admin account to an arbitrary hospital
            if hospital_id and actor is not None and actor.is_super:
                hospital = existing_hospital(hospital_id)
            else:
                hospital = Hospital.objects.filter(email=email).first()
        elif role == ROLE_PATIENT and hospital_id:
            hospital = existing_hospital(hospital_id)

    with Saga('register_account') as saga:
        user = saga.step(
            'create_account',
            lambda: _insert_account(email, password, role=role, practice_type=practice_type,
                                    hospital=hospital, **fields),
            _delete_account,
        )
        if role == ROLE_DOCTOR and practice_type == PRACTICE_OWN_CLINIC:
            clinic = saga.step(
                'create_clinic',
                lambda: Clinic.objects.create(owner=user, **{k: clinic_data[k] for k in CLINIC_FIELDS if clinic_data.get(k)}),
            )
            saga.step('link_clinic', lambda: _link_clinic(user, clinic))

    log_action(user=actor, action='account_create', object_type='user', object_id=user.id,
               detail={'role': role, 'public': actor is None})
    logger.info('Created %s account %s (%s)', role, user.id, user.approval_status)
    return user


def get_account(actor, pk: int):
    return policy.get_for_actor(User.objects.select_related('hospital'), actor, policy.VIEW, pk=pk)


def list_accounts(actor, *, role=None, status=None, hospital_id=None, search=None, page=None, limit=None):
    actor = policy.as_actor(actor)
    filters = Q()
    if role:
        if role not in dict(ROLE_CHOICES):
            raise InvalidArgument('Unknown role')
        filters &= Q(role=role)
    if status == 'active':
        filters &= Q(is_active=True, approval_status='approved')
    elif status == 'inactive':
        filters &= Q(is_active=False)
    elif status and status != 'all':
        if status not in dict(APPROVAL_CHOICES):
            raise InvalidArgument('Unknown status')
        filters &= Q(approval_status=status)
    if hospital_id and actor.is_super:
        filters &= Q(hospital_id=hospital_id)
    predicate = policy.combine(policy.account_scope(actor), filters, policy.search_terms(search, SEARCH_FIELDS))
    qs = User.objects.filter(predicate).select_related('hospital').order_by('-created_at', '-id')
    items, pagination = paginate(qs, page, limit)
    return [format_account(u) for u in items], pagination


UPDATABLE_FIELDS = frozenset(PROFILE_FIELDS)
# Never taken from an update payload
PROTECTED_FIELDS = frozenset({'password', 'role', 'email', 'approval_status', 'approved_by', 'approved_at',
                              'is_superuser', 'is_staff', 'hospital_id', 'clinic_id', 'practice_type'})


def update_account(actor, pk: int, patch: Dict[str, Any]):
    user = policy.get_for_actor(User, actor, policy.UPDATE, pk=pk)
    if 'role' in patch and patch['role'] != user.role:
        raise InvalidArgument('Account role cannot be changed')
    changed = []
    for key, value in patch.items():
        if key in UPDATABLE_FIELDS:
            setattr(user, key, value)
            changed.append(key)
    if changed:
        user.save(update_fields=changed)
    return user


def toggle_account_active(actor, pk: int):
    actor = policy.as_actor(actor)
    user = policy.get_for_actor(User, actor, policy.MANAGE, pk=pk)
    if user.role == ROLE_SUPER_ADMIN:
        raise PreconditionFailed('Super admin accounts cannot be deactivated')
    if user.id == actor.id:
        raise PreconditionFailed('You cannot deactivate your own account')
    user.is_active = not user.is_active
    user.save(update_fields=['is_active'])
    log_action(user=actor, action='account_toggle', object_type='user', object_id=user.id,
               detail={'isActive': user.is_active})
    return user


def delete_account(actor, pk: int) -> None:
    actor = policy.as_actor(actor)
    user = policy.get_for_actor(User, actor, policy.MANAGE, pk=pk)
    if user.role == ROLE_SUPER_ADMIN:
        raise PreconditionFailed('Super admin accounts cannot be deleted')
    if user.role == ROLE_HOSPITAL and user.hospital_id:
        raise PreconditionFailed('Hospital administrator accounts are removed by deleting the hospital with deleteUsers=true')
    try:
        user.delete()
    except ProtectedError:
        raise PreconditionFailed('Account has referrals or records; deactivate it instead')
    log_action(user=actor, action='account_delete', object_type='user', object_id=pk,
               detail={'email': user.email, 'role': user.role})


def account_stats(actor) -> dict:
    actor = policy.as_actor(actor)
    qs = User.objects.filter(policy.combine(policy.account_scope(actor)))
    by_role = {r: 0 for r, _ in ROLE_CHOICES}
    by_role.update({row['role']: row['n'] for row in qs.order_by().values('role').annotate(n=Count('id'))})
    by_status = {s: 0 for s, _ in APPROVAL_CHOICES}
    by_status.update({row['approval_status']: row['n'] for row in qs.order_by().values('approval_status').annotate(n=Count('id'))})
    return {
        'total': qs.count(),
        'active': qs.filter(is_active=True).count(),
        'inactive': qs.filter(is_active=False).count(),
        'byRole': by_role,
        'byApprovalStatus': by_status,
    }


def change_password(user, current: str, new: str) -> None:
    """Replace the password of ``user`` and revoke every refresh token issued so far."""
    if not user.check_password(current):
        raise InvalidArgument('Current password is incorrect', code='invalid_credentials')
    if current == new:
        raise InvalidArgument('New password must differ from the current one')
    try:
        validate_password(new, user=user)
    except DjangoValidationError as e:
        raise InvalidArgument(' '.join(e.messages))

    with transaction.atomic():
        user.set_password(new)
        user.save(update_fields=['password'])
        outstanding = OutstandingToken.objects.filter(user=user, blacklistedtoken__isnull=True)
        revoked = 0
        for token in outstanding:
            BlacklistedToken.objects.get_or_create(token=token)
            revoked += 1

    log_action(user=user, action='password_change', object_type='user', object_id=user.id,
               detail={'revokedTokens': revoked})
    logger.info('Password changed for account %s, %d refresh token(s) revoked', user.id, revoked)
