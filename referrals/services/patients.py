"""
Patient directory and per-patient views.

Patients are plain accounts with ``role='patient'``; this module adds the
staff-facing listing, creation and the profile, referral and history
reads.  A patient may read their own data here; staff see the patients
:func:`referrals.policy.account_scope` puts in their scope.
"""
from __future__ import annotations

from typing import Any, Dict

from django.contrib.auth import get_user_model
from django.db.models import Q

from referrals import policy
from referrals.exceptions import AccessDenied, InvalidArgument
from referrals.models import APPROVAL_CHOICES, APPROVAL_PENDING, ROLE_PATIENT, MedicalRecord, Referral
from referrals.services.accounts import create_account, format_account
from referrals.services.common import iso, paginate
from referrals.services.hospitals import format_hospital
from referrals.services.records import format_record
from referrals.services.referrals import RELATED, format_referral

User = get_user_model()

GENDERS = ('male', 'female', 'other')

SEARCH_FIELDS = ('first_name', 'last_name', 'email', 'phone', 'emergency_phone')


def format_patient(u) -> dict:
    data = format_account(u)
    data.update({
        'dateOfBirth': iso(u.date_of_birth),
        'gender': u.gender or None,
        'emergencyContact': u.emergency_contact or None,
        'emergencyPhone': u.emergency_phone or None,
    })
    return data


def list_patients(actor, *, status=None, hospital_id=None, search=None, page=None, limit=None):
    """Patients in the actor's scope plus totals over that same scope."""
    actor = policy.as_actor(actor)
    if actor.is_patient:
        raise AccessDenied('Patients cannot list patients')
    scope = policy.combine(policy.account_scope(actor), Q(role=ROLE_PATIENT))
    filters = Q()
    if status == 'active':
        filters &= Q(is_active=True)
    elif status == 'inactive':
        filters &= Q(is_active=False)
    elif status and status != 'all':
        if status not in dict(APPROVAL_CHOICES):
            raise InvalidArgument('Unknown status')
        filters &= Q(approval_status=status)
    if hospital_id:
        filters &= Q(hospital_id=hospital_id)

    scoped = User.objects.filter(scope)
    qs = (User.objects.filter(policy.combine(scope, filters, policy.search_terms(search, SEARCH_FIELDS)))
          .select_related('hospital').order_by('-created_at', '-id'))
    items, pagination = paginate(qs, page, limit)
    stats = {
        'total': scoped.count(),
        'active': scoped.filter(is_active=True).count(),
        'pending': scoped.filter(approval_status=APPROVAL_PENDING).count(),
    }
    return [format_patient(u) for u in items], pagination, stats


def create_patient(actor, data: Dict[str, Any]):
    """Register a patient on a staff member's behalf.

    Contact details are mandatory here, unlike public sign-up, because the
    patient may never log in to complete them.
    """
    actor = policy.as_actor(actor)
    if actor.is_patient:
        raise AccessDenied('Patients cannot create patient accounts')
    missing = [label for key, label in (('first_name', 'firstName'), ('last_name', 'lastName'),
                                         ('emergency_phone', 'emergencyPhone')) if not data.get(key)]
    if missing:
        raise InvalidArgument(f"Missing required fields: {', '.join(missing)}")
    if data.get('gender') and data['gender'] not in GENDERS:
        raise InvalidArgument("gender must be 'male', 'female' or 'other'")
    return create_account({**data, 'role': ROLE_PATIENT}, actor=actor)


def get_patient(actor, pk: int):
    return policy.get_for_actor(User.objects.filter(role=ROLE_PATIENT).select_related('hospital'),
                                actor, policy.VIEW, pk=pk)


def _referrals_of(actor, patient):
    return Referral.objects.filter(policy.combine(policy.referral_scope(actor), Q(patient_id=patient.id)))


def _records_of(actor, patient):
    return MedicalRecord.objects.filter(policy.combine(policy.record_scope(actor), Q(patient_id=patient.id)))


def patient_profile(actor, pk: int) -> dict:
    patient = get_patient(actor, pk)
    data = format_patient(patient)
    data['hospital'] = format_hospital(patient.hospital, brief=True) if patient.hospital_id else None
    data['referralCount'] = _referrals_of(actor, patient).count()
    data['recordCount'] = _records_of(actor, patient).count()
    return data


def patient_referrals(actor, pk: int, *, status=None, page=None, limit=None):
    patient = get_patient(actor, pk)
    qs = _referrals_of(actor, patient)
    if status:
        qs = qs.filter(status=status)
    qs = qs.select_related(*RELATED).order_by('-created_at', '-id')
    items, pagination = paginate(qs, page, limit)
    return [format_referral(r) for r in items], pagination


def patient_medical_history(actor, pk: int) -> dict:
    """Self-reported history plus the records the actor may read."""
    patient = get_patient(actor, pk)
    records = list(_records_of(actor, patient).order_by('-visit_date', '-id'))
    by_type: Dict[str, int] = {}
    for r in records:
        by_type[r.visit_type] = by_type.get(r.visit_type, 0) + 1
    return {
        'patientId': patient.id,
        'medicalHistory': patient.medical_history or [],
        'records': [format_record(r) for r in records],
        'stats': {
            'totalRecords': len(records),
            'byVisitType': by_type,
            'lastVisit': iso(records[0].visit_date) if records else None,
        },
    }
