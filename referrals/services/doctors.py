from typing import Optional

from django.contrib.auth import get_user_model
from django.db.models import Q

from referrals import policy, workflow
from referrals.exceptions import AccessDenied, InvalidArgument
from referrals.models import APPROVAL_CHOICES, PRACTICE_CHOICES, ROLE_DOCTOR, ROLE_PATIENT, Referral
from referrals.services import analytics
from referrals.services.accounts import create_account, format_account
from referrals.services.common import paginate
from referrals.services.referrals import RELATED, format_referral

User = get_user_model()

SEARCH_FIELDS = ('first_name', 'last_name', 'email', 'specialization', 'license_number')


def list_doctors(actor, *, status=None, specialization=None, hospital_id=None, practice_type=None,
                 search=None, page=None, limit=None):
    actor = policy.as_actor(actor)
    filters = Q(role=ROLE_DOCTOR)
    if status and status != 'all':
        if status not in dict(APPROVAL_CHOICES):
            raise InvalidArgument('Unknown status')
        filters &= Q(approval_status=status)
    if specialization:
        filters &= Q(specialization__icontains=specialization)
    if practice_type:
        if practice_type not in dict(PRACTICE_CHOICES):
            raise InvalidArgument('Unknown practice type')
        filters &= Q(practice_type=practice_type)
    if hospital_id:
        filters &= Q(hospital_id=hospital_id)
    predicate = policy.combine(policy.account_scope(actor), filters, policy.search_terms(search, SEARCH_FIELDS))
    qs = User.objects.filter(predicate).select_related('hospital').order_by('last_name', 'first_name', 'id')
    items, pagination = paginate(qs, page, limit)
    return [format_account(u) for u in items], pagination


def create_doctor(actor, data):
    """Create a doctor account on behalf of an administrator."""
    actor = policy.as_actor(actor)
    if not (actor.is_super or actor.is_hospital_admin):
        raise AccessDenied('Only administrators can create doctors')
    return create_account({**data, 'role': ROLE_DOCTOR}, actor=actor)


def get_doctor(actor, pk: int):
    return policy.get_for_actor(User.objects.filter(role=ROLE_DOCTOR).select_related('hospital'),
                                actor, policy.VIEW, pk=pk)


def _own_doctor(actor, doctor_id: int):
    """The doctor whose private data ``actor`` asks for.

    A doctor may only ask about themself; a hospital admin about doctors of
    their own hospital.  The doctor-self check runs before the lookup.
    """
    actor = policy.as_actor(actor)
    policy.require_self_or_admin_of(actor, doctor_id)
    action = policy.VIEW if actor.is_doctor else policy.MANAGE
    return policy.get_for_actor(User.objects.filter(role=ROLE_DOCTOR), actor, action, pk=doctor_id)


def doctor_patients(actor, doctor_id: int) -> list:
    doctor = _own_doctor(actor, doctor_id)
    referrals = Referral.objects.filter(Q(referring_doctor_id=doctor.id) | Q(receiving_doctor_id=doctor.id))
    ids = set(referrals.values_list('patient_id', flat=True))
    ids |= set(doctor.authored_records.values_list('patient_id', flat=True))
    patients = User.objects.filter(pk__in=ids, role=ROLE_PATIENT).order_by('last_name', 'first_name', 'id')
    out = []
    for p in patients:
        item = format_account(p)
        item['referralCount'] = referrals.filter(patient_id=p.id).count()
        out.append(item)
    return out


def doctor_referrals(actor, doctor_id: int, *, status: Optional[str] = None, page=None, limit=None):
    doctor = _own_doctor(actor, doctor_id)
    qs = Referral.objects.filter(Q(referring_doctor_id=doctor.id) | Q(receiving_doctor_id=doctor.id))
    if status and status != 'all':
        qs = qs.filter(status=workflow.validate_referral_status(status))
    items, pagination = paginate(qs.select_related(*RELATED).order_by('-created_at', '-id'), page, limit)
    return [format_referral(r) for r in items], pagination


def doctor_analytics(actor, doctor_id: int, *, days: Optional[int] = 30) -> dict:
    doctor = _own_doctor(actor, doctor_id)
    return {'doctorId': doctor.id, **analytics.doctor_breakdown(doctor.id, days=days)}
