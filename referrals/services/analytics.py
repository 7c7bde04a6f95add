"""
Counting helpers for dashboards.

Every function takes the queryset it counts over; callers scope it first.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Optional

from django.db.models import Count
from django.utils import timezone

from referrals import policy
from referrals.models import (
    APPROVAL_PENDING,
    ROLE_DOCTOR,
    Hospital,
    MedicalRecord,
    Referral,
    User,
)


def _counts(qs, field: str, choices) -> dict:
    out = {value: 0 for value, _ in choices}
    for row in qs.order_by().values(field).annotate(n=Count('id')):
        out[row[field]] = row['n']
    return out


def referral_breakdown(qs) -> dict:
    return {
        'total': qs.count(),
        'byStatus': _counts(qs, 'status', Referral.STATUS_CHOICES),
        'byPriority': _counts(qs, 'priority', Referral.PRIORITY_CHOICES),
    }


def doctor_breakdown(doctor_id: int, *, days: Optional[int] = None) -> dict:
    sent = Referral.objects.filter(referring_doctor_id=doctor_id)
    received = Referral.objects.filter(receiving_doctor_id=doctor_id)
    records = MedicalRecord.objects.filter(doctor_id=doctor_id)
    if days:
        since = timezone.now() - timedelta(days=days)
        sent = sent.filter(created_at__gte=since)
        received = received.filter(created_at__gte=since)
        records = records.filter(visit_date__gte=since)
    return {
        'periodDays': days,
        'sent': referral_breakdown(sent),
        'received': referral_breakdown(received),
        'records': records.count(),
        'patients': len(
            set(sent.values_list('patient_id', flat=True))
            | set(received.values_list('patient_id', flat=True))
            | set(records.values_list('patient_id', flat=True))
        ),
    }


def dashboard(actor) -> dict:
    """Role-scoped summary for the landing page."""
    actor = policy.as_actor(actor)
    referrals = Referral.objects.filter(policy.combine(policy.referral_scope(actor)))
    data = {'role': actor.role, 'referrals': referral_breakdown(referrals)}
    if actor.is_super:
        data['pendingApprovals'] = {
            'hospitals': Hospital.objects.filter(status=Hospital.STATUS_PENDING).count(),
            'accounts': User.objects.filter(approval_status=APPROVAL_PENDING).count(),
        }
        data['hospitals'] = _counts(Hospital.objects.all(), 'status', Hospital.STATUS_CHOICES)
    elif actor.is_hospital_admin and actor.hospital_id is not None:
        doctors = User.objects.filter(role=ROLE_DOCTOR, hospital_id=actor.hospital_id)
        data['doctors'] = doctors.count()
        data['pendingApprovals'] = {'doctors': doctors.filter(approval_status=APPROVAL_PENDING).count()}
        data['incomingPending'] = referrals.filter(
            receiving_hospital_id=actor.hospital_id, status=Referral.STATUS_PENDING
        ).count()
    elif actor.is_doctor:
        data['records'] = MedicalRecord.objects.filter(doctor_id=actor.id).count()
    elif actor.is_patient:
        data['records'] = MedicalRecord.objects.filter(patient_id=actor.id).count()
    return data
