"""
Referral lifecycle.

Creation resolves who is referring (doctor plus hospital or clinic),
status changes go through :func:`set_referral_status`, which writes the
new status and one timeline row in a single transaction, and everything
else about a referral is a field update restricted by
:func:`referrals.policy.updatable_referral_fields`.

Timeline rows and messages are separate tables, so two receiving-hospital
staff changing the status at the same time both get their row recorded;
the status column itself is last-write-wins unless strict transitions are
enabled.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from referrals import policy, workflow
from referrals.exceptions import (
    AccessDenied,
    DependencyUnavailable,
    InvalidArgument,
    InvalidTransition,
    PreconditionFailed,
)
from referrals.models import (
    APPROVAL_APPROVED,
    PRACTICE_OWN_CLINIC,
    ROLE_DOCTOR,
    ROLE_PATIENT,
    Referral,
    ReferralMessage,
    ReferralTimelineEntry,
    generate_referral_id,
)
from referrals.services import analytics, notifications
from referrals.services.audit import log_action
from referrals.services.common import existing_hospital, iso, paginate, plain_text

logger = logging.getLogger(__name__)

User = get_user_model()

SEARCH_FIELDS = ('referral_id', 'reason', 'chief_complaint', 'specialty')

ROUTING_KEYS = {
    'receiving_hospital_id': 'receiving_hospital',
    'receiving_doctor_id': 'receiving_doctor',
}

MESSAGE_MAX_LENGTH = 1000

RELATED = (
    'patient', 'referring_doctor', 'referring_hospital', 'referring_clinic',
    'receiving_doctor', 'receiving_hospital',
)


# ---------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------
def _person(u) -> Optional[dict]:
    if u is None:
        return None
    return {'id': u.id, 'name': u.full_name, 'email': u.email}


def _facility(f) -> Optional[dict]:
    if f is None:
        return None
    return {'id': f.id, 'name': f.name}


def format_timeline_entry(e: ReferralTimelineEntry) -> dict:
    return {
        'id': e.id,
        'action': e.action,
        'performedBy': e.performed_by_id,
        'notes': e.notes,
        'timestamp': iso(e.timestamp),
    }


def format_message(m: ReferralMessage) -> dict:
    return {
        'id': m.id,
        'sender': m.sender_id,
        'message': m.message,
        'isRead': m.is_read,
        'timestamp': iso(m.created_at),
    }


def format_referral(r: Referral, *, detail: bool = False) -> dict:
    data = {
        'id': r.id,
        'referralId': r.referral_id,
        'patient': _person(r.patient),
        'referringDoctor': _person(r.referring_doctor),
        'referringHospital': _facility(r.referring_hospital),
        'referringClinic': _facility(r.referring_clinic),
        'receivingDoctor': _person(r.receiving_doctor),
        'receivingHospital': _facility(r.receiving_hospital),
        'reason': r.reason,
        'priority': r.priority,
        'specialty': r.specialty,
        'chiefComplaint': r.chief_complaint,
        'status': r.status,
        'expiresAt': iso(r.expires_at),
        'isExpired': r.is_expired,
        'createdAt': iso(r.created_at),
        'updatedAt': iso(r.updated_at),
    }
    if detail:
        data.update({
            'historyOfPresentIllness': r.history_of_present_illness,
            'physicalExamination': r.physical_examination,
            'vitalSigns': r.vital_signs,
            'diagnosis': r.diagnosis,
            'treatmentGiven': r.treatment_given,
            'medications': r.medications,
            'notes': r.notes,
            'timeline': [format_timeline_entry(e) for e in r.timeline.all()],
            'messages': [format_message(m) for m in r.messages.all()],
        })
    return data


def _event_payload(r: Referral) -> dict:
    return {'id': r.id, 'referralId': r.referral_id, 'status': r.status, 'priority': r.priority}


def _participants(r: Referral) -> dict:
    return {
        'user_ids': [r.referring_doctor_id, r.receiving_doctor_id, r.patient_id],
        'hospital_ids': [r.referring_hospital_id, r.receiving_hospital_id],
    }


# ---------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------
def _resolve_referrer(actor: policy.Actor, payload: Dict[str, Any]):
    """Return ``(doctor, hospital, clinic)`` for a new referral."""
    if actor.is_doctor:
        doctor = User.objects.select_related('hospital', 'clinic').get(pk=actor.id)
        if doctor.practice_type == PRACTICE_OWN_CLINIC:
            if doctor.clinic_id is None:
                raise PreconditionFailed('Your clinic is not set up')
            return doctor, None, doctor.clinic
        if doctor.hospital_id is None:
            raise PreconditionFailed('You are not linked to a hospital')
        return doctor, doctor.hospital, None

    if actor.is_hospital_admin:
        if actor.hospital_id is None:
            raise PreconditionFailed('Your account is not linked to a hospital')
        hospital = existing_hospital(actor.hospital_id)
        doctor_id = payload.get('referring_doctor_id')
        if doctor_id:
            doctor = User.objects.filter(pk=doctor_id, role=ROLE_DOCTOR, hospital_id=hospital.id).first()
            if doctor is None:
                raise InvalidArgument('Referring doctor must belong to your hospital')
        else:
            doctor = (
                User.objects.filter(role=ROLE_DOCTOR, hospital_id=hospital.id,
                                    approval_status=APPROVAL_APPROVED, is_active=True)
                .order_by('created_at', 'id')
                .first()
            )
            if doctor is None:
                raise PreconditionFailed('No approved doctor available at your hospital')
        return doctor, hospital, None

    if actor.is_super:
        doctor = User.objects.select_related('hospital', 'clinic').filter(
            pk=payload.get('referring_doctor_id'), role=ROLE_DOCTOR
        ).first()
        if doctor is None:
            raise InvalidArgument('referringDoctorId must name an existing doctor')
        if doctor.practice_type == PRACTICE_OWN_CLINIC:
            return doctor, None, doctor.clinic
        return doctor, doctor.hospital, None

    raise AccessDenied('Only doctors and hospital administrators can create referrals')


def _insert_referral(fields: Dict[str, Any], actor_id: int) -> Referral:
    # referral_id is random; retry the rare unique collision with a fresh one
    for attempt in range(3):
        try:
            with transaction.atomic():
                referral = Referral.objects.create(referral_id=generate_referral_id(), **fields)
                ReferralTimelineEntry.objects.create(
                    referral=referral,
                    action=ReferralTimelineEntry.ACTION_CREATED,
                    performed_by_id=actor_id,
                    notes='Referral created',
                )
                return referral
        except IntegrityError:
            logger.warning('Referral id collision, retrying (attempt %s)', attempt + 1)
    raise DependencyUnavailable('Could not allocate a unique referral id')


def create_referral(actor, payload: Dict[str, Any]) -> Referral:
    actor = policy.as_actor(actor)
    if actor.is_patient:
        raise AccessDenied('Patients cannot create referrals')
    doctor, hospital, clinic = _resolve_referrer(actor, payload)

    patient = User.objects.filter(pk=payload.get('patient_id'), role=ROLE_PATIENT).first()
    if patient is None:
        raise InvalidArgument('Patient does not exist')
    receiving_hospital = existing_hospital(payload.get('receiving_hospital_id'), label='Receiving hospital')

    receiving_doctor = None
    if payload.get('receiving_doctor_id'):
        receiving_doctor = User.objects.filter(pk=payload['receiving_doctor_id'], role=ROLE_DOCTOR).first()
        if receiving_doctor is None:
            raise InvalidArgument('Receiving doctor does not exist')
        # Not enforced at creation; update_referral does enforce it.
        if receiving_doctor.hospital_id != receiving_hospital.id:
            logger.warning('Referral to hospital %s names receiving doctor %s of hospital %s',
                           receiving_hospital.id, receiving_doctor.id, receiving_doctor.hospital_id)

    fields = {k: payload[k] for k in policy.CLINICAL_FIELDS if k in payload and payload[k] is not None}
    fields.update(
        patient=patient,
        referring_doctor=doctor,
        referring_hospital=hospital,
        referring_clinic=clinic,
        receiving_hospital=receiving_hospital,
        receiving_doctor=receiving_doctor,
    )
    referral = _insert_referral(fields, actor.id)

    notifications.notify(receiving_hospital.email, notifications.REFERRAL_CREATED, {
        'referral_id': referral.referral_id,
        'hospital_name': receiving_hospital.name,
        'priority': referral.priority,
        'specialty': referral.specialty,
        'referring_doctor': doctor.full_name,
    })
    notifications.broadcast('referral.created', _event_payload(referral), **_participants(referral))
    log_action(user=actor, action='referral_create', object_type='referral', object_id=referral.pk,
               detail={'referralId': referral.referral_id})
    return referral


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------
def get_referral(actor, pk: int) -> Referral:
    qs = Referral.objects.select_related(*RELATED).prefetch_related('timeline', 'messages')
    return policy.get_for_actor(qs, actor, policy.VIEW, pk=pk)


def list_referrals(actor, *, status=None, priority=None, specialty=None, patient_id=None,
                   hospital_id=None, doctor_id=None, direction=None, search=None, page=None, limit=None):
    actor = policy.as_actor(actor)
    filters = Q()
    if status and status != 'all':
        filters &= Q(status=workflow.validate_referral_status(status))
    if priority and priority != 'all':
        if priority not in dict(Referral.PRIORITY_CHOICES):
            raise InvalidArgument('Unknown priority')
        filters &= Q(priority=priority)
    if specialty:
        filters &= Q(specialty__iexact=specialty)
    if patient_id and not actor.is_patient:
        filters &= Q(patient_id=patient_id)
    if actor.is_super:
        if hospital_id:
            filters &= Q(referring_hospital_id=hospital_id) | Q(receiving_hospital_id=hospital_id)
        if doctor_id:
            filters &= Q(referring_doctor_id=doctor_id) | Q(receiving_doctor_id=doctor_id)
    if direction in ('sent', 'received'):
        side = 'referring' if direction == 'sent' else 'receiving'
        if actor.is_hospital_admin:
            filters &= Q(**{f'{side}_hospital_id': actor.hospital_id})
        elif actor.is_doctor:
            filters &= Q(**{f'{side}_doctor_id': actor.id})

    scope = policy.referral_scope(actor)
    predicate = policy.combine(scope, filters, policy.search_terms(search, SEARCH_FIELDS))
    qs = Referral.objects.filter(predicate).select_related(*RELATED).order_by('-created_at', '-id')
    items, pagination = paginate(qs, page, limit)
    stats = analytics.referral_breakdown(Referral.objects.filter(policy.combine(scope)))
    return [format_referral(r) for r in items], pagination, stats


# ---------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------
def update_referral(actor, pk: int, patch: Dict[str, Any]) -> Referral:
    actor = policy.as_actor(actor)
    referral = policy.get_for_actor(Referral.objects.select_related('receiving_doctor'), actor, policy.UPDATE, pk=pk)
    allowed = policy.updatable_referral_fields(actor, referral)

    unknown = [k for k in patch if k not in policy.CLINICAL_FIELDS and k not in ROUTING_KEYS]
    if unknown:
        raise InvalidArgument(f"Field(s) cannot be updated: {', '.join(sorted(unknown))}")
    denied = [k for k in patch if ROUTING_KEYS.get(k, k) not in allowed]
    if denied:
        raise AccessDenied(f"You cannot update: {', '.join(sorted(denied))}")

    changed = [k for k in patch if k in policy.CLINICAL_FIELDS]
    for key in changed:
        setattr(referral, key, patch[key])

    receiving_hospital_id = referral.receiving_hospital_id
    if 'receiving_hospital_id' in patch:
        receiving_hospital_id = existing_hospital(patch['receiving_hospital_id'], label='Receiving hospital').id
        if receiving_hospital_id != referral.receiving_hospital_id:
            referral.receiving_hospital_id = receiving_hospital_id
            changed.append('receiving_hospital')

    if 'receiving_doctor_id' in patch:
        doctor_id = patch['receiving_doctor_id']
        if doctor_id is None:
            referral.receiving_doctor = None
        else:
            doctor = User.objects.filter(pk=doctor_id, role=ROLE_DOCTOR).first()
            if doctor is None or doctor.hospital_id != receiving_hospital_id:
                raise InvalidArgument('Receiving doctor must belong to receiving hospital')
            referral.receiving_doctor = doctor
        changed.append('receiving_doctor')
    elif 'receiving_hospital' in changed and referral.receiving_doctor_id:
        if referral.receiving_doctor.hospital_id != receiving_hospital_id:
            logger.info('Referral %s moved to hospital %s; clearing receiving doctor %s',
                        referral.pk, receiving_hospital_id, referral.receiving_doctor_id)
            referral.receiving_doctor = None
            changed.append('receiving_doctor')

    if changed:
        referral.save(update_fields=sorted(set(changed)) + ['updated_at'])
        log_action(user=actor, action='referral_update', object_type='referral', object_id=referral.pk,
                   detail={'fields': sorted(set(changed))})
    return referral


def set_referral_status(actor, pk: int, status: Optional[str], notes: Optional[str] = None):
    """Change status and append exactly one timeline entry, atomically.

    Returns ``(referral, entry)``.
    """
    status = workflow.validate_referral_status(status)
    actor = policy.as_actor(actor)
    referral = policy.get_for_actor(Referral, actor, policy.SET_STATUS, pk=pk)
    strict = getattr(settings, 'REFERRAL_STRICT_TRANSITIONS', False)
    workflow.check_referral_transition(referral.status, status, strict)

    notes = (notes or '').strip()
    now = timezone.now()
    values = {'status': status, 'updated_at': now}
    if notes:
        values['notes'] = notes
    with transaction.atomic():
        rows = Referral.objects.filter(pk=referral.pk)
        if strict:
            rows = rows.filter(status=referral.status)
        if not rows.update(**values):
            raise InvalidTransition('Referral status changed concurrently; reload and retry')
        entry = ReferralTimelineEntry.objects.create(
            referral_id=referral.pk,
            action=status,
            performed_by_id=actor.id,
            notes=notes or workflow.default_status_note(status),
            timestamp=now,
        )
    for key, value in values.items():
        setattr(referral, key, value)

    notifications.notify(referral.referring_doctor.email, notifications.REFERRAL_STATUS_CHANGED, {
        'referral_id': referral.referral_id,
        'status': status,
        'notes': notes,
    })
    notifications.broadcast('referral.status', _event_payload(referral), **_participants(referral))
    log_action(user=actor, action='referral_status', object_type='referral', object_id=referral.pk,
               detail={'status': status})
    return referral, entry


# ---------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------
def add_message(actor, pk: int, text: Optional[str]) -> ReferralMessage:
    actor = policy.as_actor(actor)
    referral = policy.get_for_actor(Referral, actor, policy.MESSAGE, pk=pk)
    text = plain_text(text)
    if not text:
        raise InvalidArgument('Message cannot be empty')
    if len(text) > MESSAGE_MAX_LENGTH:
        raise InvalidArgument(f'Message cannot exceed {MESSAGE_MAX_LENGTH} characters')
    msg = ReferralMessage.objects.create(referral=referral, sender_id=actor.id, message=text)
    notifications.broadcast('referral.message', {**_event_payload(referral), 'message': format_message(msg)},
                            **_participants(referral))
    return msg


def list_messages(actor, pk: int) -> list:
    referral = policy.get_for_actor(Referral, actor, policy.VIEW, pk=pk)
    return [format_message(m) for m in referral.messages.all()]


def mark_messages_read(actor, pk: int) -> int:
    actor = policy.as_actor(actor)
    referral = policy.get_for_actor(Referral, actor, policy.MESSAGE, pk=pk)
    return referral.messages.filter(is_read=False).exclude(sender_id=actor.id).update(is_read=True)
