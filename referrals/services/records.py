"""
Medical records.

Doctors author records for their patients; the record is stamped with
the doctor's hospital or clinic at creation.  Patient, doctor and
facility never change afterwards.
"""
from __future__ import annotations

from typing import Any, Dict

from django.contrib.auth import get_user_model
from django.db.models import Q

from referrals import policy
from referrals.exceptions import AccessDenied, InvalidArgument
from referrals.models import ROLE_PATIENT, MedicalRecord, Referral
from referrals.services.audit import log_action
from referrals.services.common import iso, paginate

User = get_user_model()

RECORD_FIELDS = (
    'visit_date', 'visit_type', 'specialty', 'chief_complaint', 'diagnosis', 'treatment',
    'medications', 'lab_results', 'doctor_notes', 'status',
)
IMMUTABLE_KEYS = ('patient_id', 'doctor_id', 'hospital_id', 'clinic_id')

SEARCH_FIELDS = ('record_id', 'chief_complaint', 'specialty', 'doctor_notes')


def format_record(r: MedicalRecord) -> dict:
    return {
        'id': r.id,
        'recordId': r.record_id,
        'patientId': r.patient_id,
        'doctorId': r.doctor_id,
        'hospitalId': r.hospital_id,
        'clinicId': r.clinic_id,
        'referralId': r.referral_id,
        'visitDate': iso(r.visit_date),
        'visitType': r.visit_type,
        'specialty': r.specialty,
        'chiefComplaint': r.chief_complaint,
        'diagnosis': r.diagnosis,
        'treatment': r.treatment,
        'medications': r.medications,
        'labResults': r.lab_results,
        'doctorNotes': r.doctor_notes,
        'status': r.status,
        'createdAt': iso(r.created_at),
        'updatedAt': iso(r.updated_at),
    }


def create_record(actor, data: Dict[str, Any]) -> MedicalRecord:
    actor = policy.as_actor(actor)
    if not actor.is_doctor:
        raise AccessDenied('Only doctors can create medical records')
    patient = User.objects.filter(pk=data.get('patient_id'), role=ROLE_PATIENT).first()
    if patient is None:
        raise InvalidArgument('Patient does not exist')
    referral = None
    if data.get('referral_id'):
        referral = Referral.objects.filter(pk=data['referral_id']).first()
        if referral is None or not policy.can(actor, policy.VIEW, referral):
            raise InvalidArgument('Referral does not exist')
        if referral.patient_id != patient.id:
            raise InvalidArgument('Referral belongs to a different patient')
    fields = {k: data[k] for k in RECORD_FIELDS if data.get(k) is not None}
    record = MedicalRecord.objects.create(
        patient=patient,
        doctor_id=actor.id,
        hospital_id=actor.hospital_id,
        clinic_id=actor.clinic_id,
        referral=referral,
        **fields,
    )
    log_action(user=actor, action='record_create', object_type='record', object_id=record.pk,
               detail={'recordId': record.record_id, 'patientId': patient.id})
    return record


def get_record(actor, pk: int) -> MedicalRecord:
    return policy.get_for_actor(MedicalRecord, actor, policy.VIEW, pk=pk)


def update_record(actor, pk: int, patch: Dict[str, Any]) -> MedicalRecord:
    record = policy.get_for_actor(MedicalRecord, actor, policy.UPDATE, pk=pk)
    touched = [k for k in IMMUTABLE_KEYS if k in patch]
    if touched:
        raise InvalidArgument(f"Cannot change: {', '.join(touched)}")
    changed = [k for k in RECORD_FIELDS if k in patch]
    for key in changed:
        setattr(record, key, patch[key])
    if changed:
        record.save(update_fields=changed + ['updated_at'])
    return record


def delete_record(actor, pk: int) -> None:
    """Only the authoring doctor (or the super admin) may delete a record."""
    actor = policy.as_actor(actor)
    record = policy.get_for_actor(MedicalRecord, actor, policy.DELETE, pk=pk)
    record_id, patient_id = record.record_id, record.patient_id
    record.delete()
    log_action(user=actor, action='record_delete', object_type='record', object_id=pk,
               detail={'recordId': record_id, 'patientId': patient_id})


def list_records(actor, *, patient_id=None, visit_type=None, status=None, search=None, page=None, limit=None):
    actor = policy.as_actor(actor)
    filters = Q()
    if patient_id and not actor.is_patient:
        filters &= Q(patient_id=patient_id)
    if visit_type:
        filters &= Q(visit_type=visit_type)
    if status:
        filters &= Q(status=status)
    predicate = policy.combine(policy.record_scope(actor), filters, policy.search_terms(search, SEARCH_FIELDS))
    qs = MedicalRecord.objects.filter(predicate).order_by('-visit_date', '-id')
    items, pagination = paginate(qs, page, limit)
    return [format_record(r) for r in items], pagination
