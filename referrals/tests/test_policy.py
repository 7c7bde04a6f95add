"""
Unit tests for the access policy.

The rules only look at ids and roles, so unsaved model instances are
enough; only the scope tests touch the database.
"""
import pytest
from django.db.models import Q

from referrals import policy
from referrals.exceptions import AccessDenied, NotFound
from referrals.models import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    PRACTICE_HOSPITAL,
    PRACTICE_OWN_CLINIC,
    ROLE_DOCTOR,
    ROLE_HOSPITAL,
    ROLE_PATIENT,
    ROLE_SUPER_ADMIN,
    Hospital,
    MedicalRecord,
    Referral,
    User,
)

SUPER = policy.Actor(id=1, role=ROLE_SUPER_ADMIN)
ADMIN_A = policy.Actor(id=2, role=ROLE_HOSPITAL, hospital_id=10)
ADMIN_B = policy.Actor(id=3, role=ROLE_HOSPITAL, hospital_id=20)
DOCTOR_A = policy.Actor(id=4, role=ROLE_DOCTOR, hospital_id=10)
DOCTOR_B = policy.Actor(id=5, role=ROLE_DOCTOR, hospital_id=20)
PATIENT = policy.Actor(id=6, role=ROLE_PATIENT)
STRANGER_DOCTOR = policy.Actor(id=7, role=ROLE_DOCTOR, hospital_id=30)


def _referral(**kw):
    fields = dict(pk=100, patient_id=6, referring_doctor_id=4, referring_hospital_id=10,
                  receiving_hospital_id=20, receiving_doctor_id=5)
    fields.update(kw)
    return Referral(**fields)


def test_super_admin_can_do_anything():
    ref = _referral()
    for action in (policy.VIEW, policy.UPDATE, policy.SET_STATUS, policy.MANAGE, policy.APPROVE):
        assert policy.can(SUPER, action, ref)


def test_referral_participants_can_view():
    ref = _referral()
    assert policy.can(DOCTOR_A, policy.VIEW, ref)
    assert policy.can(DOCTOR_B, policy.VIEW, ref)
    assert policy.can(ADMIN_A, policy.VIEW, ref)
    assert policy.can(ADMIN_B, policy.VIEW, ref)
    assert policy.can(PATIENT, policy.VIEW, ref)


def test_uninvolved_doctor_cannot_view_referral():
    assert not policy.can(STRANGER_DOCTOR, policy.VIEW, _referral())


def test_patient_can_only_view_own_referral():
    assert not policy.can(PATIENT, policy.VIEW, _referral(patient_id=99))
    assert not policy.can(PATIENT, policy.UPDATE, _referral())


def test_only_receiving_side_sets_status():
    ref = _referral()
    assert policy.can(ADMIN_B, policy.SET_STATUS, ref)
    assert policy.can(DOCTOR_B, policy.SET_STATUS, ref)
    assert not policy.can(ADMIN_A, policy.SET_STATUS, ref)
    assert not policy.can(DOCTOR_A, policy.SET_STATUS, ref)


def test_doctor_updates_clinical_fields_only():
    ref = _referral()
    assert policy.updatable_referral_fields(DOCTOR_A, ref) == policy.CLINICAL_FIELDS
    assert policy.ROUTING_FIELDS <= policy.updatable_referral_fields(ADMIN_A, ref)
    assert policy.updatable_referral_fields(STRANGER_DOCTOR, ref) == frozenset()


def test_hospital_admin_approves_own_hospital_doctors_only():
    doctor = User(pk=50, role=ROLE_DOCTOR, practice_type=PRACTICE_HOSPITAL, hospital_id=10,
                  approval_status=APPROVAL_PENDING)
    assert policy.can(ADMIN_A, policy.APPROVE, doctor)
    assert not policy.can(ADMIN_B, policy.APPROVE, doctor)


def test_clinic_doctors_and_hospital_admins_need_super_admin():
    clinic_doctor = User(pk=51, role=ROLE_DOCTOR, practice_type=PRACTICE_OWN_CLINIC)
    other_admin = User(pk=52, role=ROLE_HOSPITAL, hospital_id=10)
    assert not policy.can(ADMIN_A, policy.APPROVE, clinic_doctor)
    assert not policy.can(ADMIN_A, policy.APPROVE, other_admin)
    assert policy.can(SUPER, policy.APPROVE, clinic_doctor)


def test_account_visibility():
    partner = User(pk=60, role=ROLE_DOCTOR, hospital_id=20, approval_status=APPROVAL_APPROVED)
    pending = User(pk=61, role=ROLE_DOCTOR, hospital_id=20, approval_status=APPROVAL_PENDING)
    patient = User(pk=62, role=ROLE_PATIENT)
    assert policy.can(ADMIN_A, policy.VIEW, partner)
    assert not policy.can(ADMIN_A, policy.VIEW, pending)
    assert not policy.can(ADMIN_A, policy.MANAGE, partner)
    assert policy.can(DOCTOR_A, policy.VIEW, patient)
    assert not policy.can(PATIENT, policy.VIEW, partner)
    assert policy.can(PATIENT, policy.VIEW, User(pk=6, role=ROLE_PATIENT))


def test_hospital_visibility():
    approved = Hospital(pk=20, status=Hospital.STATUS_APPROVED)
    pending = Hospital(pk=10, status=Hospital.STATUS_PENDING)
    assert policy.can(PATIENT, policy.VIEW, approved)
    assert not policy.can(PATIENT, policy.VIEW, pending)
    assert policy.can(ADMIN_A, policy.VIEW, pending)
    assert policy.can(ADMIN_A, policy.UPDATE, pending)
    assert not policy.can(ADMIN_B, policy.UPDATE, pending)


def test_record_rules():
    record = MedicalRecord(pk=70, patient_id=6, doctor_id=4, hospital_id=10)
    assert policy.can(DOCTOR_A, policy.UPDATE, record)
    assert not policy.can(DOCTOR_B, policy.VIEW, record)
    assert policy.can(PATIENT, policy.VIEW, record)
    assert not policy.can(PATIENT, policy.UPDATE, record)
    assert policy.can(ADMIN_A, policy.VIEW, record)
    assert not policy.can(ADMIN_A, policy.UPDATE, record)


def test_doctor_cannot_ask_for_another_doctors_data():
    with pytest.raises(AccessDenied):
        policy.require_self_or_admin_of(DOCTOR_A, DOCTOR_B.id)
    policy.require_self_or_admin_of(DOCTOR_A, DOCTOR_A.id)
    policy.require_self_or_admin_of(ADMIN_A, DOCTOR_A.id)


def test_combine_keeps_search_inside_scope():
    scope = Q(patient_id=6)
    search = policy.search_terms('chest', ('reason', 'specialty'))
    combined = policy.combine(scope, None, search)
    assert combined.connector == Q.AND
    assert len(combined.children) == 2
    or_group = combined.children[1]
    assert isinstance(or_group, Q) and or_group.connector == Q.OR


def test_search_terms_ignores_blank():
    assert policy.search_terms('   ', ('reason',)) == []
    assert policy.combine(None, None, []) == Q()


@pytest.mark.django_db
def test_get_for_actor_hides_existence_from_non_super(patient):
    missing = 999999
    with pytest.raises(NotFound):
        policy.get_for_actor(Referral, SUPER, policy.VIEW, pk=missing)
    with pytest.raises(AccessDenied):
        policy.get_for_actor(Referral, patient, policy.VIEW, pk=missing)


@pytest.mark.django_db
def test_referral_scope_matches_can(make_referral, doctor_a, doctor_b, hospital_b, hospital_a, patient,
                                    other_patient, make_user):
    mine = make_referral(patient=patient, doctor=doctor_a, receiving_hospital=hospital_b)
    theirs = make_referral(patient=other_patient, doctor=doctor_b, receiving_hospital=hospital_a)
    stranger = make_user(ROLE_DOCTOR, practice_type=PRACTICE_HOSPITAL, hospital=hospital_b)
    for actor in (doctor_a, doctor_b, patient, other_patient, stranger):
        visible = set(Referral.objects.filter(policy.combine(policy.referral_scope(actor)))
                      .values_list('pk', flat=True))
        expected = {r.pk for r in (mine, theirs) if policy.can(actor, policy.VIEW, r)}
        assert visible == expected
