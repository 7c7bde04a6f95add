import itertools

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from referrals.models import (
    APPROVAL_APPROVED,
    PRACTICE_HOSPITAL,
    PRACTICE_OWN_CLINIC,
    ROLE_DOCTOR,
    ROLE_HOSPITAL,
    ROLE_PATIENT,
    ROLE_SUPER_ADMIN,
    Clinic,
    Hospital,
    Referral,
    ReferralTimelineEntry,
    User,
)

PASSWORD = 'Str0ng!Passw0rd'


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttle counters and the approved-hospitals directory live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_hospital(db):
    counter = itertools.count(1)

    def _make(name=None, *, status=Hospital.STATUS_APPROVED, email=None, **kw):
        n = next(counter)
        return Hospital.objects.create(
            name=name or f'Hospital {n}',
            email=email or f'hospital{n}@example.com',
            status=status,
            **kw,
        )
    return _make


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(role, *, approval=APPROVAL_APPROVED, email=None, **kw):
        user = User.objects.create_user(
            email=email or f'{role}{next(counter)}@example.com',
            password=PASSWORD,
            role=role,
            **kw,
        )
        if user.approval_status != approval:
            User.objects.filter(pk=user.pk).update(approval_status=approval)
            user.approval_status = approval
        return user
    return _make


@pytest.fixture
def hospital_a(make_hospital):
    return make_hospital('Hospital A', email='a@hospital.example.com')


@pytest.fixture
def hospital_b(make_hospital):
    return make_hospital('Hospital B', email='b@hospital.example.com')


@pytest.fixture
def super_admin(make_user):
    return make_user(ROLE_SUPER_ADMIN, email='root@example.com', is_staff=True, is_superuser=True)


@pytest.fixture
def admin_a(make_user, hospital_a):
    return make_user(ROLE_HOSPITAL, email='admin@a.example.com', hospital=hospital_a)


@pytest.fixture
def admin_b(make_user, hospital_b):
    return make_user(ROLE_HOSPITAL, email='admin@b.example.com', hospital=hospital_b)


@pytest.fixture
def doctor_a(make_user, hospital_a):
    return make_user(ROLE_DOCTOR, email='doc@a.example.com', practice_type=PRACTICE_HOSPITAL,
                     hospital=hospital_a, first_name='Ada', last_name='Alpha')


@pytest.fixture
def doctor_b(make_user, hospital_b):
    return make_user(ROLE_DOCTOR, email='doc@b.example.com', practice_type=PRACTICE_HOSPITAL,
                     hospital=hospital_b, first_name='Ben', last_name='Beta')


@pytest.fixture
def clinic_doctor(make_user):
    doctor = make_user(ROLE_DOCTOR, email='doc@clinic.example.com', practice_type=PRACTICE_OWN_CLINIC)
    doctor.clinic = Clinic.objects.create(name='Corner Clinic', owner=doctor)
    doctor.save(update_fields=['clinic'])
    return doctor


@pytest.fixture
def patient(make_user):
    return make_user(ROLE_PATIENT, email='pat@example.com', first_name='Pat', last_name='Ient')


@pytest.fixture
def other_patient(make_user):
    return make_user(ROLE_PATIENT, email='other.pat@example.com')


@pytest.fixture
def make_referral(db):
    def _make(*, patient, doctor, receiving_hospital, receiving_doctor=None, **kw):
        fields = {
            'reason': 'Persistent chest pain on exertion',
            'specialty': 'Cardiology',
            'chief_complaint': 'Chest pain',
            'priority': 'high',
        }
        fields.update(kw)
        referral = Referral.objects.create(
            patient=patient,
            referring_doctor=doctor,
            referring_hospital=doctor.hospital,
            referring_clinic=doctor.clinic,
            receiving_hospital=receiving_hospital,
            receiving_doctor=receiving_doctor,
            **fields,
        )
        ReferralTimelineEntry.objects.create(referral=referral, action=ReferralTimelineEntry.ACTION_CREATED,
                                             performed_by=doctor, notes='Referral created')
        return referral
    return _make


@pytest.fixture
def client_for():
    def _client(user=None):
        client = APIClient()
        if user is not None:
            client.force_authenticate(user=user)
        return client
    return _client
