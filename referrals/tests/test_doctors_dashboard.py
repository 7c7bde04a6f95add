import pytest

from referrals.models import APPROVAL_PENDING, PRACTICE_HOSPITAL, ROLE_DOCTOR, MedicalRecord

pytestmark = pytest.mark.django_db


def test_doctor_directory_hides_pending_doctors_from_partners(client_for, doctor_a, doctor_b, make_user,
                                                              hospital_b):
    make_user(ROLE_DOCTOR, practice_type=PRACTICE_HOSPITAL, hospital=hospital_b, approval=APPROVAL_PENDING)
    r = client_for(doctor_a).get('/api/doctors')
    assert r.status_code == 200
    assert {d['id'] for d in r.data['doctors']} == {doctor_a.id, doctor_b.id}


def test_doctor_patients_and_referrals(client_for, doctor_a, patient, other_patient, make_referral, hospital_b):
    referral = make_referral(patient=patient, doctor=doctor_a, receiving_hospital=hospital_b)
    MedicalRecord.objects.create(patient=other_patient, doctor=doctor_a, chief_complaint='Rash')
    client = client_for(doctor_a)

    patients = client.get(f'/api/doctors/{doctor_a.pk}/patients').data['patients']
    counts = {p['id']: p['referralCount'] for p in patients}
    assert counts == {patient.id: 1, other_patient.id: 0}

    r = client.get(f'/api/doctors/{doctor_a.pk}/referrals')
    assert [x['id'] for x in r.data['referrals']] == [referral.pk]


def test_doctor_cannot_read_colleague_data(client_for, doctor_a, doctor_b):
    for suffix in ('patients', 'referrals', 'analytics'):
        r = client_for(doctor_a).get(f'/api/doctors/{doctor_b.pk}/{suffix}')
        assert r.status_code == 403


def test_hospital_admin_reads_own_doctor_only(client_for, admin_a, doctor_a, doctor_b):
    client = client_for(admin_a)
    assert client.get(f'/api/doctors/{doctor_a.pk}/analytics').status_code == 200
    assert client.get(f'/api/doctors/{doctor_b.pk}/analytics').status_code == 403


def test_doctor_analytics(client_for, doctor_a, doctor_b, patient, make_referral, hospital_b):
    make_referral(patient=patient, doctor=doctor_a, receiving_hospital=hospital_b, receiving_doctor=doctor_b)
    make_referral(patient=patient, doctor=doctor_a, receiving_hospital=hospital_b, priority='urgent')
    data = client_for(doctor_a).get(f'/api/doctors/{doctor_a.pk}/analytics', {'days': 7}).data['analytics']
    assert data['periodDays'] == 7
    assert data['sent']['total'] == 2
    assert data['sent']['byPriority']['urgent'] == 1
    assert data['sent']['byStatus']['pending'] == 2
    assert data['received']['total'] == 0
    assert data['patients'] == 1


def test_dashboard_per_role(client_for, super_admin, admin_b, patient, doctor_a, make_referral, hospital_b):
    make_referral(patient=patient, doctor=doctor_a, receiving_hospital=hospital_b)

    su = client_for(super_admin).get('/api/dashboard').data['dashboard']
    assert su['referrals']['total'] == 1
    assert 'pendingApprovals' in su

    hb = client_for(admin_b).get('/api/dashboard').data['dashboard']
    assert hb['incomingPending'] == 1

    pt = client_for(patient).get('/api/dashboard').data['dashboard']
    assert pt['referrals']['total'] == 1
    assert pt['records'] == 0


def test_healthz(client):
    r = client.get('/healthz')
    assert r.status_code == 200
    assert r.json()['ok'] is True
