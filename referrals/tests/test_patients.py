import pytest

from referrals.models import ROLE_PATIENT, MedicalRecord, User

pytestmark = pytest.mark.django_db


@pytest.fixture
def patient_a(make_user, hospital_a):
    return make_user(ROLE_PATIENT, email='pat.a@example.com', hospital=hospital_a,
                     first_name='Alma', last_name='Able', medical_history=['Asthma'])


@pytest.fixture
def patient_b(make_user, hospital_b):
    return make_user(ROLE_PATIENT, email='pat.b@example.com', hospital=hospital_b)


def test_hospital_admin_lists_own_patients(client_for, admin_a, patient_a, patient_b):
    r = client_for(admin_a).get('/api/patients')
    assert r.status_code == 200
    assert [p['id'] for p in r.data['patients']] == [patient_a.pk]
    assert r.data['stats'] == {'total': 1, 'active': 1, 'pending': 0}


def test_patient_list_filters(client_for, super_admin, patient_a, patient_b):
    User.objects.filter(pk=patient_b.pk).update(is_active=False)
    client = client_for(super_admin)
    r = client.get('/api/patients', {'status': 'inactive'})
    assert [p['id'] for p in r.data['patients']] == [patient_b.pk]
    r = client.get('/api/patients', {'search': 'alma'})
    assert [p['id'] for p in r.data['patients']] == [patient_a.pk]
    assert client.get('/api/patients', {'status': 'bogus'}).status_code == 400


def test_patients_cannot_use_directory(client_for, patient_a):
    assert client_for(patient_a).get('/api/patients').status_code == 403
    r = client_for(patient_a).post('/api/patients', {
        'email': 'friend@example.com', 'firstName': 'F', 'lastName': 'R', 'emergencyPhone': '555-0100',
    }, format='json')
    assert r.status_code == 403


def test_staff_creates_patient(client_for, admin_a, hospital_a, hospital_b):
    r = client_for(admin_a).post('/api/patients', {
        'email': 'new.pat@example.com',
        'firstName': 'Nora',
        'lastName': 'Newton',
        'emergencyPhone': '555-0101',
        'gender': 'female',
        'hospitalId': hospital_b.pk,
    }, format='json')
    assert r.status_code == 201
    assert r.data['patient']['gender'] == 'female'
    assert r.data['patient']['hospitalId'] == hospital_a.pk


def test_create_patient_requires_contact_details(client_for, doctor_a):
    client = client_for(doctor_a)
    r = client.post('/api/patients', {'email': 'x@example.com', 'firstName': 'X', 'lastName': 'Y'}, format='json')
    assert r.status_code == 400
    assert 'emergencyPhone' in r.data['error']['message']
    r = client.post('/api/patients', {
        'email': 'x@example.com', 'firstName': 'X', 'lastName': 'Y', 'emergencyPhone': '1', 'gender': 'robot',
    }, format='json')
    assert r.status_code == 400
    assert not User.objects.filter(email='x@example.com').exists()


def test_patient_reads_own_profile_only(client_for, patient_a, patient_b):
    client = client_for(patient_a)
    r = client.get(f'/api/patients/{patient_a.pk}/profile')
    assert r.status_code == 200
    assert r.data['profile']['hospital']['name'] == 'Hospital A'
    assert client.get(f'/api/patients/{patient_b.pk}').status_code == 403
    assert client.get(f'/api/patients/{patient_b.pk}/medical-history').status_code == 403


def test_hospital_admin_cannot_read_other_hospitals_patient(client_for, admin_a, patient_b):
    assert client_for(admin_a).get(f'/api/patients/{patient_b.pk}/profile').status_code == 403


def test_patient_referrals_are_scoped_to_actor(client_for, make_referral, patient_a, doctor_a, doctor_b,
                                               hospital_a, hospital_b):
    mine = make_referral(patient=patient_a, doctor=doctor_a, receiving_hospital=hospital_b)
    make_referral(patient=patient_a, doctor=doctor_b, receiving_hospital=hospital_b)
    r = client_for(doctor_a).get(f'/api/patients/{patient_a.pk}/referrals')
    assert r.status_code == 200
    assert [x['id'] for x in r.data['referrals']] == [mine.pk]
    r = client_for(patient_a).get(f'/api/patients/{patient_a.pk}/referrals')
    assert r.data['pagination']['total'] == 2


def test_medical_history_combines_records(client_for, patient_a, doctor_a, doctor_b):
    MedicalRecord.objects.create(patient=patient_a, doctor=doctor_a, hospital=doctor_a.hospital,
                                 chief_complaint='Wheezing', visit_type='consultation')
    MedicalRecord.objects.create(patient=patient_a, doctor=doctor_b, hospital=doctor_b.hospital,
                                 chief_complaint='Rash', visit_type='follow-up')
    r = client_for(patient_a).get(f'/api/patients/{patient_a.pk}/medical-history')
    assert r.status_code == 200
    history = r.data['history']
    assert history['medicalHistory'] == ['Asthma']
    assert history['stats']['totalRecords'] == 2
    assert history['stats']['byVisitType'] == {'consultation': 1, 'follow-up': 1}

    r = client_for(doctor_a).get(f'/api/patients/{patient_a.pk}/medical-history')
    assert [x['chiefComplaint'] for x in r.data['history']['records']] == ['Wheezing']
