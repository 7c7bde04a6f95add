import pytest

from referrals.models import MedicalRecord

pytestmark = pytest.mark.django_db


@pytest.fixture
def record(doctor_a, patient):
    return MedicalRecord.objects.create(
        patient=patient, doctor=doctor_a, hospital=doctor_a.hospital,
        chief_complaint='Headache', specialty='Neurology',
    )


def test_doctor_creates_record_stamped_with_facility(client_for, doctor_a, hospital_a, patient):
    r = client_for(doctor_a).post('/api/records', {
        'patientId': patient.pk,
        'chiefComplaint': 'Follow-up after referral',
        'visitType': 'follow-up',
        'diagnosis': {'primary': 'Hypertension'},
    }, format='json')
    assert r.status_code == 201
    body = r.data['record']
    assert body['recordId'].startswith('MR')
    assert body['doctorId'] == doctor_a.id
    assert body['hospitalId'] == hospital_a.pk
    assert body['diagnosis'] == {'primary': 'Hypertension'}


def test_only_doctors_create_records(client_for, admin_a, patient):
    r = client_for(admin_a).post('/api/records', {'patientId': patient.pk, 'chiefComplaint': 'x'}, format='json')
    assert r.status_code == 403


def test_record_referral_must_be_visible(client_for, doctor_b, patient, make_referral, doctor_a, hospital_a):
    foreign = make_referral(patient=patient, doctor=doctor_a, receiving_hospital=hospital_a)
    r = client_for(doctor_b).post('/api/records', {
        'patientId': patient.pk, 'chiefComplaint': 'Review', 'referralId': foreign.pk,
    }, format='json')
    assert r.status_code == 400


def test_author_updates_but_ownership_is_fixed(client_for, doctor_a, other_patient, record):
    client = client_for(doctor_a)
    r = client.patch(f'/api/records/{record.pk}', {'doctorNotes': 'Improving', 'status': 'reviewed'}, format='json')
    assert r.status_code == 200
    assert r.data['record']['doctorNotes'] == 'Improving'
    r = client.patch(f'/api/records/{record.pk}', {'patientId': other_patient.pk}, format='json')
    assert r.status_code == 400
    record.refresh_from_db()
    assert record.patient_id != other_patient.pk


def test_record_visibility(client_for, record, patient, other_patient, doctor_b, admin_a, admin_b):
    assert client_for(patient).get(f'/api/records/{record.pk}').status_code == 200
    assert client_for(admin_a).get(f'/api/records/{record.pk}').status_code == 200
    for outsider in (other_patient, doctor_b, admin_b):
        assert client_for(outsider).get(f'/api/records/{record.pk}').status_code == 403
    assert client_for(admin_a).patch(f'/api/records/{record.pk}', {'doctorNotes': 'x'},
                                     format='json').status_code == 403


def test_record_listing_is_scoped(client_for, record, patient, other_patient, doctor_a):
    MedicalRecord.objects.create(patient=other_patient, doctor=doctor_a, chief_complaint='Cough')
    r = client_for(patient).get('/api/records', {'patientId': other_patient.pk})
    assert [x['id'] for x in r.data['records']] == [record.pk]
    r = client_for(doctor_a).get('/api/records', {'search': 'cough'})
    assert r.data['pagination']['total'] == 1


def test_author_deletes_record(client_for, doctor_a, record):
    r = client_for(doctor_a).delete(f'/api/records/{record.pk}')
    assert r.status_code == 200
    assert not MedicalRecord.objects.filter(pk=record.pk).exists()


def test_only_author_deletes_record(client_for, record, patient, doctor_b, admin_a):
    for other in (patient, doctor_b, admin_a):
        assert client_for(other).delete(f'/api/records/{record.pk}').status_code == 403
    assert MedicalRecord.objects.filter(pk=record.pk).exists()
