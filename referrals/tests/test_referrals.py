import threading

import pytest
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core import mail
from django.db import connection

from referrals.exceptions import AccessDenied, InvalidArgument, InvalidTransition, PreconditionFailed
from referrals.models import (
    APPROVAL_PENDING,
    PRACTICE_HOSPITAL,
    ROLE_DOCTOR,
    ROLE_HOSPITAL,
    Referral,
    ReferralTimelineEntry,
)
from referrals.services import referrals as referral_service
from referrals.services.notifications import hospital_group

pytestmark = pytest.mark.django_db

CLINICAL = {
    'reason': 'Suspected arrhythmia, needs specialist review',
    'specialty': 'Cardiology',
    'chiefComplaint': 'Palpitations',
    'priority': 'high',
}


@pytest.fixture
def referral(make_referral, patient, doctor_a, hospital_b, doctor_b):
    return make_referral(patient=patient, doctor=doctor_a, receiving_hospital=hospital_b, receiving_doctor=doctor_b)


# ---------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------
def test_doctor_creates_referral_with_created_entry(client_for, doctor_a, patient, hospital_a, hospital_b):
    r = client_for(doctor_a).post('/api/referrals', {
        **CLINICAL, 'patientId': patient.pk, 'receivingHospitalId': hospital_b.pk,
    }, format='json')
    assert r.status_code == 201
    body = r.data['referral']
    assert body['referralId'].startswith('REF')
    assert body['referringDoctor']['id'] == doctor_a.id
    assert body['referringHospital']['id'] == hospital_a.pk
    assert body['status'] == Referral.STATUS_PENDING
    assert [e['action'] for e in body['timeline']] == [ReferralTimelineEntry.ACTION_CREATED]


def test_clinic_doctor_refers_from_clinic(client_for, clinic_doctor, patient, hospital_b):
    r = client_for(clinic_doctor).post('/api/referrals', {
        **CLINICAL, 'patientId': patient.pk, 'receivingHospitalId': hospital_b.pk,
    }, format='json')
    assert r.status_code == 201
    assert r.data['referral']['referringClinic']['id'] == clinic_doctor.clinic_id
    assert r.data['referral']['referringHospital'] is None


def test_referral_creation_notifies_and_broadcasts(client_for, django_capture_on_commit_callbacks,
                                                   doctor_a, patient, hospital_b):
    layer = get_channel_layer()
    channel = async_to_sync(layer.new_channel)()
    async_to_sync(layer.group_add)(hospital_group(hospital_b.pk), channel)

    with django_capture_on_commit_callbacks(execute=True):
        r = client_for(doctor_a).post('/api/referrals', {
            **CLINICAL, 'patientId': patient.pk, 'receivingHospitalId': hospital_b.pk,
        }, format='json')
    assert r.status_code == 201
    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == [hospital_b.email]

    event = async_to_sync(layer.receive)(channel)
    assert event['type'] == 'referral.event'
    assert event['event'] == 'referral.created'
    assert event['payload']['referralId'] == r.data['referral']['referralId']


def test_patient_must_exist(client_for, doctor_a, doctor_b, hospital_b):
    r = client_for(doctor_a).post('/api/referrals', {
        **CLINICAL, 'patientId': doctor_b.pk, 'receivingHospitalId': hospital_b.pk,
    }, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_argument'


def test_patient_cannot_create_referral(client_for, patient, hospital_b):
    r = client_for(patient).post('/api/referrals', {
        **CLINICAL, 'patientId': patient.pk, 'receivingHospitalId': hospital_b.pk,
    }, format='json')
    assert r.status_code == 403


def test_hospital_admin_without_doctor_cannot_refer(admin_a, patient, hospital_b, make_user, hospital_a):
    make_user(ROLE_DOCTOR, practice_type=PRACTICE_HOSPITAL, hospital=hospital_a, approval=APPROVAL_PENDING)
    with pytest.raises(PreconditionFailed):
        referral_service.create_referral(admin_a, {
            'patient_id': patient.pk, 'receiving_hospital_id': hospital_b.pk,
            'reason': CLINICAL['reason'], 'specialty': 'Cardiology', 'chief_complaint': 'Palpitations',
        })
    assert not Referral.objects.exists()


def test_hospital_admin_defaults_to_the_approved_doctor(admin_a, doctor_a, patient, hospital_b):
    referral = referral_service.create_referral(admin_a, {
        'patient_id': patient.pk, 'receiving_hospital_id': hospital_b.pk,
        'reason': CLINICAL['reason'], 'specialty': 'Cardiology', 'chief_complaint': 'Palpitations',
    })
    assert referral.referring_doctor_id == doctor_a.id
    assert referral.referring_hospital_id == admin_a.hospital_id


def test_hospital_admin_cannot_name_foreign_doctor(admin_a, doctor_b, patient, hospital_b):
    with pytest.raises(InvalidArgument):
        referral_service.create_referral(admin_a, {
            'patient_id': patient.pk, 'receiving_hospital_id': hospital_b.pk, 'referring_doctor_id': doctor_b.pk,
            'reason': CLINICAL['reason'], 'specialty': 'Cardiology', 'chief_complaint': 'Palpitations',
        })


def test_referral_ids_are_unique(referral, make_referral, patient, doctor_a, hospital_b):
    other = make_referral(patient=patient, doctor=doctor_a, receiving_hospital=hospital_b)
    assert referral.referral_id != other.referral_id


# ---------------------------------------------------------------------
# Status lifecycle
# ---------------------------------------------------------------------
def test_each_status_change_appends_one_entry(client_for, admin_b, referral):
    client = client_for(admin_b)
    for status in ('accepted', 'in_progress', 'completed'):
        r = client.patch(f'/api/referrals/{referral.pk}/status', {'status': status}, format='json')
        assert r.status_code == 200
        assert r.data['entry']['action'] == status
    referral.refresh_from_db()
    assert referral.status == Referral.STATUS_COMPLETED
    assert referral.timeline.count() == 3 + 1
    assert referral.timeline.last().notes == 'Status changed to completed'


def test_second_receiver_decision_is_appended(make_user, admin_b, hospital_b, referral):
    second_admin = make_user(ROLE_HOSPITAL, hospital=hospital_b)
    referral_service.set_referral_status(admin_b, referral.pk, 'accepted', 'Bed available')
    referral_service.set_referral_status(second_admin, referral.pk, 'rejected', 'No capacity this week')
    referral.refresh_from_db()
    actions = list(referral.timeline.values_list('action', flat=True))
    assert actions == ['created', 'accepted', 'rejected']
    assert referral.status in ('accepted', 'rejected')


@pytest.mark.django_db(transaction=True)
def test_concurrent_status_changes_keep_both_entries(make_user, admin_b, hospital_b, referral):
    second_admin = make_user(ROLE_HOSPITAL, hospital=hospital_b)
    barrier = threading.Barrier(2)
    errors = []

    def change(actor, status):
        try:
            barrier.wait(timeout=5)
            referral_service.set_referral_status(actor, referral.pk, status)
        except Exception as exc:
            errors.append(exc)
        finally:
            connection.close()

    threads = [
        threading.Thread(target=change, args=(admin_b, 'accepted')),
        threading.Thread(target=change, args=(second_admin, 'rejected')),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert errors == []
    referral.refresh_from_db()
    actions = sorted(referral.timeline.exclude(action='created').values_list('action', flat=True))
    assert actions == ['accepted', 'rejected']
    assert referral.status in ('accepted', 'rejected')


def test_referring_side_cannot_set_status(client_for, doctor_a, admin_a, referral):
    for user in (doctor_a, admin_a):
        r = client_for(user).patch(f'/api/referrals/{referral.pk}/status', {'status': 'accepted'}, format='json')
        assert r.status_code == 403
    assert referral.timeline.count() == 1


def test_unknown_status_is_invalid(client_for, doctor_b, referral):
    r = client_for(doctor_b).patch(f'/api/referrals/{referral.pk}/status', {'status': 'teleported'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_argument'


def test_permissive_transitions_by_default(admin_b, referral):
    referral_service.set_referral_status(admin_b, referral.pk, 'completed')
    referral_service.set_referral_status(admin_b, referral.pk, 'pending')
    referral.refresh_from_db()
    assert referral.status == Referral.STATUS_PENDING


def test_strict_transitions(settings, admin_b, referral):
    settings.REFERRAL_STRICT_TRANSITIONS = True
    with pytest.raises(InvalidTransition):
        referral_service.set_referral_status(admin_b, referral.pk, 'completed')
    referral_service.set_referral_status(admin_b, referral.pk, 'accepted')
    referral.refresh_from_db()
    assert referral.status == Referral.STATUS_ACCEPTED
    assert referral.timeline.count() == 2


def test_status_cannot_be_patched_directly(client_for, admin_b, referral):
    r = client_for(admin_b).patch(f'/api/referrals/{referral.pk}', {'status': 'completed'}, format='json')
    assert r.status_code == 400
    referral.refresh_from_db()
    assert referral.status == Referral.STATUS_PENDING


# ---------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------
def test_receiving_doctor_must_belong_to_receiving_hospital(admin_a, patient, doctor_a, hospital_b, make_hospital,
                                                            make_user):
    hospital_c = make_hospital('Hospital C')
    doctor_c = make_user(ROLE_DOCTOR, practice_type=PRACTICE_HOSPITAL, hospital=hospital_c)
    referral = referral_service.create_referral(admin_a, {
        'patient_id': patient.pk, 'receiving_hospital_id': hospital_b.pk,
        'reason': CLINICAL['reason'], 'specialty': 'Cardiology', 'chief_complaint': 'Palpitations',
    })
    with pytest.raises(InvalidArgument, match='Receiving doctor must belong to receiving hospital'):
        referral_service.update_referral(admin_a, referral.pk, {'receiving_doctor_id': doctor_c.pk})
    referral.refresh_from_db()
    assert referral.receiving_doctor_id is None


def test_moving_hospital_clears_mismatched_doctor(admin_a, referral, make_hospital):
    hospital_c = make_hospital('Hospital C')
    referral_service.update_referral(admin_a, referral.pk, {'receiving_hospital_id': hospital_c.pk})
    referral.refresh_from_db()
    assert referral.receiving_hospital_id == hospital_c.pk
    assert referral.receiving_doctor_id is None


def test_doctor_updates_clinical_fields_only(client_for, doctor_a, hospital_a, referral):
    client = client_for(doctor_a)
    r = client.patch(f'/api/referrals/{referral.pk}', {'notes': 'ECG attached'}, format='json')
    assert r.status_code == 200
    assert r.data['referral']['notes'] == 'ECG attached'
    r = client.patch(f'/api/referrals/{referral.pk}', {'receivingHospitalId': hospital_a.pk}, format='json')
    assert r.status_code == 403


# ---------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------
def test_uninvolved_doctor_is_denied(client_for, make_user, hospital_b, referral):
    stranger = make_user(ROLE_DOCTOR, practice_type=PRACTICE_HOSPITAL, hospital=hospital_b)
    r = client_for(stranger).get(f'/api/referrals/{referral.pk}')
    assert r.status_code == 403
    assert r.data['error']['code'] == 'access_denied'


def test_missing_referral_is_not_found_only_for_super_admin(client_for, super_admin, doctor_a):
    assert client_for(super_admin).get('/api/referrals/987654').status_code == 404
    assert client_for(doctor_a).get('/api/referrals/987654').status_code == 403


def test_patient_listing_is_pinned_to_self(client_for, make_referral, referral, other_patient, doctor_a,
                                           hospital_b, patient):
    make_referral(patient=other_patient, doctor=doctor_a, receiving_hospital=hospital_b)
    r = client_for(patient).get('/api/referrals', {'patientId': other_patient.pk, 'status': 'all'})
    assert r.status_code == 200
    assert [x['id'] for x in r.data['referrals']] == [referral.pk]
    assert r.data['stats']['total'] == 1


def test_search_does_not_widen_scope(client_for, make_user, hospital_b, referral):
    stranger = make_user(ROLE_DOCTOR, practice_type=PRACTICE_HOSPITAL, hospital=hospital_b)
    r = client_for(stranger).get('/api/referrals', {'search': referral.referral_id})
    assert r.status_code == 200
    assert r.data['referrals'] == []


def test_direction_filter(client_for, admin_b, referral):
    client = client_for(admin_b)
    assert [x['id'] for x in client.get('/api/referrals', {'direction': 'received'}).data['referrals']] == [referral.pk]
    assert client.get('/api/referrals', {'direction': 'sent'}).data['referrals'] == []


# ---------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------
def test_message_thread(client_for, doctor_a, doctor_b, referral):
    r = client_for(doctor_a).post(f'/api/referrals/{referral.pk}/messages',
                                  {'message': 'Please see <b>ECG</b>'}, format='json')
    assert r.status_code == 201
    assert r.data['message']['message'] == 'Please see ECG'

    receiver = client_for(doctor_b)
    assert receiver.post(f'/api/referrals/{referral.pk}/messages/read').data['updated'] == 1
    thread = receiver.get(f'/api/referrals/{referral.pk}/messages').data['messages']
    assert len(thread) == 1 and thread[0]['isRead'] is True


def test_empty_message_rejected(client_for, doctor_a, referral):
    r = client_for(doctor_a).post(f'/api/referrals/{referral.pk}/messages', {'message': '   '}, format='json')
    assert r.status_code == 400


def test_outsider_cannot_post_message(patient, other_patient, referral):
    with pytest.raises(AccessDenied):
        referral_service.add_message(other_patient, referral.pk, 'hello')


def test_patient_cannot_write_to_own_referral(client_for, doctor_a, patient, referral):
    client_for(doctor_a).post(f'/api/referrals/{referral.pk}/messages', {'message': 'Results are in'}, format='json')
    client = client_for(patient)
    assert client.get(f'/api/referrals/{referral.pk}').status_code == 200
    r = client.post(f'/api/referrals/{referral.pk}/messages', {'message': 'patient note'}, format='json')
    assert r.status_code == 403
    assert client.post(f'/api/referrals/{referral.pk}/messages/read').status_code == 403
    assert referral.messages.filter(is_read=False).count() == 1


def test_message_markup_is_stripped(doctor_a, referral):
    msg = referral_service.add_message(doctor_a, referral.pk, '<a href="http://x.example">link</a> <strong>now</strong>')
    assert msg.message == 'link now'
