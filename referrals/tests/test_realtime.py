import pytest
from asgiref.sync import async_to_sync
from channels.testing import WebsocketCommunicator
from rest_framework_simplejwt.tokens import AccessToken

from medinet.asgi import application
from referrals.models import APPROVAL_PENDING, PRACTICE_HOSPITAL, ROLE_DOCTOR
from referrals.realtime.consumers import CLOSE_NOT_USABLE, CLOSE_UNAUTHENTICATED

pytestmark = pytest.mark.django_db(transaction=True)


def _connect(path):
    async def run():
        communicator = WebsocketCommunicator(application, path)
        connected, code = await communicator.connect()
        message = None
        if connected:
            message = await communicator.receive_json_from()
            await communicator.disconnect()
        return connected, code, message
    return async_to_sync(run)()


def test_valid_token_joins_user_and_hospital_groups(doctor_a, hospital_a):
    token = AccessToken.for_user(doctor_a)
    connected, _, message = _connect(f'/ws/referrals/?token={token}')
    assert connected
    assert message == {'type': 'welcome', 'groups': [f'user.{doctor_a.id}', f'hospital.{hospital_a.pk}']}


def test_missing_token_is_refused():
    connected, code, _ = _connect('/ws/referrals/')
    assert not connected
    assert code == CLOSE_UNAUTHENTICATED


def test_garbage_token_is_refused():
    connected, code, _ = _connect('/ws/referrals/?token=not-a-jwt')
    assert not connected
    assert code == CLOSE_UNAUTHENTICATED


def test_pending_account_is_refused(make_user, hospital_a):
    doctor = make_user(ROLE_DOCTOR, practice_type=PRACTICE_HOSPITAL, hospital=hospital_a, approval=APPROVAL_PENDING)
    connected, code, _ = _connect(f'/ws/referrals/?token={AccessToken.for_user(doctor)}')
    assert not connected
    assert code == CLOSE_NOT_USABLE
