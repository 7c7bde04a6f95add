"""
Authentication views: registration, login, token refresh, logout, password
change and the current-account endpoint.

Tokens are simplejwt access/refresh pairs.  ``me``, logout and password
change are reachable by pending and rejected accounts so the front-end can
show why the rest of the API is closed to them; every other authenticated
endpoint is gated by :class:`referrals.permissions.IsUsableAccount`.
"""
from __future__ import annotations

import logging

from django.contrib.auth import authenticate
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.tokens import RefreshToken

from .exceptions import AccessDenied, InvalidArgument
from .permissions import USABILITY_MESSAGES
from .serializers.auth import ChangePasswordSerializer, LoginSerializer, RefreshSerializer, RegisterSerializer
from .services.accounts import change_password, create_account, format_account
from .services.audit import log_action
from .throttling import LoginRateThrottle, RegisterRateThrottle
from .workflow import usability

logger = logging.getLogger(__name__)


def _token_payload(user) -> dict:
    refresh = RefreshToken.for_user(user)
    return {'access': str(refresh.access_token), 'refresh': str(refresh)}


def _account_state(user) -> dict:
    ok, reason = usability(user)
    return {'usable': ok, 'reason': reason, 'message': USABILITY_MESSAGES.get(reason) if reason else None}


# ---------------------------------------------------------------------
# Registration and login
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([RegisterRateThrottle])
def register_view(request):
    """Public sign-up for hospital admins, doctors and patients.

    Patients are usable immediately; other roles wait for approval but
    still receive tokens so they can poll ``/api/auth/me``.
    """
    s = RegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = create_account(s.validated_data, actor=None)
    return Response({
        'ok': True,
        'user': format_account(user),
        'tokens': _token_payload(user),
        'account': _account_state(user),
    }, status=201)


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([LoginRateThrottle])
def login_view(request):
    """Email/password login; role is never taken from the request."""
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    email = s.validated_data['email']
    ip = request.META.get('REMOTE_ADDR')

    # ModelBackend refuses inactive users, so they fall into the same branch
    user = authenticate(request, username=email, password=s.validated_data['password'])
    if not user:
        log_action(user=None, action='login', object_type='user',
                   detail={'result': 'fail', 'email': email, 'ip': ip})
        logger.info('Failed login for %s from %s', email, ip)
        raise InvalidArgument('Invalid email or password', code='invalid_credentials')

    log_action(user=user, action='login', object_type='user', object_id=user.id,
               detail={'result': 'ok', 'ip': ip})
    return Response({
        'ok': True,
        'user': format_account(user),
        'tokens': _token_payload(user),
        'account': _account_state(user),
    })


# ---------------------------------------------------------------------
# JWT: refresh & logout
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
def refresh_view(request):
    """Return a new access token (and rotated refresh token) from a refresh token."""
    s = TokenRefreshSerializer(data=request.data)
    try:
        s.is_valid(raise_exception=True)
    except TokenError as e:
        raise InvalidToken(e.args[0])
    return Response({'ok': True, 'tokens': s.validated_data})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """Blacklist the given refresh token of the current user."""
    s = RefreshSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        token = RefreshToken(s.validated_data['refresh'])
    except TokenError as e:
        raise InvalidArgument(str(e), code='invalid_token')
    if str(token.get('user_id')) != str(request.user.id):
        raise AccessDenied('Token belongs to another account')
    token.blacklist()
    log_action(user=request.user, action='logout', object_type='user', object_id=request.user.id)
    return Response({'ok': True})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me_view(request):
    user = request.user
    return Response({'ok': True, 'user': format_account(user), 'account': _account_state(user)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password_view(request):
    """Change the own password; every earlier refresh token stops working.

    The response carries a fresh token pair so the caller stays signed in.
    """
    s = ChangePasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    change_password(request.user, v['current_password'], v['new_password'])
    return Response({'ok': True, 'tokens': _token_payload(request.user)})
