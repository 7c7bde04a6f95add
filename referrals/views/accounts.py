"""
Account management endpoints (``/api/users``).

Listing and lookups are scoped by :mod:`referrals.policy`; a hospital
admin sees the accounts of their own hospital plus approved doctors.
Creation here is the administrative path; public sign-up lives in
``referrals.auth_views``.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from ..permissions import IsHospitalAdminOrSuper
from ..serializers.accounts import AccountCreateSerializer, AccountListQuerySerializer, AccountUpdateSerializer
from ..services import accounts


@api_view(['GET', 'POST'])
def users(request):
    if request.method == 'POST':
        s = AccountCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        user = accounts.create_account(s.validated_data, actor=request.user)
        return Response({'ok': True, 'user': accounts.format_account(user)}, status=201)

    q = AccountListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = accounts.list_accounts(request.user, **q.validated_data)
    return Response({'ok': True, 'users': items, 'pagination': pagination})


@api_view(['GET', 'PATCH', 'DELETE'])
def user_detail(request, pk: int):
    if request.method == 'PATCH':
        s = AccountUpdateSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        user = accounts.update_account(request.user, pk, s.validated_data)
        return Response({'ok': True, 'user': accounts.format_account(user)})
    if request.method == 'DELETE':
        accounts.delete_account(request.user, pk)
        return Response({'ok': True})
    return Response({'ok': True, 'user': accounts.format_account(accounts.get_account(request.user, pk))})


@api_view(['POST'])
@permission_classes([IsHospitalAdminOrSuper])
def user_toggle_active(request, pk: int):
    user = accounts.toggle_account_active(request.user, pk)
    return Response({'ok': True, 'user': accounts.format_account(user)})


@api_view(['GET'])
@permission_classes([IsHospitalAdminOrSuper])
def user_stats(request):
    return Response({'ok': True, 'stats': accounts.account_stats(request.user)})
