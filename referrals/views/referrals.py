"""
Referral endpoints.

Status changes have their own endpoint so every change leaves exactly
one timeline entry; a plain ``PATCH`` on the referral cannot touch
``status``.
"""
from __future__ import annotations

from rest_framework.decorators import api_view
from rest_framework.response import Response

from ..exceptions import InvalidArgument
from ..serializers.referrals import (
    ReferralCreateSerializer,
    ReferralListQuerySerializer,
    ReferralMessageSerializer,
    ReferralStatusSerializer,
    ReferralUpdateSerializer,
)
from ..services import referrals


@api_view(['GET', 'POST'])
def referral_list(request):
    if request.method == 'POST':
        s = ReferralCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        referral = referrals.create_referral(request.user, s.validated_data)
        return Response({'ok': True, 'referral': referrals.format_referral(referral, detail=True)}, status=201)

    q = ReferralListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination, stats = referrals.list_referrals(request.user, **q.validated_data)
    return Response({'ok': True, 'referrals': items, 'pagination': pagination, 'stats': stats})


@api_view(['GET', 'PATCH'])
def referral_detail(request, pk: int):
    if request.method == 'PATCH':
        if 'status' in request.data:
            raise InvalidArgument('Use the status endpoint to change referral status')
        s = ReferralUpdateSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        referrals.update_referral(request.user, pk, s.validated_data)
    referral = referrals.get_referral(request.user, pk)
    return Response({'ok': True, 'referral': referrals.format_referral(referral, detail=True)})


@api_view(['PATCH', 'POST'])
def referral_status(request, pk: int):
    s = ReferralStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    referral, entry = referrals.set_referral_status(request.user, pk, v.get('status'), v.get('notes'))
    return Response({
        'ok': True,
        'referral': referrals.format_referral(referral),
        'entry': referrals.format_timeline_entry(entry),
    })


@api_view(['GET', 'POST'])
def referral_messages(request, pk: int):
    if request.method == 'POST':
        s = ReferralMessageSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        msg = referrals.add_message(request.user, pk, s.validated_data['message'])
        return Response({'ok': True, 'message': referrals.format_message(msg)}, status=201)
    return Response({'ok': True, 'messages': referrals.list_messages(request.user, pk)})


@api_view(['POST'])
def referral_messages_read(request, pk: int):
    return Response({'ok': True, 'updated': referrals.mark_messages_read(request.user, pk)})
