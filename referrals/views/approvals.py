"""
Approval queue endpoints.

The super admin decides on hospitals and every non-auto-approved account;
a hospital admin decides on hospital-practice doctors of their hospital.
Authority is checked per object by the approval service.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from ..permissions import IsHospitalAdminOrSuper, IsSuperAdmin
from ..serializers.approvals import ApproveSerializer, RejectSerializer
from ..services import approvals
from ..services.accounts import format_account
from ..services.common import paginate
from ..services.hospitals import format_hospital


def _page(request, qs, fmt, key):
    items, pagination = paginate(qs, request.query_params.get('page'), request.query_params.get('limit'))
    return Response({'ok': True, key: [fmt(o) for o in items], 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsHospitalAdminOrSuper])
def pending_accounts(request):
    qs = approvals.pending_accounts(request.user, role=request.query_params.get('role') or None)
    return _page(request, qs, format_account, 'users')


@api_view(['GET'])
@permission_classes([IsHospitalAdminOrSuper])
def pending_doctors(request):
    return _page(request, approvals.pending_doctors(request.user), format_account, 'doctors')


@api_view(['GET'])
@permission_classes([IsSuperAdmin])
def pending_hospitals(request):
    return _page(request, approvals.pending_hospitals(request.user), format_hospital, 'hospitals')


@api_view(['POST'])
@permission_classes([IsHospitalAdminOrSuper])
def approve_account(request, pk: int):
    s = ApproveSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = approvals.approve_account(request.user, pk, s.validated_data.get('message'))
    return Response({'ok': True, 'user': format_account(user)})


@api_view(['POST'])
@permission_classes([IsHospitalAdminOrSuper])
def reject_account(request, pk: int):
    s = RejectSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = approvals.reject_account(request.user, pk, s.validated_data.get('reason'))
    return Response({'ok': True, 'user': format_account(user)})


@api_view(['POST'])
@permission_classes([IsSuperAdmin])
def approve_hospital(request, pk: int):
    s = ApproveSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    hospital = approvals.approve_hospital(request.user, pk, s.validated_data.get('message'))
    return Response({'ok': True, 'hospital': format_hospital(hospital)})


@api_view(['POST'])
@permission_classes([IsSuperAdmin])
def reject_hospital(request, pk: int):
    s = RejectSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    hospital = approvals.reject_hospital(request.user, pk, s.validated_data.get('reason'))
    return Response({'ok': True, 'hospital': format_hospital(hospital)})


@api_view(['GET'])
@permission_classes([IsSuperAdmin])
def approval_stats(request):
    return Response({'ok': True, 'stats': approvals.approval_stats(request.user)})
