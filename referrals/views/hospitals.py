"""
Hospital endpoints.

``register`` and ``approved`` are public; the rest need an approved
account.  Deleting a hospital that still has accounts requires
``deleteUsers=true``.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from ..permissions import IsSuperAdmin
from ..serializers.hospitals import (
    HospitalCreateSerializer,
    HospitalDeleteSerializer,
    HospitalListQuerySerializer,
    HospitalSerializer,
    HospitalUpdateSerializer,
)
from ..services import hospitals
from ..throttling import RegisterRateThrottle


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([RegisterRateThrottle])
def register_hospital(request):
    """Public hospital registration; the hospital starts pending."""
    s = HospitalSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    hospital = hospitals.create_hospital(s.validated_data)
    return Response({'ok': True, 'hospital': hospitals.format_hospital(hospital)}, status=201)


@api_view(['GET'])
@permission_classes([AllowAny])
def approved_hospitals(request):
    return Response({'ok': True, 'hospitals': hospitals.approved_hospitals()})


@api_view(['GET', 'POST'])
@permission_classes([IsSuperAdmin])
def hospital_list(request):
    if request.method == 'POST':
        s = HospitalCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = dict(s.validated_data)
        admin = data.pop('admin', None)
        hospital = hospitals.create_hospital(data, actor=request.user, admin=admin)
        return Response({'ok': True, 'hospital': hospitals.format_hospital(hospital)}, status=201)

    q = HospitalListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = hospitals.list_hospitals(request.user, **q.validated_data)
    return Response({'ok': True, 'hospitals': items, 'pagination': pagination})


@api_view(['GET', 'PATCH', 'DELETE'])
def hospital_detail(request, pk: int):
    if request.method == 'PATCH':
        s = HospitalUpdateSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        hospital = hospitals.update_hospital(request.user, pk, s.validated_data)
        return Response({'ok': True, 'hospital': hospitals.format_hospital(hospital)})
    if request.method == 'DELETE':
        s = HospitalDeleteSerializer(data={**request.query_params.dict(), **request.data})
        s.is_valid(raise_exception=True)
        result = hospitals.delete_hospital(request.user, pk, delete_users=s.validated_data['delete_users'])
        return Response({'ok': True, **result})
    return Response({'ok': True, 'hospital': hospitals.format_hospital(hospitals.get_hospital(request.user, pk))})


@api_view(['GET'])
def hospital_overview(request, pk: int):
    return Response({'ok': True, 'overview': hospitals.hospital_overview(request.user, pk)})
