"""
Doctor directory and per-doctor views.

A doctor may read only their own patients, referrals and analytics; a
hospital admin may read those of doctors at their hospital.
"""
from __future__ import annotations

from rest_framework.decorators import api_view
from rest_framework.response import Response

from ..serializers.accounts import DoctorCreateSerializer, DoctorListQuerySerializer, PeriodQuerySerializer
from ..services import doctors
from ..services.accounts import format_account


@api_view(['GET', 'POST'])
def doctor_list(request):
    if request.method == 'POST':
        s = DoctorCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        doctor = doctors.create_doctor(request.user, s.validated_data)
        return Response({'ok': True, 'doctor': format_account(doctor)}, status=201)

    q = DoctorListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = doctors.list_doctors(request.user, **q.validated_data)
    return Response({'ok': True, 'doctors': items, 'pagination': pagination})


@api_view(['GET'])
def doctor_detail(request, pk: int):
    return Response({'ok': True, 'doctor': format_account(doctors.get_doctor(request.user, pk))})


@api_view(['GET'])
def doctor_patients(request, pk: int):
    return Response({'ok': True, 'patients': doctors.doctor_patients(request.user, pk)})


@api_view(['GET'])
def doctor_referrals(request, pk: int):
    q = PeriodQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    items, pagination = doctors.doctor_referrals(request.user, pk, status=v.get('status'),
                                                 page=v.get('page'), limit=v.get('limit'))
    return Response({'ok': True, 'referrals': items, 'pagination': pagination})


@api_view(['GET'])
def doctor_analytics(request, pk: int):
    q = PeriodQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    data = doctors.doctor_analytics(request.user, pk, days=q.validated_data.get('days', 30))
    return Response({'ok': True, 'analytics': data})
