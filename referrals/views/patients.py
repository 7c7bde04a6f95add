"""
Patient directory (``/api/patients``) and per-patient reads.

Listing and creation are for staff; the per-patient endpoints are open to
the patient themself and to staff who can see that patient.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from ..permissions import IsStaffRole
from ..serializers.accounts import PeriodQuerySerializer
from ..serializers.patients import PatientCreateSerializer, PatientListQuerySerializer
from ..services import patients


@api_view(['GET', 'POST'])
@permission_classes([IsStaffRole])
def patient_list(request):
    if request.method == 'POST':
        s = PatientCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        patient = patients.create_patient(request.user, s.validated_data)
        return Response({'ok': True, 'patient': patients.format_patient(patient)}, status=201)

    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination, stats = patients.list_patients(request.user, **q.validated_data)
    return Response({'ok': True, 'patients': items, 'pagination': pagination, 'stats': stats})


@api_view(['GET'])
def patient_detail(request, pk: int):
    return Response({'ok': True, 'patient': patients.format_patient(patients.get_patient(request.user, pk))})


@api_view(['GET'])
def patient_profile(request, pk: int):
    return Response({'ok': True, 'profile': patients.patient_profile(request.user, pk)})


@api_view(['GET'])
def patient_referrals(request, pk: int):
    q = PeriodQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    items, pagination = patients.patient_referrals(request.user, pk, status=v.get('status'),
                                                   page=v.get('page'), limit=v.get('limit'))
    return Response({'ok': True, 'referrals': items, 'pagination': pagination})


@api_view(['GET'])
def patient_medical_history(request, pk: int):
    return Response({'ok': True, 'history': patients.patient_medical_history(request.user, pk)})
