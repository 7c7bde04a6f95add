from rest_framework import serializers

from referrals.models import MedicalRecord


class RecordSerializer(serializers.Serializer):
    visitDate = serializers.DateTimeField(source='visit_date', required=False)
    visitType = serializers.ChoiceField(source='visit_type', choices=MedicalRecord.VISIT_TYPE_CHOICES, required=False)
    specialty = serializers.CharField(required=False, allow_blank=True, max_length=120)
    chiefComplaint = serializers.CharField(source='chief_complaint', max_length=500)
    diagnosis = serializers.JSONField(required=False)
    treatment = serializers.JSONField(required=False)
    medications = serializers.JSONField(required=False)
    labResults = serializers.JSONField(source='lab_results', required=False)
    doctorNotes = serializers.CharField(source='doctor_notes', required=False, allow_blank=True, max_length=2000)
    status = serializers.ChoiceField(choices=MedicalRecord.STATUS_CHOICES, required=False)


class RecordCreateSerializer(RecordSerializer):
    patientId = serializers.IntegerField(source='patient_id')
    referralId = serializers.IntegerField(source='referral_id', required=False, allow_null=True)


class RecordUpdateSerializer(RecordSerializer):
    """Use with ``partial=True``.  Ownership keys are accepted only to be refused."""
    patientId = serializers.IntegerField(source='patient_id', required=False)
    doctorId = serializers.IntegerField(source='doctor_id', required=False)
    hospitalId = serializers.IntegerField(source='hospital_id', required=False, allow_null=True)
    clinicId = serializers.IntegerField(source='clinic_id', required=False, allow_null=True)


class RecordListQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id', required=False)
    visitType = serializers.CharField(source='visit_type', required=False)
    status = serializers.CharField(required=False)
    search = serializers.CharField(required=False, allow_blank=True)
    page = serializers.IntegerField(required=False, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1)
