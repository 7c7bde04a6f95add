from rest_framework import serializers

from referrals.models import Referral


class ReferralClinicalSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000)
    priority = serializers.ChoiceField(choices=Referral.PRIORITY_CHOICES, required=False)
    specialty = serializers.CharField(max_length=120)
    chiefComplaint = serializers.CharField(source='chief_complaint', max_length=500)
    historyOfPresentIllness = serializers.CharField(source='history_of_present_illness', required=False,
                                                    allow_blank=True, max_length=2000)
    physicalExamination = serializers.CharField(source='physical_examination', required=False,
                                                allow_blank=True, max_length=2000)
    vitalSigns = serializers.JSONField(source='vital_signs', required=False)
    diagnosis = serializers.JSONField(required=False)
    treatmentGiven = serializers.CharField(source='treatment_given', required=False, allow_blank=True, max_length=1000)
    medications = serializers.JSONField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class ReferralCreateSerializer(ReferralClinicalSerializer):
    patientId = serializers.IntegerField(source='patient_id')
    receivingHospitalId = serializers.IntegerField(source='receiving_hospital_id')
    receivingDoctorId = serializers.IntegerField(source='receiving_doctor_id', required=False, allow_null=True)
    referringDoctorId = serializers.IntegerField(source='referring_doctor_id', required=False, allow_null=True)


class ReferralUpdateSerializer(ReferralClinicalSerializer):
    """Use with ``partial=True``; only the keys sent reach the service."""
    receivingHospitalId = serializers.IntegerField(source='receiving_hospital_id', required=False)
    receivingDoctorId = serializers.IntegerField(source='receiving_doctor_id', required=False, allow_null=True)


class ReferralStatusSerializer(serializers.Serializer):
    # validated against the lifecycle by the service, after the access check order is applied
    status = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class ReferralMessageSerializer(serializers.Serializer):
    message = serializers.CharField(allow_blank=True, trim_whitespace=False)


class ReferralListQuerySerializer(serializers.Serializer):
    status = serializers.CharField(required=False)
    priority = serializers.CharField(required=False)
    specialty = serializers.CharField(required=False, allow_blank=True)
    patientId = serializers.IntegerField(source='patient_id', required=False)
    hospitalId = serializers.IntegerField(source='hospital_id', required=False)
    doctorId = serializers.IntegerField(source='doctor_id', required=False)
    direction = serializers.ChoiceField(choices=['all', 'sent', 'received'], required=False)
    search = serializers.CharField(required=False, allow_blank=True)
    page = serializers.IntegerField(required=False, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1)
