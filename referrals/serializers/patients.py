from rest_framework import serializers

from referrals.serializers.auth import ProfileFieldsMixin


class PatientCreateSerializer(ProfileFieldsMixin):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, required=False)
    hospitalId = serializers.IntegerField(source='hospital_id', required=False, allow_null=True)


class PatientListQuerySerializer(serializers.Serializer):
    status = serializers.CharField(required=False)
    hospitalId = serializers.IntegerField(source='hospital_id', required=False)
    search = serializers.CharField(required=False, allow_blank=True)
    page = serializers.IntegerField(required=False, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1)
