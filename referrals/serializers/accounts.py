from rest_framework import serializers

from referrals.models import ROLE_CHOICES
from referrals.serializers.auth import NewAccountSerializer, ProfileFieldsMixin


class AccountCreateSerializer(NewAccountSerializer):
    role = serializers.ChoiceField(choices=ROLE_CHOICES)
    # patients created by staff get a generated password
    password = serializers.CharField(write_only=True, required=False)


class DoctorCreateSerializer(NewAccountSerializer):
    pass


class AccountUpdateSerializer(ProfileFieldsMixin):
    # accepted so the service can refuse a role change explicitly
    role = serializers.CharField(required=False)


class AccountListQuerySerializer(serializers.Serializer):
    role = serializers.CharField(required=False)
    status = serializers.CharField(required=False)
    hospitalId = serializers.IntegerField(source='hospital_id', required=False)
    search = serializers.CharField(required=False, allow_blank=True)
    page = serializers.IntegerField(required=False, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1)


class DoctorListQuerySerializer(serializers.Serializer):
    status = serializers.CharField(required=False)
    specialization = serializers.CharField(required=False, allow_blank=True)
    hospitalId = serializers.IntegerField(source='hospital_id', required=False)
    practiceType = serializers.CharField(source='practice_type', required=False)
    search = serializers.CharField(required=False, allow_blank=True)
    page = serializers.IntegerField(required=False, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1)


class PeriodQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, min_value=1, max_value=365)
    status = serializers.CharField(required=False)
    page = serializers.IntegerField(required=False, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1)
