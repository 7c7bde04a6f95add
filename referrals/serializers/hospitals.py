from rest_framework import serializers

from referrals.models import Hospital
from referrals.services.common import plain_text


class HospitalAdminSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False)
    password = serializers.CharField(write_only=True)
    firstName = serializers.CharField(source='first_name', required=False, allow_blank=True, max_length=150)
    lastName = serializers.CharField(source='last_name', required=False, allow_blank=True, max_length=150)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    department = serializers.CharField(required=False, allow_blank=True, max_length=120)
    position = serializers.CharField(required=False, allow_blank=True, max_length=120)


class HospitalSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    email = serializers.EmailField()
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    address = serializers.JSONField(required=False)
    type = serializers.ChoiceField(choices=Hospital.TYPE_CHOICES, required=False)
    specialties = serializers.ListField(child=serializers.CharField(max_length=120), required=False)
    services = serializers.ListField(child=serializers.CharField(max_length=120), required=False)
    capacity = serializers.JSONField(required=False)
    website = serializers.URLField(required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True, max_length=1000)

    def validate_name(self, v):
        v = plain_text(v, unescape=True)
        if len(v) < 2:
            raise serializers.ValidationError('Hospital name must be at least 2 characters')
        return v


class HospitalCreateSerializer(HospitalSerializer):
    status = serializers.ChoiceField(choices=Hospital.STATUS_CHOICES, required=False)
    admin = HospitalAdminSerializer(required=False)


class HospitalUpdateSerializer(HospitalSerializer):
    status = serializers.ChoiceField(choices=Hospital.STATUS_CHOICES, required=False)
    isActive = serializers.BooleanField(source='is_active', required=False)


class HospitalListQuerySerializer(serializers.Serializer):
    status = serializers.CharField(required=False)
    search = serializers.CharField(required=False, allow_blank=True)
    page = serializers.IntegerField(required=False, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1)


class HospitalDeleteSerializer(serializers.Serializer):
    deleteUsers = serializers.BooleanField(source='delete_users', required=False, default=False)
