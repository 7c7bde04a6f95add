from rest_framework import serializers

from referrals.models import PRACTICE_CHOICES, ROLE_DOCTOR, ROLE_HOSPITAL, ROLE_PATIENT
from referrals.services.common import plain_text


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField()

    def validate_email(self, v):
        return (v or '').strip().lower()

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('Password is required')
        return v


class RefreshSerializer(serializers.Serializer):
    refresh = serializers.CharField()


class ChangePasswordSerializer(serializers.Serializer):
    currentPassword = serializers.CharField(source='current_password', write_only=True)
    newPassword = serializers.CharField(source='new_password', write_only=True)
    confirmPassword = serializers.CharField(source='confirm_password', write_only=True)

    def validate(self, attrs):
        if attrs['new_password'] != attrs['confirm_password']:
            raise serializers.ValidationError({'confirmPassword': 'Passwords do not match'})
        return attrs


class ClinicSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    address = serializers.JSONField(required=False)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    email = serializers.EmailField(required=False, allow_blank=True)
    website = serializers.URLField(required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class ProfileFieldsMixin(serializers.Serializer):
    """camelCase profile fields mapped onto model attribute names."""
    firstName = serializers.CharField(source='first_name', required=False, allow_blank=True, max_length=150)
    lastName = serializers.CharField(source='last_name', required=False, allow_blank=True, max_length=150)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    licenseNumber = serializers.CharField(source='license_number', required=False, allow_blank=True, max_length=64)
    specialization = serializers.CharField(required=False, allow_blank=True, max_length=120)
    yearsOfExperience = serializers.IntegerField(source='years_of_experience', required=False, allow_null=True,
                                                 min_value=0, max_value=80)
    qualification = serializers.CharField(required=False, allow_blank=True, max_length=200)
    department = serializers.CharField(required=False, allow_blank=True, max_length=120)
    position = serializers.CharField(required=False, allow_blank=True, max_length=120)
    dateOfBirth = serializers.DateField(source='date_of_birth', required=False, allow_null=True)
    gender = serializers.CharField(required=False, allow_blank=True, max_length=10)
    emergencyContact = serializers.CharField(source='emergency_contact', required=False, allow_blank=True, max_length=120)
    emergencyPhone = serializers.CharField(source='emergency_phone', required=False, allow_blank=True, max_length=32)
    medicalHistory = serializers.JSONField(source='medical_history', required=False)
    adminLevel = serializers.CharField(source='admin_level', required=False, allow_blank=True, max_length=20)
    organization = serializers.CharField(required=False, allow_blank=True, max_length=200)

    def validate_firstName(self, v):
        return plain_text(v, unescape=True)

    def validate_lastName(self, v):
        return plain_text(v, unescape=True)


class NewAccountSerializer(ProfileFieldsMixin):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)
    practiceType = serializers.ChoiceField(source='practice_type', choices=PRACTICE_CHOICES, required=False)
    hospitalId = serializers.IntegerField(source='hospital_id', required=False, allow_null=True)
    clinic = ClinicSerializer(required=False)


class RegisterSerializer(NewAccountSerializer):
    role = serializers.ChoiceField(choices=[ROLE_HOSPITAL, ROLE_DOCTOR, ROLE_PATIENT])
