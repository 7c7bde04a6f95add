"""
Database models for the referral network.

Accounts of every role share one user table; hospitals and independent
clinics are the two kinds of facility a doctor can practise from.  A
referral carries a clinical narrative from a referring doctor to a
receiving hospital, and keeps its status history and message thread as
append-only child rows so that concurrent writers never overwrite each
other's entries.
"""
from __future__ import annotations

import uuid
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.utils import timezone

from .exceptions import InvalidArgument


# ---------------------------------------------------------------------
# Shared vocabulary
# ---------------------------------------------------------------------
ROLE_SUPER_ADMIN = 'super_admin'
ROLE_HOSPITAL = 'hospital'
ROLE_DOCTOR = 'doctor'
ROLE_PATIENT = 'patient'

ROLE_CHOICES = [
    (ROLE_SUPER_ADMIN, 'Super Administrator'),
    (ROLE_HOSPITAL, 'Hospital Administrator'),
    (ROLE_DOCTOR, 'Doctor'),
    (ROLE_PATIENT, 'Patient'),
]

# Roles that never wait for a human approval
AUTO_APPROVED_ROLES = {ROLE_SUPER_ADMIN, ROLE_PATIENT}

APPROVAL_PENDING = 'pending'
APPROVAL_APPROVED = 'approved'
APPROVAL_REJECTED = 'rejected'

APPROVAL_CHOICES = [
    (APPROVAL_PENDING, 'Pending'),
    (APPROVAL_APPROVED, 'Approved'),
    (APPROVAL_REJECTED, 'Rejected'),
]

PRACTICE_OWN_CLINIC = 'own_clinic'
PRACTICE_HOSPITAL = 'hospital'

PRACTICE_CHOICES = [
    (PRACTICE_OWN_CLINIC, 'Own clinic'),
    (PRACTICE_HOSPITAL, 'Hospital'),
]


def _short_uid() -> str:
    return uuid.uuid4().hex[:12].upper()


def generate_referral_id() -> str:
    return f"REF{_short_uid()}"


def generate_record_id() -> str:
    return f"MR{_short_uid()}"


def default_referral_expiry():
    return timezone.now() + timedelta(days=getattr(settings, 'REFERRAL_EXPIRY_DAYS', 30))


# ---------------------------------------------------------------------
# Facilities
# ---------------------------------------------------------------------
class Hospital(models.Model):
    """A facility that receives referrals once a super admin approves it."""
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_SUSPENDED = 'suspended'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_SUSPENDED, 'Suspended'),
    ]
    TYPE_CHOICES = [
        ('public', 'Public'),
        ('private', 'Private'),
        ('non-profit', 'Non-profit'),
        ('government', 'Government'),
    ]

    name = models.CharField(max_length=200)
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=32, blank=True)
    address = models.JSONField(default=dict, blank=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='private')
    specialties = models.JSONField(default=list, blank=True)
    services = models.JSONField(default=list, blank=True)
    capacity = models.JSONField(default=dict, blank=True)
    website = models.URLField(blank=True)
    description = models.TextField(blank=True, max_length=1000)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    is_active = models.BooleanField(default=True)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def save(self, *args, **kwargs):
        self.email = (self.email or '').strip().lower()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} ({self.status})"


class Clinic(models.Model):
    """An independent practice owned by exactly one doctor."""
    name = models.CharField(max_length=200)
    address = models.JSONField(default=dict, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    website = models.URLField(blank=True)
    description = models.TextField(blank=True, max_length=1000)
    owner = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='owned_clinic')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


# ---------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------
class UserManager(BaseUserManager):
    """Manager for accounts that log in with their e-mail address."""

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError('The email must be set')
        email = self.normalize_email(email).strip().lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', ROLE_SUPER_ADMIN)
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    """Account of any role.

    ``role`` is fixed at creation; :meth:`save` refuses to persist a
    different role for an existing row.  Patients and super admins are
    approved on creation, every other account starts ``pending``.
    """
    username = None
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=32, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_PATIENT, db_index=True)
    approval_status = models.CharField(
        max_length=20, choices=APPROVAL_CHOICES, default=APPROVAL_PENDING, db_index=True
    )
    approved_by = models.ForeignKey(
        'self', null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.CharField(max_length=500, blank=True)

    practice_type = models.CharField(max_length=20, choices=PRACTICE_CHOICES, blank=True)
    hospital = models.ForeignKey(
        Hospital, null=True, blank=True, on_delete=models.SET_NULL, related_name='accounts'
    )
    clinic = models.ForeignKey(
        Clinic, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctors'
    )

    # doctor
    license_number = models.CharField(max_length=64, blank=True)
    specialization = models.CharField(max_length=120, blank=True)
    years_of_experience = models.PositiveIntegerField(null=True, blank=True)
    qualification = models.CharField(max_length=200, blank=True)
    # hospital administrator
    department = models.CharField(max_length=120, blank=True)
    position = models.CharField(max_length=120, blank=True)
    # patient
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=10, blank=True)
    emergency_contact = models.CharField(max_length=120, blank=True)
    emergency_phone = models.CharField(max_length=32, blank=True)
    medical_history = models.JSONField(default=list, blank=True)
    # super admin
    admin_level = models.CharField(max_length=20, blank=True)
    organization = models.CharField(max_length=200, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS: list[str] = []

    objects = UserManager()

    class Meta:
        ordering = ['-created_at', '-id']

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        if 'role' in field_names:
            instance._loaded_role = values[list(field_names).index('role')]
        return instance

    def save(self, *args, **kwargs):
        loaded_role = getattr(self, '_loaded_role', None)
        if not self._state.adding and loaded_role is not None and loaded_role != self.role:
            raise InvalidArgument('Account role cannot be changed')
        self.email = (self.email or '').strip().lower()
        if self._state.adding and self.role in AUTO_APPROVED_ROLES:
            self.approval_status = APPROVAL_APPROVED
        super().save(*args, **kwargs)
        self._loaded_role = self.role

    @property
    def full_name(self) -> str:
        return self.get_full_name() or self.email

    def __str__(self) -> str:
        return f"{self.email} ({self.role})"


# ---------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------
class Referral(models.Model):
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]
    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_REJECTED = 'rejected'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    referral_id = models.CharField(max_length=20, unique=True, default=generate_referral_id, editable=False)
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='referrals_as_patient'
    )
    referring_doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='referrals_sent'
    )
    referring_hospital = models.ForeignKey(
        Hospital, null=True, blank=True, on_delete=models.SET_NULL, related_name='referrals_sent'
    )
    referring_clinic = models.ForeignKey(
        Clinic, null=True, blank=True, on_delete=models.SET_NULL, related_name='referrals_sent'
    )
    receiving_doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL,
        related_name='referrals_received',
    )
    receiving_hospital = models.ForeignKey(
        Hospital, on_delete=models.PROTECT, related_name='referrals_received'
    )

    reason = models.TextField(max_length=1000)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium', db_index=True)
    specialty = models.CharField(max_length=120)
    chief_complaint = models.TextField(max_length=500)
    history_of_present_illness = models.TextField(blank=True, max_length=2000)
    physical_examination = models.TextField(blank=True, max_length=2000)
    vital_signs = models.JSONField(default=dict, blank=True)
    diagnosis = models.JSONField(default=dict, blank=True)
    treatment_given = models.TextField(blank=True, max_length=1000)
    medications = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    expires_at = models.DateTimeField(default=default_referral_expiry)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['receiving_hospital', 'status']),
            models.Index(fields=['referring_hospital', 'status']),
        ]

    @property
    def is_expired(self) -> bool:
        return bool(self.expires_at and self.expires_at < timezone.now())

    def __str__(self) -> str:
        return f"{self.referral_id} ({self.status})"


class ReferralTimelineEntry(models.Model):
    """One row per lifecycle event; rows are only ever inserted."""
    ACTION_CREATED = 'created'
    ACTION_CHOICES = [(ACTION_CREATED, 'Created')] + Referral.STATUS_CHOICES

    referral = models.ForeignKey(Referral, related_name='timeline', on_delete=models.CASCADE)
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    notes = models.TextField(blank=True)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['timestamp', 'id']

    def __str__(self) -> str:
        return f"{self.referral_id}: {self.action}"


class ReferralMessage(models.Model):
    referral = models.ForeignKey(Referral, related_name='messages', on_delete=models.CASCADE)
    sender = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='+')
    message = models.TextField(max_length=1000)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']


# ---------------------------------------------------------------------
# Medical records
# ---------------------------------------------------------------------
class MedicalRecord(models.Model):
    VISIT_TYPE_CHOICES = [
        ('consultation', 'Consultation'),
        ('procedure', 'Procedure'),
        ('test', 'Test'),
        ('vaccination', 'Vaccination'),
        ('emergency', 'Emergency'),
        ('follow-up', 'Follow-up'),
        ('other', 'Other'),
    ]
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('completed', 'Completed'),
        ('reviewed', 'Reviewed'),
        ('archived', 'Archived'),
    ]

    record_id = models.CharField(max_length=20, unique=True, default=generate_record_id, editable=False)
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='medical_records'
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='authored_records'
    )
    hospital = models.ForeignKey(
        Hospital, null=True, blank=True, on_delete=models.SET_NULL, related_name='medical_records'
    )
    clinic = models.ForeignKey(
        Clinic, null=True, blank=True, on_delete=models.SET_NULL, related_name='medical_records'
    )
    referral = models.ForeignKey(
        Referral, null=True, blank=True, on_delete=models.SET_NULL, related_name='medical_records'
    )
    visit_date = models.DateTimeField(default=timezone.now)
    visit_type = models.CharField(max_length=20, choices=VISIT_TYPE_CHOICES, default='consultation')
    specialty = models.CharField(max_length=120, blank=True)
    chief_complaint = models.TextField(max_length=500)
    diagnosis = models.JSONField(default=dict, blank=True)
    treatment = models.JSONField(default=dict, blank=True)
    medications = models.JSONField(default=list, blank=True)
    lab_results = models.JSONField(default=list, blank=True)
    doctor_notes = models.TextField(blank=True, max_length=2000)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='completed')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-visit_date', '-id']

    def __str__(self) -> str:
        return self.record_id


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditEvent(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['object_type', 'object_id', 'created_at']),
        ]
