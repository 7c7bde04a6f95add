"""
Django admin registrations for the referral models.

Approval decisions should go through the API so the cascade between a
hospital and its admin account runs; the admin site is for inspection
and manual corrections during development.
"""

from django.contrib import admin

from .models import (
    AuditEvent,
    Clinic,
    Hospital,
    MedicalRecord,
    Referral,
    ReferralMessage,
    ReferralTimelineEntry,
    User,
)


@admin.register(Hospital)
class HospitalAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'email', 'type', 'status', 'is_active', 'created_at')
    list_filter = ('status', 'type', 'is_active')
    search_fields = ('name', 'email', 'phone')


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'owner', 'is_active', 'created_at')
    search_fields = ('name', 'owner__email')


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('email', 'role', 'approval_status', 'practice_type', 'hospital', 'is_active')
    list_filter = ('role', 'approval_status', 'practice_type', 'is_active')
    search_fields = ('email', 'first_name', 'last_name')
    readonly_fields = ('role', 'approved_by', 'approved_at', 'created_at')


class TimelineInline(admin.TabularInline):
    model = ReferralTimelineEntry
    extra = 0
    readonly_fields = ('action', 'performed_by', 'notes', 'timestamp')


@admin.register(Referral)
class ReferralAdmin(admin.ModelAdmin):
    list_display = ('referral_id', 'patient', 'referring_doctor', 'receiving_hospital', 'priority', 'status', 'created_at')
    list_filter = ('status', 'priority')
    search_fields = ('referral_id', 'specialty', 'reason')
    inlines = [TimelineInline]


@admin.register(ReferralMessage)
class ReferralMessageAdmin(admin.ModelAdmin):
    list_display = ('id', 'referral', 'sender', 'is_read', 'created_at')


@admin.register(MedicalRecord)
class MedicalRecordAdmin(admin.ModelAdmin):
    list_display = ('record_id', 'patient', 'doctor', 'visit_type', 'status', 'visit_date')
    list_filter = ('visit_type', 'status')
    search_fields = ('record_id', 'chief_complaint')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'action', 'object_type', 'object_id', 'created_at')
    list_filter = ('action', 'object_type')
    search_fields = ('action', 'object_id')
