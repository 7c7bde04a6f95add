"""
URL mappings for the referral API.

Every endpoint lives under ``/api/``.  Trailing slashes are deliberately
omitted (``APPEND_SLASH`` is off).
"""
from django.urls import include, path

from .auth_views import change_password_view, login_view, logout_view, me_view, refresh_view, register_view
from .views import accounts, approvals, doctors, health, hospitals, patients, records, referrals
from .views.dashboard import dashboard

urlpatterns = [
    # django_prometheus serves /metrics
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz, name='healthz'),

    # Auth
    path('api/auth/register', register_view, name='register_view'),
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', refresh_view, name='refresh_view'),
    path('api/auth/logout', logout_view, name='logout_view'),
    path('api/auth/me', me_view, name='me_view'),
    path('api/auth/change-password', change_password_view, name='change_password_view'),

    # Accounts
    path('api/users', accounts.users, name='users'),
    path('api/users/stats', accounts.user_stats, name='user_stats'),
    path('api/users/<int:pk>', accounts.user_detail, name='user_detail'),
    path('api/users/<int:pk>/toggle-active', accounts.user_toggle_active, name='user_toggle_active'),

    # Approvals
    path('api/approvals/pending', approvals.pending_accounts, name='pending_accounts'),
    path('api/approvals/pending/doctors', approvals.pending_doctors, name='pending_doctors'),
    path('api/approvals/pending/hospitals', approvals.pending_hospitals, name='pending_hospitals'),
    path('api/approvals/accounts/<int:pk>/approve', approvals.approve_account, name='approve_account'),
    path('api/approvals/accounts/<int:pk>/reject', approvals.reject_account, name='reject_account'),
    path('api/approvals/hospitals/<int:pk>/approve', approvals.approve_hospital, name='approve_hospital'),
    path('api/approvals/hospitals/<int:pk>/reject', approvals.reject_hospital, name='reject_hospital'),
    path('api/approvals/stats', approvals.approval_stats, name='approval_stats'),

    # Hospitals
    path('api/hospitals', hospitals.hospital_list, name='hospital_list'),
    path('api/hospitals/register', hospitals.register_hospital, name='register_hospital'),
    path('api/hospitals/approved', hospitals.approved_hospitals, name='approved_hospitals'),
    path('api/hospitals/<int:pk>', hospitals.hospital_detail, name='hospital_detail'),
    path('api/hospitals/<int:pk>/overview', hospitals.hospital_overview, name='hospital_overview'),

    # Doctors
    path('api/doctors', doctors.doctor_list, name='doctor_list'),
    path('api/doctors/<int:pk>', doctors.doctor_detail, name='doctor_detail'),
    path('api/doctors/<int:pk>/patients', doctors.doctor_patients, name='doctor_patients'),
    path('api/doctors/<int:pk>/referrals', doctors.doctor_referrals, name='doctor_referrals'),
    path('api/doctors/<int:pk>/analytics', doctors.doctor_analytics, name='doctor_analytics'),

    # Patients
    path('api/patients', patients.patient_list, name='patient_list'),
    path('api/patients/<int:pk>', patients.patient_detail, name='patient_detail'),
    path('api/patients/<int:pk>/profile', patients.patient_profile, name='patient_profile'),
    path('api/patients/<int:pk>/referrals', patients.patient_referrals, name='patient_referrals'),
    path('api/patients/<int:pk>/medical-history', patients.patient_medical_history, name='patient_medical_history'),

    # Referrals
    path('api/referrals', referrals.referral_list, name='referral_list'),
    path('api/referrals/<int:pk>', referrals.referral_detail, name='referral_detail'),
    path('api/referrals/<int:pk>/status', referrals.referral_status, name='referral_status'),
    path('api/referrals/<int:pk>/messages', referrals.referral_messages, name='referral_messages'),
    path('api/referrals/<int:pk>/messages/read', referrals.referral_messages_read, name='referral_messages_read'),

    # Medical records
    path('api/records', records.record_list, name='record_list'),
    path('api/records/<int:pk>', records.record_detail, name='record_detail'),

    # Dashboard
    path('api/dashboard', dashboard, name='dashboard'),
]
