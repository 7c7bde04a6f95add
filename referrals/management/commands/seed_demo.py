# referrals/management/commands/seed_demo.py
from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from referrals.models import (
    APPROVAL_APPROVED,
    PRACTICE_HOSPITAL,
    PRACTICE_OWN_CLINIC,
    ROLE_DOCTOR,
    ROLE_HOSPITAL,
    ROLE_PATIENT,
    ROLE_SUPER_ADMIN,
    Clinic,
    Hospital,
    User,
)

HOSPITAL = {
    "name": "MediNet General Hospital",
    "email": "general@medinet.local",
    "phone": "+1-555-0100",
    "type": "public",
    "specialties": ["Cardiology", "Neurology", "Orthopedics"],
    "services": ["Emergency", "Inpatient", "Outpatient"],
    "capacity": {"beds": 250, "icu": 20},
}

# (email, role, practice, first, last, extra)
ACCOUNTS = [
    ("super@medinet.local", ROLE_SUPER_ADMIN, "", "Super", "Admin", {"admin_level": "super"}),
    ("general@medinet.local", ROLE_HOSPITAL, "", "Hana", "Admin", {"position": "Hospital Administrator"}),
    ("cardio@medinet.local", ROLE_DOCTOR, PRACTICE_HOSPITAL, "Carl", "Heart",
     {"specialization": "Cardiology", "license_number": "LIC-1001"}),
    ("clinic@medinet.local", ROLE_DOCTOR, PRACTICE_OWN_CLINIC, "Greta", "General",
     {"specialization": "General Practice", "license_number": "LIC-2001"}),
    ("patient@medinet.local", ROLE_PATIENT, "", "Paul", "Patient", {"gender": "male"}),
]


class Command(BaseCommand):
    help = "Create demo accounts, an approved hospital and a clinic (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--password", default="MediNet!demo1", help="Password set on every demo account.")

    @transaction.atomic
    def handle(self, *args, **opts):
        password = make_password(opts["password"])
        now = timezone.now()
        hospital, _ = Hospital.objects.get_or_create(email=HOSPITAL["email"], defaults=HOSPITAL)
        if hospital.status != Hospital.STATUS_APPROVED:
            hospital.status = Hospital.STATUS_APPROVED
            hospital.approved_at = now
            hospital.save(update_fields=["status", "approved_at", "updated_at"])

        for email, role, practice, first, last, extra in ACCOUNTS:
            u = User.objects.filter(email=email).first()
            if u is not None and u.role != role:
                self.stdout.write(self.style.WARNING(f"skip: {email} already exists as {u.role}"))
                continue
            if u is None:
                u = User(email=email, role=role)
            u.password = password
            u.practice_type = practice
            u.first_name, u.last_name = first, last
            u.approval_status = APPROVAL_APPROVED
            u.approved_at = u.approved_at or now
            u.is_active = True
            if role == ROLE_SUPER_ADMIN:
                u.is_staff = u.is_superuser = True
            if role == ROLE_HOSPITAL or practice == PRACTICE_HOSPITAL:
                u.hospital = hospital
            for key, value in extra.items():
                setattr(u, key, value)
            u.save()
            if practice == PRACTICE_OWN_CLINIC and u.clinic_id is None:
                clinic, _ = Clinic.objects.get_or_create(owner=u, defaults={"name": f"{last} Family Clinic"})
                u.clinic = clinic
                u.save(update_fields=["clinic"])
            self.stdout.write(self.style.SUCCESS(f"ok: {email} ({role})"))
        self.stdout.write(self.style.SUCCESS("Demo data ensured."))
