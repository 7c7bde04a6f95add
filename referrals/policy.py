"""
Access-scoping policy.

One place decides what an authenticated actor may see and do.  The
``can``/``enforce`` pair answers per-object questions and the ``*_scope``
builders return the ``Q`` predicate that narrows a listing to the same
set of rows ``can(actor, 'view', row)`` would allow.  Nothing here writes
to the database or looks at the request.

Listing predicates are combined by :func:`combine` as
``scope AND filters AND (search_1 OR search_2 ...)``.  The OR-groups stay
nested inside the AND; flattening them would let a search term match rows
outside the actor's scope.
"""
from __future__ import annotations

import operator
from dataclasses import dataclass
from functools import reduce
from typing import Iterable, Optional

from django.db.models import Q

from .exceptions import AccessDenied, NotFound
from .models import (
    APPROVAL_APPROVED,
    PRACTICE_HOSPITAL,
    ROLE_DOCTOR,
    ROLE_HOSPITAL,
    ROLE_PATIENT,
    ROLE_SUPER_ADMIN,
    Hospital,
    MedicalRecord,
    Referral,
    User,
)

VIEW = 'view'
UPDATE = 'update'
SET_STATUS = 'set_status'
MANAGE = 'manage'
APPROVE = 'approve'
DELETE = 'delete'
MESSAGE = 'message'

# Referral fields any participant allowed to update may change
CLINICAL_FIELDS = frozenset({
    'reason',
    'priority',
    'specialty',
    'chief_complaint',
    'history_of_present_illness',
    'physical_examination',
    'vital_signs',
    'diagnosis',
    'treatment_given',
    'medications',
    'notes',
})
# Routing fields; doctors cannot rebind a referral once it is created
ROUTING_FIELDS = frozenset({'receiving_hospital', 'receiving_doctor'})

NOTHING = Q(pk__in=[])


@dataclass(frozen=True)
class Actor:
    """The authenticated identity plus role and affiliation."""
    id: int
    role: str
    hospital_id: Optional[int] = None
    clinic_id: Optional[int] = None

    @classmethod
    def from_user(cls, user) -> 'Actor':
        return cls(
            id=user.id,
            role=user.role,
            hospital_id=getattr(user, 'hospital_id', None),
            clinic_id=getattr(user, 'clinic_id', None),
        )

    @property
    def is_super(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    @property
    def is_hospital_admin(self) -> bool:
        return self.role == ROLE_HOSPITAL

    @property
    def is_doctor(self) -> bool:
        return self.role == ROLE_DOCTOR

    @property
    def is_patient(self) -> bool:
        return self.role == ROLE_PATIENT

    def administers(self, hospital_id) -> bool:
        return self.is_hospital_admin and self.hospital_id is not None and self.hospital_id == hospital_id


def as_actor(actor_or_user) -> Actor:
    if isinstance(actor_or_user, Actor):
        return actor_or_user
    return Actor.from_user(actor_or_user)


# ---------------------------------------------------------------------
# Per-object rules
# ---------------------------------------------------------------------
def _referral_rule(actor: Actor, action: str, ref: Referral) -> bool:
    if actor.is_hospital_admin:
        involved = actor.hospital_id is not None and actor.hospital_id in (
            ref.referring_hospital_id, ref.receiving_hospital_id
        )
        if action in (VIEW, UPDATE, MESSAGE):
            return involved
        if action == SET_STATUS:
            return actor.administers(ref.receiving_hospital_id)
        return False
    if actor.is_doctor:
        involved = actor.id in (ref.referring_doctor_id, ref.receiving_doctor_id)
        if action in (VIEW, UPDATE, MESSAGE):
            return involved
        if action == SET_STATUS:
            return involved and actor.hospital_id is not None and actor.hospital_id == ref.receiving_hospital_id
        return False
    if actor.is_patient:
        # read-only: no messages, no read receipts
        return action == VIEW and ref.patient_id == actor.id
    return False


def _approval_authority(actor: Actor, account: User) -> bool:
    if account.role == ROLE_DOCTOR and account.practice_type == PRACTICE_HOSPITAL:
        return actor.administers(account.hospital_id)
    # own-clinic doctors and hospital admins answer to the super admin only
    return False


def _account_rule(actor: Actor, action: str, account: User) -> bool:
    if action == APPROVE:
        return _approval_authority(actor, account)
    if action in (VIEW, UPDATE) and account.id == actor.id:
        return True
    if actor.is_hospital_admin:
        own = (
            actor.hospital_id is not None
            and account.hospital_id == actor.hospital_id
            and account.role != ROLE_SUPER_ADMIN
        )
        if action == VIEW:
            partner = account.role == ROLE_DOCTOR and account.approval_status == APPROVAL_APPROVED
            return own or partner
        if action in (UPDATE, MANAGE):
            return own and account.role == ROLE_DOCTOR
        return False
    if actor.is_doctor:
        if action == VIEW:
            if account.role == ROLE_PATIENT:
                return True
            return account.role == ROLE_DOCTOR and account.approval_status == APPROVAL_APPROVED
        return False
    return False


def _hospital_rule(actor: Actor, action: str, hospital: Hospital) -> bool:
    if action == VIEW:
        if hospital.status == Hospital.STATUS_APPROVED:
            return True
        return actor.hospital_id is not None and actor.hospital_id == hospital.id
    if action == UPDATE:
        return actor.administers(hospital.id)
    return False


def _record_rule(actor: Actor, action: str, record: MedicalRecord) -> bool:
    if actor.is_doctor:
        return record.doctor_id == actor.id
    if action != VIEW:
        return False
    if actor.is_patient:
        return record.patient_id == actor.id
    if actor.is_hospital_admin:
        return actor.hospital_id is not None and record.hospital_id == actor.hospital_id
    return False


_RULES = (
    (Referral, _referral_rule),
    (User, _account_rule),
    (Hospital, _hospital_rule),
    (MedicalRecord, _record_rule),
)


def can(actor, action: str, target) -> bool:
    """Return whether ``actor`` may perform ``action`` on ``target``."""
    actor = as_actor(actor)
    if actor.is_super:
        return True
    for model, rule in _RULES:
        if isinstance(target, model):
            return rule(actor, action, target)
    return False


def enforce(actor, action: str, target, message: Optional[str] = None) -> None:
    if not can(actor, action, target):
        raise AccessDenied(message)


def updatable_referral_fields(actor, referral: Referral) -> frozenset:
    actor = as_actor(actor)
    if not can(actor, UPDATE, referral):
        return frozenset()
    if actor.is_doctor:
        return CLINICAL_FIELDS
    return CLINICAL_FIELDS | ROUTING_FIELDS


def require_self_or_admin_of(actor, doctor_id: int) -> None:
    """Target-independent check for a doctor reading another doctor's data.

    Runs before any lookup so a doctor cannot learn which ids exist.
    """
    actor = as_actor(actor)
    if actor.is_doctor and actor.id != doctor_id:
        raise AccessDenied('Doctors can only access their own data')
    if actor.is_patient:
        raise AccessDenied()


def get_for_actor(source, actor, action: str = VIEW, **lookup):
    """Fetch one object and check ``action`` on it.

    A missing object is ``NotFound`` only for the super admin; everyone
    else gets ``AccessDenied`` whether the id exists or not.
    """
    actor = as_actor(actor)
    qs = source._default_manager.all() if isinstance(source, type) else source
    obj = qs.filter(**lookup).first()
    if obj is None:
        if actor.is_super:
            raise NotFound()
        raise AccessDenied()
    enforce(actor, action, obj)
    return obj


# ---------------------------------------------------------------------
# Listing scopes
# ---------------------------------------------------------------------
def referral_scope(actor) -> Optional[Q]:
    actor = as_actor(actor)
    if actor.is_super:
        return None
    if actor.is_hospital_admin:
        if actor.hospital_id is None:
            return NOTHING
        return Q(referring_hospital_id=actor.hospital_id) | Q(receiving_hospital_id=actor.hospital_id)
    if actor.is_doctor:
        return Q(referring_doctor_id=actor.id) | Q(receiving_doctor_id=actor.id)
    if actor.is_patient:
        return Q(patient_id=actor.id)
    return NOTHING


def account_scope(actor) -> Optional[Q]:
    actor = as_actor(actor)
    if actor.is_super:
        return None
    own = Q(pk=actor.id)
    partner_doctors = Q(role=ROLE_DOCTOR, approval_status=APPROVAL_APPROVED)
    if actor.is_hospital_admin:
        if actor.hospital_id is None:
            return own | partner_doctors
        same_hospital = Q(hospital_id=actor.hospital_id) & ~Q(role=ROLE_SUPER_ADMIN)
        return own | same_hospital | partner_doctors
    if actor.is_doctor:
        return own | partner_doctors | Q(role=ROLE_PATIENT)
    return own


def record_scope(actor) -> Optional[Q]:
    actor = as_actor(actor)
    if actor.is_super:
        return None
    if actor.is_doctor:
        return Q(doctor_id=actor.id)
    if actor.is_patient:
        return Q(patient_id=actor.id)
    if actor.is_hospital_admin and actor.hospital_id is not None:
        return Q(hospital_id=actor.hospital_id)
    return NOTHING


def search_terms(term: Optional[str], fields: Iterable[str]) -> list:
    term = (term or '').strip()
    if not term:
        return []
    return [Q(**{f"{field}__icontains": term}) for field in fields]


def combine(scope: Optional[Q] = None, filters: Optional[Q] = None, search: Iterable[Q] = ()) -> Q:
    """AND together the scope, the caller filters and one OR-group of search terms."""
    parts = [p for p in (scope, filters) if p is not None]
    search = list(search)
    if search:
        parts.append(reduce(operator.or_, search))
    return reduce(operator.and_, parts, Q())
