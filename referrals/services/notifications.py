"""
Outbound notifications and realtime broadcasts.

Everything here runs after the surrounding transaction commits and never
raises into the caller: a failed delivery is logged and the state change
that triggered it stands.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

import requests
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)

ACCOUNT_APPROVED = 'account_approved'
ACCOUNT_REJECTED = 'account_rejected'
HOSPITAL_APPROVED = 'hospital_approved'
HOSPITAL_REJECTED = 'hospital_rejected'
REFERRAL_CREATED = 'referral_created'
REFERRAL_STATUS_CHANGED = 'referral_status_changed'

SUBJECTS = {
    ACCOUNT_APPROVED: 'Your MediNet account has been approved',
    ACCOUNT_REJECTED: 'Your MediNet account registration was not approved',
    HOSPITAL_APPROVED: 'Hospital registration approved: {hospital_name}',
    HOSPITAL_REJECTED: 'Hospital registration not approved: {hospital_name}',
    REFERRAL_CREATED: 'New referral {referral_id} ({priority})',
    REFERRAL_STATUS_CHANGED: 'Referral {referral_id} is now {status}',
}


def hospital_group(hospital_id) -> str:
    return f"hospital.{hospital_id}"


def user_group(user_id) -> str:
    return f"user.{user_id}"


def _send_email(recipient: str, template: str, data: Dict[str, Any]) -> None:
    subject = SUBJECTS[template].format(**data)
    body = render_to_string(f"referrals/email/{template}.txt", data)
    send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [recipient], fail_silently=False)


def _post_webhook(recipient: str, template: str, data: Dict[str, Any]) -> None:
    url = getattr(settings, 'NOTIFY_WEBHOOK_URL', '')
    if not url:
        return
    resp = requests.post(
        url,
        json={'recipient': recipient, 'template': template, 'data': data},
        timeout=getattr(settings, 'NOTIFY_WEBHOOK_TIMEOUT', 5),
    )
    resp.raise_for_status()


def deliver(recipient: Optional[str], template: str, data: Dict[str, Any]) -> bool:
    """Attempt every channel for one notification; return whether all succeeded."""
    if not recipient:
        logger.warning('Notification %s skipped: no recipient address', template)
        return False
    ok = True
    try:
        _send_email(recipient, template, data)
    except Exception:
        ok = False
        logger.exception('Email notification %s to %s failed', template, recipient)
    try:
        _post_webhook(recipient, template, data)
    except Exception:
        ok = False
        logger.exception('Webhook notification %s to %s failed', template, recipient)
    return ok


def notify(recipient: Optional[str], template: str, data: Dict[str, Any]) -> None:
    """Queue one notification for delivery once the current transaction commits."""
    payload = dict(data)
    transaction.on_commit(lambda: deliver(recipient, template, payload))


def _group_send(groups: Iterable[str], message: Dict[str, Any]) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    for group in groups:
        try:
            async_to_sync(channel_layer.group_send)(group, message)
        except Exception:
            logger.exception('Realtime broadcast to %s failed', group)


def broadcast(event: str, payload: Dict[str, Any], *, user_ids: Iterable = (), hospital_ids: Iterable = ()) -> None:
    """Push ``event`` to the given users' and hospitals' websocket groups after commit."""
    groups = sorted(
        {user_group(u) for u in user_ids if u} | {hospital_group(h) for h in hospital_ids if h}
    )
    if not groups:
        return
    message = {"type": "referral.event", "event": event, "payload": payload}
    transaction.on_commit(lambda: _group_send(groups, message))
