import json

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from referrals.exceptions import AccessDenied
from referrals.services.notifications import hospital_group, user_group
from referrals.workflow import ensure_usable

CLOSE_UNAUTHENTICATED = 4001
CLOSE_NOT_USABLE = 4003


class ReferralUpdatesConsumer(AsyncWebsocketConsumer):
    """Pushes referral events to the connected user and their hospital."""

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            await self.close(code=CLOSE_UNAUTHENTICATED)
            return
        try:
            await database_sync_to_async(ensure_usable)(user)
        except AccessDenied:
            await self.close(code=CLOSE_NOT_USABLE)
            return
        self.groups_joined = [user_group(user.id)]
        if user.hospital_id:
            self.groups_joined.append(hospital_group(user.hospital_id))
        for group in self.groups_joined:
            await self.channel_layer.group_add(group, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "groups": self.groups_joined}))

    async def disconnect(self, close_code):
        for group in getattr(self, "groups_joined", []):
            await self.channel_layer.group_discard(group, self.channel_name)

    async def referral_event(self, event):
        # event: {"type": "referral.event", "event": "referral.status", "payload": {...}}
        await self.send(json.dumps({"type": event["event"], "payload": event["payload"]}))
