"""
Token authentication for the websocket endpoint.

Browsers cannot set an ``Authorization`` header on a websocket handshake,
so the access token travels in the query string as ``?token=<access>``.
A missing or invalid token leaves the session user (usually anonymous) in
the scope and the consumer closes the socket.
"""
from __future__ import annotations

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from rest_framework import exceptions

from referrals.authentication import JWTAuthentication

logger = logging.getLogger(__name__)


@database_sync_to_async
def user_for_token(raw_token: str):
    auth = JWTAuthentication()
    try:
        return auth.get_user(auth.get_validated_token(raw_token))
    except exceptions.AuthenticationFailed as e:
        logger.info('Websocket token refused: %s', e.detail)
        return None


class JWTAuthMiddleware(BaseMiddleware):
    """Put the account of a valid ``?token=`` access token in ``scope['user']``."""

    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get('query_string', b'').decode())
        token = (params.get('token') or [''])[0]
        if token:
            user = await user_for_token(token)
            if user is not None:
                scope = dict(scope, user=user)
        return await super().__call__(scope, receive, send)
