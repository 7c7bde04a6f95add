"""
JWT authentication for the API.

Subclasses simplejwt's ``JWTAuthentication`` so settings point at a
stable, project-local import path.  Inactive accounts are refused at
authentication time, before any view runs.
"""
from __future__ import annotations

from rest_framework import exceptions
from rest_framework_simplejwt import authentication


class JWTAuthentication(authentication.JWTAuthentication):
    """Bearer-token authentication that refuses deactivated accounts."""

    def get_user(self, validated_token):
        user = super().get_user(validated_token)
        if not user.is_active:
            raise exceptions.AuthenticationFailed('Account is deactivated', code='account_inactive')
        return user
