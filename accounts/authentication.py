"""Resolve the acting user from the header set by the upstream gateway."""
from __future__ import annotations

from typing import Optional, Tuple

from rest_framework import authentication, exceptions
from rest_framework.request import Request

from .models import User

ACTOR_HEADER = "X-User-Id"


class ActorHeaderAuthentication(authentication.BaseAuthentication):
    """Trust the ``X-User-Id`` header; sessions are issued by another service."""

    def authenticate(self, request: Request) -> Optional[Tuple[User, None]]:
        raw_id = request.headers.get(ACTOR_HEADER)
        if not raw_id:
            return None
        try:
            user_id = int(raw_id)
        except ValueError:
            raise exceptions.AuthenticationFailed(f"{ACTOR_HEADER} must be an integer.")

        user = (
            User.objects.select_related("organization", "maintenance_vendor")
            .filter(pk=user_id, is_active=True)
            .first()
        )
        if user is None:
            raise exceptions.AuthenticationFailed("Unknown or inactive user.")
        return user, None

    def authenticate_header(self, request: Request) -> str:
        return ACTOR_HEADER
