"""Bearer-token authentication for API routes.

Tokens are verified against Supabase Auth. Without a Supabase project (local
development, tests) ``dev_<user-id>`` tokens are accepted instead, unless
``ALLOW_DEV_TOKENS`` is switched off.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Header, HTTPException
from supabase import Client, create_client

from src.config import settings

logger = logging.getLogger(__name__)

DEV_TOKEN_PREFIX = "dev_"


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str | None = None


def get_supabase_client() -> Client:
    """Create and return a Supabase client from settings."""
    return create_client(settings.supabase_url, settings.supabase_key)


def verify_token(token: str) -> CurrentUser | None:
    """Resolve a bearer token to a user, or None if it is not valid."""
    if settings.supabase_configured:
        try:
            response = get_supabase_client().auth.get_user(token)
        except Exception as exc:
            # Invalid and expired tokens surface as auth API errors
            logger.warning("Token verification failed: %s", exc)
            return None
        user = response.user if response else None
        if user is None:
            return None
        return CurrentUser(id=str(user.id), email=user.email)

    if settings.allow_dev_tokens and token.startswith(DEV_TOKEN_PREFIX):
        return CurrentUser(
            id=token[len(DEV_TOKEN_PREFIX):] or "dev-user-id",
            email="dev@example.com",
        )
    return None


async def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> CurrentUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized: No token provided")

    user = verify_token(authorization.removeprefix("Bearer ").strip())
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized: Invalid token")
    return user
