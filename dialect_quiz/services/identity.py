from __future__ import annotations

import logging
import secrets
import sqlite3

from dialect_quiz.storage.db import Database

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class IdentityProvider:
    """Local accounts with opaque bearer tokens."""

    def __init__(self, store: Database) -> None:
        self.store = store

    def get_current_user(self, token: str | None) -> dict | None:
        if not token:
            return None
        return self.store.get_session_user(token.strip())

    def sign_in(self, display_name: str, email: str | None = None) -> dict:
        user = self.store.get_user_by_email(email) if email else None
        if user is None:
            user = self.store.create_user(display_name=display_name, email=email)
            logger.info("created user %s", user["id"])
        token = secrets.token_urlsafe(TOKEN_BYTES)
        self.store.create_session(int(user["id"]), token)
        return {"token": token, "user": user}

    def sign_out(self, token: str) -> bool:
        return self.store.revoke_session(token.strip())

    def update_profile(
        self,
        user_id: int,
        *,
        display_name: str | None = None,
        email: str | None = None,
        avatar: str | None = None,
    ) -> dict:
        try:
            return self.store.update_user(user_id, display_name=display_name, email=email, avatar=avatar)
        except sqlite3.IntegrityError as exc:
            raise ValueError("email is already in use") from exc
