"""Local credential check gating the UI.

This is a convenience gate for a shared office machine, not access
control: passwords are plaintext in local storage and nothing server-side
enforces roles.
"""

from __future__ import annotations

from typing import List, Optional

from ..domain.constants import KEY_SESSION_ROLE, KEY_USERS, ROLE_CHOICES, ROLE_STAFF, ROLE_SUPER_ADMIN
from ..domain.models import UserAccount
from ..logging import get_logger
from .storage import SessionStorage, read_json, write_json

LOG = get_logger("access")

FALLBACK_ADMIN_USERNAME = "admin"
FALLBACK_ADMIN_PASSWORD = "admin"
INVALID_CREDENTIALS = "Invalid ID or Password"


class InvalidCredentialsError(Exception):
    def __init__(self, message: str = INVALID_CREDENTIALS) -> None:
        super().__init__(message)


class AccessGate:
    def __init__(self, local: SessionStorage, session: SessionStorage) -> None:
        self.local = local
        self.session = session

    # ---------- users ----------
    def list_users(self) -> List[UserAccount]:
        raw = read_json(self.local, KEY_USERS, default=[])
        if not isinstance(raw, list):
            return []
        return [u for u in (UserAccount.from_dict(item) for item in raw) if u is not None]

    def _save_users(self, users: List[UserAccount]) -> None:
        write_json(self.local, KEY_USERS, [u.to_dict() for u in users])

    def add_user(self, username: str, password: str, role: str = ROLE_STAFF) -> UserAccount:
        username = (username or "").strip()
        if not username or not password:
            raise ValueError("username and password are required")
        if role not in ROLE_CHOICES:
            raise ValueError(f"unknown role: {role!r}")
        users = [u for u in self.list_users() if u.username != username]
        account = UserAccount(username=username, password=password, role=role)
        users.append(account)
        self._save_users(users)
        LOG.info(f"Saved user {username!r} with role {role}")
        return account

    def remove_user(self, username: str) -> bool:
        users = self.list_users()
        kept = [u for u in users if u.username != username]
        if len(kept) == len(users):
            return False
        self._save_users(kept)
        LOG.info(f"Removed user {username!r}")
        return True

    # ---------- session ----------
    def login(self, username: str, password: str) -> str:
        role: Optional[str] = None
        if username == FALLBACK_ADMIN_USERNAME and password == FALLBACK_ADMIN_PASSWORD:
            role = ROLE_SUPER_ADMIN
        else:
            for u in self.list_users():
                if u.username == username and u.password == password:
                    role = u.role
                    break
        if role is None:
            LOG.info("Rejected login attempt")
            raise InvalidCredentialsError()
        self.session.set_item(KEY_SESSION_ROLE, role)
        LOG.info(f"Logged in as {role}")
        return role

    def logout(self) -> None:
        self.session.remove_item(KEY_SESSION_ROLE)

    def current_role(self) -> Optional[str]:
        role = self.session.get_item(KEY_SESSION_ROLE)
        return role if role in ROLE_CHOICES else None

    def is_authenticated(self) -> bool:
        return self.current_role() is not None

    def is_super_admin(self) -> bool:
        return self.current_role() == ROLE_SUPER_ADMIN
