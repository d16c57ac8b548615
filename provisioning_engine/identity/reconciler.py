# provisioning_engine/identity/reconciler.py
"""
Identity reconciler - provisions one directory user outside the user
pool's declarative lifecycle.

State machine:
    ABSENT -> CREATING -> PRESENT -> DELETING -> ABSENT

Failure edges put the user back where it was (CREATING -> ABSENT,
DELETING -> PRESENT) so the next run can retry. "Already exists" on
create and "not found" on delete are absorbed: re-application and
re-run teardown both converge.
"""

import logging
import secrets
import string
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import SecretStr

from provisioning_engine.core.errors import (
    InvalidStateTransition,
    UserAlreadyExists,
    UserNotFound,
)
from provisioning_engine.identity.directory import UserDirectory

logger = logging.getLogger(__name__)


class UserState(Enum):
    ABSENT = "ABSENT"
    CREATING = "CREATING"
    PRESENT = "PRESENT"
    DELETING = "DELETING"


ALLOWED_TRANSITIONS = {
    UserState.ABSENT: {UserState.CREATING},
    UserState.CREATING: {UserState.PRESENT, UserState.ABSENT},
    UserState.PRESENT: {UserState.DELETING},
    UserState.DELETING: {UserState.ABSENT, UserState.PRESENT},
}


@dataclass
class ReconciledUser:
    user_pool_id: str
    username: str
    attributes: Dict[str, str] = field(default_factory=dict)
    state: UserState = UserState.ABSENT
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def physical_id(self) -> str:
        return f"{self.user_pool_id}/{self.username}"


def generate_temporary_password(length: int = 16) -> SecretStr:
    """Random password meeting the default pool policy (upper, lower, digit, symbol)."""
    if length < 8:
        raise ValueError("Temporary password must be at least 8 characters")

    symbols = "!@#$%^&*"
    alphabet = string.ascii_letters + string.digits + symbols
    required = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(symbols),
    ]
    rest = [secrets.choice(alphabet) for _ in range(length - len(required))]
    chars = required + rest
    secrets.SystemRandom().shuffle(chars)
    return SecretStr("".join(chars))


class IdentityReconciler:
    """Idempotent create/delete handler for one directory user per key."""

    def __init__(self, directory: UserDirectory):
        self._directory = directory
        self._users: Dict[Tuple[str, str], ReconciledUser] = {}
        self._lock = threading.Lock()

    # -------------------------
    # STATE
    # -------------------------

    def state_of(self, user_pool_id: str, username: str) -> Optional[UserState]:
        """Observed state, or None if this reconciler never touched the user."""
        user = self._users.get((user_pool_id, username))
        return user.state if user else None

    def _observe(self, user_pool_id: str, username: str, assumed: UserState) -> ReconciledUser:
        key = (user_pool_id, username)
        with self._lock:
            if key not in self._users:
                self._users[key] = ReconciledUser(
                    user_pool_id=user_pool_id,
                    username=username,
                    state=assumed,
                )
            return self._users[key]

    @staticmethod
    def _transition(user: ReconciledUser, new_state: UserState) -> None:
        allowed = ALLOWED_TRANSITIONS.get(user.state, set())
        if new_state not in allowed:
            raise InvalidStateTransition(
                f"User {user.username}: cannot transition from {user.state.value} to {new_state.value}"
            )
        user.state = new_state
        user.updated_at = datetime.now(timezone.utc)

    # -------------------------
    # CREATE
    # -------------------------

    def create(
        self,
        user_pool_id: str,
        username: str,
        attributes: Dict[str, str],
        temporary_password: Optional[SecretStr] = None,
    ) -> ReconciledUser:
        """
        Ensure the user exists.

        Calling twice for the same (pool, username) has the effect of
        calling once: the second call either short-circuits on the
        observed PRESENT state or absorbs the directory's "already
        exists" answer.
        """
        user = self._observe(user_pool_id, username, UserState.ABSENT)

        if user.state == UserState.PRESENT:
            logger.info(f"[reconciler] user {username} already present in {user_pool_id}, nothing to do")
            return user

        self._transition(user, UserState.CREATING)
        password = temporary_password or generate_temporary_password()

        try:
            self._directory.admin_create_user(
                user_pool_id,
                username,
                attributes,
                password,
                suppress_message=True,
            )
            logger.info(f"[reconciler] created user {username} in {user_pool_id}")
        except UserAlreadyExists:
            logger.info(f"[reconciler] user {username} already exists in {user_pool_id}, treating as created")
        except Exception:
            self._transition(user, UserState.ABSENT)
            raise

        user.attributes = dict(attributes)
        self._transition(user, UserState.PRESENT)
        return user

    # -------------------------
    # DELETE
    # -------------------------

    def delete(self, user_pool_id: str, username: str) -> ReconciledUser:
        """
        Ensure the user is gone.

        A missing user is logged as a warning and reported as success;
        teardown may be re-run after a partial failure.
        """
        user = self._observe(user_pool_id, username, UserState.PRESENT)

        if user.state == UserState.ABSENT:
            logger.warning(f"[reconciler] user {username} already absent from {user_pool_id}")
            return user

        if user.state == UserState.CREATING:
            raise InvalidStateTransition(f"User {username} is still being created")

        self._transition(user, UserState.DELETING)

        try:
            self._directory.admin_delete_user(user_pool_id, username)
            logger.info(f"[reconciler] deleted user {username} from {user_pool_id}")
        except UserNotFound:
            logger.warning(f"[reconciler] user {username} not found in {user_pool_id}, treating as deleted")
        except Exception:
            self._transition(user, UserState.PRESENT)
            raise

        self._transition(user, UserState.ABSENT)
        return user

    # -------------------------
    # MAINTENANCE
    # -------------------------

    def update_attributes(self, user_pool_id: str, username: str, attributes: Dict[str, str]) -> ReconciledUser:
        user = self._observe(user_pool_id, username, UserState.PRESENT)
        if user.state != UserState.PRESENT:
            raise InvalidStateTransition(
                f"User {username} must be PRESENT to update attributes (current: {user.state.value})"
            )
        self._directory.admin_update_user_attributes(user_pool_id, username, attributes)
        user.attributes.update(attributes)
        return user

    def set_password(
        self,
        user_pool_id: str,
        username: str,
        password: SecretStr,
        permanent: bool = True,
    ) -> None:
        user = self._observe(user_pool_id, username, UserState.PRESENT)
        if user.state != UserState.PRESENT:
            raise InvalidStateTransition(
                f"User {username} must be PRESENT to set a password (current: {user.state.value})"
            )
        self._directory.admin_set_user_password(user_pool_id, username, password, permanent=permanent)
        logger.info(f"[reconciler] password set for {username} (permanent={permanent})")

    def confirm_sign_up(self, user_pool_id: str, username: str) -> None:
        user = self._observe(user_pool_id, username, UserState.PRESENT)
        if user.state != UserState.PRESENT:
            raise InvalidStateTransition(f"User {username} must be PRESENT to confirm sign-up")
        self._directory.admin_confirm_sign_up(user_pool_id, username)
