# provisioning_engine/identity/capability.py
"""Least-privilege capability for the identity reconciler."""

from dataclasses import dataclass
from typing import Dict, Optional

from pydantic import SecretStr

from provisioning_engine.core.errors import AuthorizationDenied
from provisioning_engine.identity.directory import UserDirectory


CREATE_USER = "cognito-idp:AdminCreateUser"
DELETE_USER = "cognito-idp:AdminDeleteUser"
SET_PASSWORD = "cognito-idp:AdminSetUserPassword"
CONFIRM_SIGN_UP = "cognito-idp:AdminConfirmSignUp"
UPDATE_ATTRIBUTES = "cognito-idp:AdminUpdateUserAttributes"
GET_USER = "cognito-idp:AdminGetUser"

ADMIN_USER_ACTIONS = (
    CREATE_USER,
    DELETE_USER,
    SET_PASSWORD,
    CONFIRM_SIGN_UP,
    UPDATE_ATTRIBUTES,
)


@dataclass(frozen=True)
class AdminCapability:
    """
    The exact set of admin actions the reconciler may perform, on exactly
    one user pool. Anything broader is rejected at construction.
    """

    user_pool_id: str
    user_pool_arn: str
    actions: tuple = ADMIN_USER_ACTIONS

    def __post_init__(self):
        actions = tuple(self.actions)
        object.__setattr__(self, "actions", actions)

        if any("*" in action for action in actions):
            raise AuthorizationDenied("Capability must not use wildcard actions")

        unexpected = set(actions) - set(ADMIN_USER_ACTIONS)
        if unexpected:
            raise AuthorizationDenied(
                f"Capability grants actions beyond user management: {sorted(unexpected)}"
            )

        missing = set(ADMIN_USER_ACTIONS) - set(actions)
        if missing:
            raise AuthorizationDenied(
                f"Capability is missing required actions: {sorted(missing)}"
            )

        if not self.user_pool_id or "*" in self.user_pool_arn:
            raise AuthorizationDenied("Capability must be scoped to a single user pool")

        if not self.user_pool_arn.endswith(f"userpool/{self.user_pool_id}"):
            raise AuthorizationDenied(
                f"Capability resource {self.user_pool_arn} does not match pool {self.user_pool_id}"
            )

    @classmethod
    def from_properties(cls, properties: Dict) -> "AdminCapability":
        return cls(
            user_pool_id=properties["user_pool_id"],
            user_pool_arn=properties["user_pool_arn"],
            actions=tuple(properties.get("actions", ())),
        )

    def allows(self, action: str, user_pool_id: str) -> bool:
        return action in self.actions and user_pool_id == self.user_pool_id

    def to_dict(self) -> Dict:
        return {
            "user_pool_id": self.user_pool_id,
            "user_pool_arn": self.user_pool_arn,
            "actions": list(self.actions),
        }


class ScopedUserDirectory(UserDirectory):
    """Wraps a directory so every call is checked against a capability."""

    def __init__(self, directory: UserDirectory, capability: AdminCapability):
        self._directory = directory
        self.capability = capability

    def _authorize(self, action: str, user_pool_id: str) -> None:
        if not self.capability.allows(action, user_pool_id):
            raise AuthorizationDenied(
                f"{action} on pool {user_pool_id} is outside the granted capability"
            )

    def get_user(self, user_pool_id: str, username: str) -> Optional[Dict]:
        """
        Always denied: AdminGetUser is not part of the capability. The
        reconciler tracks user state itself; operators read users through
        the unscoped directory.
        """
        raise AuthorizationDenied(
            f"{GET_USER} on pool {user_pool_id} is outside the granted capability"
        )

    def admin_create_user(self, user_pool_id, username, attributes, temporary_password: SecretStr, suppress_message=True):
        self._authorize(CREATE_USER, user_pool_id)
        self._directory.admin_create_user(
            user_pool_id, username, attributes, temporary_password, suppress_message
        )

    def admin_delete_user(self, user_pool_id, username):
        self._authorize(DELETE_USER, user_pool_id)
        self._directory.admin_delete_user(user_pool_id, username)

    def admin_set_user_password(self, user_pool_id, username, password: SecretStr, permanent=False):
        self._authorize(SET_PASSWORD, user_pool_id)
        self._directory.admin_set_user_password(user_pool_id, username, password, permanent)

    def admin_confirm_sign_up(self, user_pool_id, username):
        self._authorize(CONFIRM_SIGN_UP, user_pool_id)
        self._directory.admin_confirm_sign_up(user_pool_id, username)

    def admin_update_user_attributes(self, user_pool_id, username, attributes):
        self._authorize(UPDATE_ATTRIBUTES, user_pool_id)
        self._directory.admin_update_user_attributes(user_pool_id, username, attributes)
