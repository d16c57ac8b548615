# provisioning_engine/identity/directory.py
"""User directory collaborators (admin user management API)."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import boto3
import requests
from botocore.exceptions import ClientError
from pydantic import SecretStr

from provisioning_engine.core.errors import IdentityError, UserAlreadyExists, UserNotFound

logger = logging.getLogger(__name__)


class UserDirectory(ABC):
    """
    Admin API of an identity provider's user directory.

    Implementations translate provider-specific "user exists" and
    "user missing" failures into UserAlreadyExists / UserNotFound.
    """

    @abstractmethod
    def get_user(self, user_pool_id: str, username: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def admin_create_user(
        self,
        user_pool_id: str,
        username: str,
        attributes: Dict[str, str],
        temporary_password: SecretStr,
        suppress_message: bool = True,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def admin_delete_user(self, user_pool_id: str, username: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def admin_set_user_password(
        self,
        user_pool_id: str,
        username: str,
        password: SecretStr,
        permanent: bool = False,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def admin_confirm_sign_up(self, user_pool_id: str, username: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def admin_update_user_attributes(
        self,
        user_pool_id: str,
        username: str,
        attributes: Dict[str, str],
    ) -> None:
        raise NotImplementedError


def _attribute_list(attributes: Dict[str, str]) -> list:
    return [{"Name": name, "Value": value} for name, value in attributes.items()]


class CognitoUserDirectory(UserDirectory):
    """Cognito user pools via boto3."""

    def __init__(self, client=None, region_name: Optional[str] = None):
        self._client = client or boto3.client("cognito-idp", region_name=region_name)

    @staticmethod
    def _translate(error: ClientError, username: str) -> Exception:
        code = error.response.get("Error", {}).get("Code", "")
        if code == "UsernameExistsException":
            return UserAlreadyExists(f"User {username} already exists")
        if code == "UserNotFoundException":
            return UserNotFound(f"User {username} not found")
        return IdentityError(f"{code or 'ClientError'}: {error}")

    def get_user(self, user_pool_id: str, username: str) -> Optional[Dict[str, Any]]:
        try:
            response = self._client.admin_get_user(UserPoolId=user_pool_id, Username=username)
        except ClientError as e:
            translated = self._translate(e, username)
            if isinstance(translated, UserNotFound):
                return None
            raise translated from e

        return {
            "username": response["Username"],
            "status": response.get("UserStatus"),
            "attributes": {
                a["Name"]: a["Value"] for a in response.get("UserAttributes", [])
            },
        }

    def admin_create_user(
        self,
        user_pool_id: str,
        username: str,
        attributes: Dict[str, str],
        temporary_password: SecretStr,
        suppress_message: bool = True,
    ) -> None:
        params = {
            "UserPoolId": user_pool_id,
            "Username": username,
            "UserAttributes": _attribute_list(attributes),
            "TemporaryPassword": temporary_password.get_secret_value(),
        }
        if suppress_message:
            params["MessageAction"] = "SUPPRESS"

        try:
            self._client.admin_create_user(**params)
        except ClientError as e:
            raise self._translate(e, username) from e

    def admin_delete_user(self, user_pool_id: str, username: str) -> None:
        try:
            self._client.admin_delete_user(UserPoolId=user_pool_id, Username=username)
        except ClientError as e:
            raise self._translate(e, username) from e

    def admin_set_user_password(
        self,
        user_pool_id: str,
        username: str,
        password: SecretStr,
        permanent: bool = False,
    ) -> None:
        try:
            self._client.admin_set_user_password(
                UserPoolId=user_pool_id,
                Username=username,
                Password=password.get_secret_value(),
                Permanent=permanent,
            )
        except ClientError as e:
            raise self._translate(e, username) from e

    def admin_confirm_sign_up(self, user_pool_id: str, username: str) -> None:
        try:
            self._client.admin_confirm_sign_up(UserPoolId=user_pool_id, Username=username)
        except ClientError as e:
            raise self._translate(e, username) from e

    def admin_update_user_attributes(
        self,
        user_pool_id: str,
        username: str,
        attributes: Dict[str, str],
    ) -> None:
        try:
            self._client.admin_update_user_attributes(
                UserPoolId=user_pool_id,
                Username=username,
                UserAttributes=_attribute_list(attributes),
            )
        except ClientError as e:
            raise self._translate(e, username) from e


class SimulatedUserDirectory(UserDirectory):
    """In-process directory backed by the managed-cloud simulator."""

    def __init__(self, simulator):
        self._simulator = simulator

    def get_user(self, user_pool_id, username):
        return self._simulator.get_user(user_pool_id, username)

    def admin_create_user(self, user_pool_id, username, attributes, temporary_password, suppress_message=True):
        self._simulator.admin_create_user(
            user_pool_id,
            username,
            attributes,
            temporary_password.get_secret_value(),
            suppress_message=suppress_message,
        )

    def admin_delete_user(self, user_pool_id, username):
        self._simulator.admin_delete_user(user_pool_id, username)

    def admin_set_user_password(self, user_pool_id, username, password, permanent=False):
        self._simulator.admin_set_user_password(
            user_pool_id, username, password.get_secret_value(), permanent=permanent
        )

    def admin_confirm_sign_up(self, user_pool_id, username):
        self._simulator.admin_confirm_sign_up(user_pool_id, username)

    def admin_update_user_attributes(self, user_pool_id, username, attributes):
        self._simulator.admin_update_user_attributes(user_pool_id, username, attributes)


class AgentUserDirectory(UserDirectory):
    """Directory exposed by a remote cloud agent over HTTP."""

    def __init__(self, agent_url: str, timeout: int = 30):
        self.base_url = agent_url.rstrip("/")
        self.timeout = timeout

    def _users_url(self, user_pool_id: str, username: str = "") -> str:
        url = f"{self.base_url}/user-pools/{user_pool_id}/users"
        return f"{url}/{username}" if username else url

    def _check(self, response: requests.Response, username: str) -> None:
        if response.status_code == 409:
            raise UserAlreadyExists(f"User {username} already exists")
        if response.status_code == 404:
            raise UserNotFound(f"User {username} not found")
        if response.status_code >= 400:
            detail = response.json().get("detail", response.text)
            raise IdentityError(f"Directory call failed: {detail}")

    def get_user(self, user_pool_id, username):
        response = requests.get(self._users_url(user_pool_id, username), timeout=self.timeout)
        if response.status_code == 404:
            return None
        self._check(response, username)
        return response.json()

    def admin_create_user(self, user_pool_id, username, attributes, temporary_password, suppress_message=True):
        response = requests.post(
            self._users_url(user_pool_id),
            json={
                "username": username,
                "attributes": attributes,
                "temporary_password": temporary_password.get_secret_value(),
                "suppress_message": suppress_message,
            },
            timeout=self.timeout,
        )
        self._check(response, username)

    def admin_delete_user(self, user_pool_id, username):
        response = requests.delete(self._users_url(user_pool_id, username), timeout=self.timeout)
        self._check(response, username)

    def admin_set_user_password(self, user_pool_id, username, password, permanent=False):
        response = requests.post(
            f"{self._users_url(user_pool_id, username)}/password",
            json={"password": password.get_secret_value(), "permanent": permanent},
            timeout=self.timeout,
        )
        self._check(response, username)

    def admin_confirm_sign_up(self, user_pool_id, username):
        response = requests.post(
            f"{self._users_url(user_pool_id, username)}/confirm",
            timeout=self.timeout,
        )
        self._check(response, username)

    def admin_update_user_attributes(self, user_pool_id, username, attributes):
        response = requests.put(
            f"{self._users_url(user_pool_id, username)}/attributes",
            json={"attributes": attributes},
            timeout=self.timeout,
        )
        self._check(response, username)
