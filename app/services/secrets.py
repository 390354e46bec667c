"""Credential lookup for the Slack bot token: static (env) or AWS Secrets Manager."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

if TYPE_CHECKING:
    from app.core.config import Settings

# Key read from JSON-object secrets, e.g. {"token": "xoxb-..."}.
SECRET_JSON_TOKEN_KEY = "token"


class SecretUnavailableError(Exception):
    """Raised when a secret cannot be read (unknown name, access denied, store unreachable)."""

    def __init__(self, message: str, secret_name: str | None = None, cause: Exception | None = None) -> None:
        self.message = message
        self.secret_name = secret_name
        self.cause = cause
        super().__init__(message)


@runtime_checkable
class SecretProvider(Protocol):
    """Looks up a secret by name and returns it as a string."""

    async def get_secret(self, name: str) -> str: ...


class StaticSecretProvider:
    """Mapping-backed provider; used for env-configured tokens and tests."""

    def __init__(self, secrets: Mapping[str, str]) -> None:
        self._secrets = dict(secrets)

    async def get_secret(self, name: str) -> str:
        value = self._secrets.get(name)
        if not value or not value.strip():
            raise SecretUnavailableError(f"Secret '{name}' is not configured.", secret_name=name)
        return value


def _extract_token(secret_string: str, name: str) -> str:
    """Accept a plain-string secret or a JSON object with a 'token' field."""
    s = secret_string.strip()
    if s.startswith("{"):
        try:
            data = json.loads(s)
        except json.JSONDecodeError as e:
            raise SecretUnavailableError(
                f"Secret '{name}' looks like JSON but cannot be parsed.", secret_name=name, cause=e
            ) from e
        token = data.get(SECRET_JSON_TOKEN_KEY) if isinstance(data, dict) else None
        if not isinstance(token, str) or not token.strip():
            raise SecretUnavailableError(
                f"Secret '{name}' has no '{SECRET_JSON_TOKEN_KEY}' field.", secret_name=name
            )
        return token.strip()
    if not s:
        raise SecretUnavailableError(f"Secret '{name}' is empty.", secret_name=name)
    return s


class SecretsManagerProvider:
    """AWS Secrets Manager provider. The blocking boto3 call runs in a worker thread."""

    def __init__(self, client: Any | None = None, region_name: str | None = None) -> None:
        self._client = client or boto3.client("secretsmanager", region_name=region_name)

    def _fetch(self, name: str) -> str:
        try:
            response = self._client.get_secret_value(SecretId=name)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "ClientError")
            raise SecretUnavailableError(
                f"Failed to retrieve secret '{name}': {code}", secret_name=name, cause=e
            ) from e
        except BotoCoreError as e:
            raise SecretUnavailableError(
                f"Failed to retrieve secret '{name}': secret store unreachable.", secret_name=name, cause=e
            ) from e
        secret_string = response.get("SecretString")
        if secret_string is None:
            raise SecretUnavailableError(f"Secret '{name}' has no string value.", secret_name=name)
        return _extract_token(secret_string, name)

    async def get_secret(self, name: str) -> str:
        return await asyncio.to_thread(self._fetch, name)


def build_secret_provider(settings: Settings) -> SecretProvider:
    """Select the provider configured by SECRET_BACKEND."""
    if settings.SECRET_BACKEND == "aws":
        return SecretsManagerProvider(region_name=settings.AWS_REGION)
    token = settings.SLACK_BOT_TOKEN.get_secret_value() if settings.SLACK_BOT_TOKEN else ""
    return StaticSecretProvider({settings.SLACK_TOKEN_SECRET_NAME: token})
