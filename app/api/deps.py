"""Process-wide pipeline collaborators, built once and injected into routes."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from app.core.config import Settings, get_settings
from app.schemas.policy import NotificationPolicy
from app.services.dispatcher import SlackDispatcher
from app.services.policy import build_policy
from app.services.secrets import SecretProvider, build_secret_provider


@lru_cache
def get_policy() -> NotificationPolicy:
    """Policy is loaded once per process and read-only thereafter."""
    return build_policy(get_settings())


@lru_cache
def get_secret_provider() -> SecretProvider:
    return build_secret_provider(get_settings())


def get_dispatcher(
    policy: Annotated[NotificationPolicy, Depends(get_policy)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SlackDispatcher:
    return SlackDispatcher.from_settings(policy, settings)
