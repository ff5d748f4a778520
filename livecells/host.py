"""Host-provided information: notebook files, app deployment and users."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Literal

from .bridge import Bridge, BridgeError
from .exceptions import BridgeFailure, ForbiddenError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserInfoUnavailable:
    """Soft failure of ``user_info``: no such client, or no user data for the session."""

    reason: Literal["not_found", "not_available"]


def generate_token(bridge: Bridge) -> str:
    """Fresh unique token used to derive topic ids."""
    try:
        return bridge.generate_token()
    except BridgeError as exc:
        raise BridgeFailure(
            f"failed to generate token, reason: {exc.reason!r}", exc.reason
        ) from exc


def file_path(bridge: Bridge, name: str) -> str:
    """Return a local path for the notebook file ``name``.

    Treat the file as read-only: the path may point at the original file.
    """
    try:
        return bridge.get_file_entry_path(name)
    except BridgeError as exc:
        if exc.reason == "forbidden":
            raise ForbiddenError(name) from exc
        raise BridgeFailure(
            f"failed to access file path, reason: {exc.reason!r}", exc.reason
        ) from exc


def evaluation_file(bridge: Bridge) -> str:
    """Path of the notebook currently being evaluated."""
    try:
        return bridge.get_evaluation_file()
    except BridgeError as exc:
        raise BridgeFailure(
            f"failed to access evaluation file, reason: {exc.reason!r}", exc.reason
        ) from exc


def app_info(bridge: Bridge) -> dict[str, Any]:
    """Information about the running app, ``{"type": "none"}`` outside deployments."""
    try:
        return bridge.get_app_info()
    except BridgeError as exc:
        LOGGER.warning(
            "host.app_info_unavailable",
            extra={"event": "host.app_info_unavailable", "reason": str(exc.reason)},
        )
        return {"type": "none"}


def user_info(bridge: Bridge, client_id: str) -> dict[str, Any] | UserInfoUnavailable:
    """User information for a connected client.

    Returns ``UserInfoUnavailable`` for the two expected soft failures and
    raises ``BridgeFailure`` for anything else.
    """
    try:
        return bridge.get_user_info(client_id)
    except BridgeError as exc:
        if exc.reason in ("not_found", "not_available"):
            return UserInfoUnavailable(exc.reason)
        raise BridgeFailure(
            f"failed to access user info, reason: {exc.reason!r}", exc.reason
        ) from exc
