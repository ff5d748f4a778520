"""Host bridge: the RPC boundary between the runtime and the notebook host.

Bridge calls are synchronous. Output publication is fire-and-forget; every
other call either returns a value or raises ``BridgeError`` carrying the
host's reason (``"forbidden"``, ``"not_found"``, ``"not_available"``, ...).
Callers normally go through ``livecells.host``, which maps those reasons onto
the public exception types.

Bridges that talk to a remote host set ``blocking = True``; widgets then
publish from a worker thread instead of the event loop.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
import secrets
import time
from typing import Any, NamedTuple, Protocol, runtime_checkable

import httpx

from .output import Output

LOGGER = logging.getLogger(__name__)


class BridgeError(Exception):
    """Raw error reply from the host."""

    def __init__(self, reason: Any) -> None:
        super().__init__(f"bridge error: {reason!r}")
        self.reason = reason


@runtime_checkable
class Bridge(Protocol):
    blocking: bool

    def generate_token(self) -> str: ...

    def put_output(self, output: Output) -> None: ...

    def put_output_to(self, client_id: str, output: Output) -> None: ...

    def put_output_to_clients(self, output: Output) -> None: ...

    def get_evaluation_file(self) -> str: ...

    def get_file_entry_path(self, name: str) -> str: ...

    def get_app_info(self) -> dict[str, Any]: ...

    def get_user_info(self, client_id: str) -> dict[str, Any]: ...


class PublishedOutput(NamedTuple):
    """An output recorded by ``LocalBridge``."""

    target: str  # "default", "client" or "clients"
    client_id: str | None
    output: Output


class LocalBridge:
    """In-process bridge used when no host is attached, and in tests.

    Published outputs are recorded in ``outputs`` in publication order.
    """

    blocking = False

    def __init__(
        self,
        *,
        files: Mapping[str, str] | None = None,
        forbidden_files: set[str] | frozenset[str] = frozenset(),
        evaluation_file: str | None = None,
        app_info: dict[str, Any] | None = None,
        users: Mapping[str, dict[str, Any]] | None = None,
    ) -> None:
        self.outputs: list[PublishedOutput] = []
        self._files = dict(files or {})
        self._forbidden = set(forbidden_files)
        self._evaluation_file = evaluation_file
        self._app_info = app_info if app_info is not None else {"type": "none"}
        self._users = dict(users) if users is not None else None

    def generate_token(self) -> str:
        return secrets.token_urlsafe(16)

    def put_output(self, output: Output) -> None:
        self.outputs.append(PublishedOutput("default", None, output))

    def put_output_to(self, client_id: str, output: Output) -> None:
        self.outputs.append(PublishedOutput("client", client_id, output))

    def put_output_to_clients(self, output: Output) -> None:
        self.outputs.append(PublishedOutput("clients", None, output))

    def get_evaluation_file(self) -> str:
        if self._evaluation_file is None:
            raise BridgeError("not_available")
        return self._evaluation_file

    def get_file_entry_path(self, name: str) -> str:
        if name in self._forbidden:
            raise BridgeError("forbidden")
        try:
            return self._files[name]
        except KeyError:
            raise BridgeError("not_found") from None

    def get_app_info(self) -> dict[str, Any]:
        return dict(self._app_info)

    def get_user_info(self, client_id: str) -> dict[str, Any]:
        if self._users is None:
            raise BridgeError("not_available")
        try:
            return dict(self._users[client_id])
        except KeyError:
            raise BridgeError("not_found") from None


class HttpBridge:
    """Bridge speaking JSON over HTTP to a host endpoint.

    Each call is ``POST /rpc/<method>`` with a JSON object of parameters; the
    host replies ``{"ok": value}`` or ``{"error": reason}``. Transport errors
    are retried with a linear backoff.
    """

    blocking = True

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        retries: int = 2,
        retry_backoff_seconds: float = 0.5,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.retries = max(0, retries)
        self.retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self._client = client or httpx.Client(base_url=url, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _post(self, method: str, params: dict[str, Any] | None) -> httpx.Response:
        attempt = 0
        while True:
            try:
                return self._client.post(f"/rpc/{method}", json=params or {})
            except httpx.TransportError as exc:
                LOGGER.warning(
                    "bridge.request.retry",
                    extra={
                        "event": "bridge.request.retry",
                        "method": method,
                        "attempt": attempt + 1,
                        "error": str(exc),
                    },
                )
                if attempt >= self.retries:
                    raise BridgeError("unreachable") from exc
                time.sleep(self.retry_backoff_seconds * (attempt + 1))
                attempt += 1

    def _rpc(self, method: str, params: dict[str, Any] | None = None) -> Any:
        response = self._post(method, params)
        try:
            payload = response.json()
        except ValueError:
            raise BridgeError(f"http_{response.status_code}") from None
        if not isinstance(payload, dict):
            raise BridgeError(f"malformed reply: {payload!r}")
        if "error" in payload:
            raise BridgeError(payload["error"])
        if response.is_error:
            raise BridgeError(f"http_{response.status_code}")
        return payload.get("ok")

    def _publish(self, method: str, params: dict[str, Any]) -> None:
        try:
            self._rpc(method, params)
        except BridgeError as exc:
            LOGGER.warning(
                "bridge.publish_failed",
                extra={"event": "bridge.publish_failed", "method": method, "reason": str(exc.reason)},
            )

    def generate_token(self) -> str:
        return str(self._rpc("generate_token"))

    def put_output(self, output: Output) -> None:
        self._publish("put_output", {"output": dict(output)})

    def put_output_to(self, client_id: str, output: Output) -> None:
        self._publish("put_output_to", {"client_id": client_id, "output": dict(output)})

    def put_output_to_clients(self, output: Output) -> None:
        self._publish("put_output_to_clients", {"output": dict(output)})

    def get_evaluation_file(self) -> str:
        return self._rpc("get_evaluation_file")

    def get_file_entry_path(self, name: str) -> str:
        return self._rpc("get_file_entry_path", {"name": name})

    def get_app_info(self) -> dict[str, Any]:
        return self._rpc("get_app_info")

    def get_user_info(self, client_id: str) -> dict[str, Any]:
        return self._rpc("get_user_info", {"client_id": client_id})

    def __repr__(self) -> str:
        return f"HttpBridge({self.url!r})"


def build_bridge(bridge_config: Mapping[str, Any]) -> Bridge:
    """Create the bridge described by the ``[bridge]`` config section."""
    kind = bridge_config.get("kind", "local")
    if kind == "http":
        return HttpBridge(
            url=str(bridge_config["url"]),
            timeout=float(bridge_config.get("timeout", 10.0)),
            retries=int(bridge_config.get("retries", 2)),
            retry_backoff_seconds=float(bridge_config.get("retry_backoff_seconds", 0.5)),
        )
    return LocalBridge()
