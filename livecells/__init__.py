"""Top-level package for livecells."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .bridge import HttpBridge, LocalBridge
    from .config import load_config
    from .control import InteractiveSource
    from .exceptions import (
        BridgeFailure,
        ConfigValidationError,
        ForbiddenError,
        InvalidArgument,
        LiveCellsError,
        WidgetStoppedError,
    )
    from .frame import HALT, Continue, Frame
    from .mailbox import Mailbox
    from .router import Envelope, EventRouter, TopicCleared
    from .runtime import Runtime
    from .stream import EventStream, Interval
    from .table import TableWidget
    from .widget import StatefulWidget, StopReason, WidgetState

_EXPORTS = {
    "BridgeFailure": "exceptions",
    "ConfigValidationError": "exceptions",
    "Continue": "frame",
    "Envelope": "router",
    "EventRouter": "router",
    "EventStream": "stream",
    "ForbiddenError": "exceptions",
    "Frame": "frame",
    "HALT": "frame",
    "HttpBridge": "bridge",
    "InteractiveSource": "control",
    "Interval": "stream",
    "InvalidArgument": "exceptions",
    "LiveCellsError": "exceptions",
    "LocalBridge": "bridge",
    "Mailbox": "mailbox",
    "Runtime": "runtime",
    "StatefulWidget": "widget",
    "StopReason": "widget",
    "TableWidget": "table",
    "TopicCleared": "router",
    "WidgetState": "widget",
    "WidgetStoppedError": "exceptions",
    "load_config": "config",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import symbols so ``import livecells`` stays cheap."""
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(import_module(f".{module_name}", __name__), name)
