"""Interactive sources: UI controls and inputs that produce events.

Each source is an immutable value addressed by a topic id. It has no process
of its own; whoever renders it in the front-end posts events for its id to
the router named by ``destination``.

    button = control.button(rt, "Hello")
    inbox = Mailbox()
    control.subscribe(button, inbox, "hello")

    # as the user clicks:
    await inbox.receive()   # Envelope(tag="hello", event={"origin": "client1"})
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
import hashlib
import json
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from . import host
from .exceptions import InvalidArgument

if TYPE_CHECKING:
    from .mailbox import Mailbox
    from .router import EventRouter
    from .runtime import Runtime

INPUT_TYPES = frozenset({"text", "number", "checkbox", "select", "range"})


class KeyboardEvent(str, Enum):
    KEYUP = "keyup"
    KEYDOWN = "keydown"
    STATUS = "status"


@dataclass(frozen=True, eq=True)
class InteractiveSource:
    """Immutable descriptor of a control or input."""

    id: str
    type: str
    destination: EventRouter = field(compare=False, repr=False)
    attrs: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @property
    def kind(self) -> str:
        return "input" if self.type in INPUT_TYPES else "control"

    def __hash__(self) -> int:
        return hash(self.id)


def _canonical(value: Any) -> Any:
    if isinstance(value, InteractiveSource):
        return {"source": value.id}
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def topic_id(token: str, attrs: Mapping[str, Any]) -> str:
    """Derive a topic id from a fresh token and the source attributes."""
    payload = json.dumps([token, _canonical(attrs)], sort_keys=True, default=repr)
    digest = hashlib.blake2b(payload.encode("utf-8"), digest_size=8).digest()
    return str(int.from_bytes(digest, "big"))


def _new(runtime: Runtime, type_: str, attrs: dict[str, Any]) -> InteractiveSource:
    token = host.generate_token(runtime.bridge)
    attrs = {"type": type_, **attrs}
    return InteractiveSource(
        id=topic_id(token, attrs),
        type=type_,
        destination=runtime.router,
        attrs=MappingProxyType(attrs),
    )


def _require_label(label: Any) -> str:
    if not isinstance(label, str):
        raise InvalidArgument(f"expected label to be a string, got: {label!r}")
    return label


def button(runtime: Runtime, label: str) -> InteractiveSource:
    """Create a new button. Events carry only ``origin``."""
    if not isinstance(label, str) or not label:
        raise InvalidArgument(f"expected label to be a non-empty string, got: {label!r}")
    return _new(runtime, "button", {"label": label})


def keyboard(runtime: Runtime, events: Sequence[str | KeyboardEvent]) -> InteractiveSource:
    """Create a keyboard control intercepting the given event kinds.

    Events additionally carry ``type`` (``"keyup"`` or ``"keydown"``) and
    ``key``, the browser ``KeyboardEvent.key`` value.
    """
    if isinstance(events, (str, bytes)) or not isinstance(events, Sequence):
        raise InvalidArgument(f"expected a list of events, got: {events!r}")
    if not events:
        raise InvalidArgument(f"expected at least one event, got: {list(events)!r}")
    normalized: list[str] = []
    for event in events:
        try:
            normalized.append(KeyboardEvent(event).value)
        except ValueError:
            raise InvalidArgument(
                "expected event to be either 'keyup', 'keydown' or 'status', "
                f"got: {event!r}"
            ) from None
    return _new(runtime, "keyboard", {"events": tuple(normalized)})


def form(
    runtime: Runtime,
    fields: Sequence[tuple[str, InteractiveSource]] | Mapping[str, InteractiveSource],
    *,
    submit: str | None = None,
    report_changes: bool | Mapping[str, bool] = False,
    reset_on_submit: bool | Sequence[str] = False,
) -> InteractiveSource:
    """Create a form grouping several inputs.

    At least one of ``submit`` (the submit button label) or
    ``report_changes`` must be enabled.
    """
    pairs = list(fields.items()) if isinstance(fields, Mapping) else list(fields)
    if not pairs:
        raise InvalidArgument(f"expected at least one field, got: {pairs!r}")
    for pair in pairs:
        if not isinstance(pair, tuple) or len(pair) != 2:
            raise InvalidArgument(f"expected fields to be (name, input) pairs, got: {pair!r}")
        name, value = pair
        if not isinstance(value, InteractiveSource) or value.kind != "input":
            raise InvalidArgument(f"expected each field to be an input, got: {value!r} for {name!r}")
    names = [name for name, _ in pairs]

    if isinstance(report_changes, bool):
        report_changes = {name: report_changes for name in names}
    else:
        report_changes = {name: bool(report_changes.get(name, False)) for name in names}

    if reset_on_submit is True:
        reset_on_submit = names
    elif reset_on_submit is False:
        reset_on_submit = []
    else:
        unknown = [name for name in reset_on_submit if name not in names]
        if unknown:
            raise InvalidArgument(f"expected reset_on_submit to name form fields, got: {unknown!r}")
        reset_on_submit = list(reset_on_submit)

    if submit is None and not any(report_changes.values()):
        raise InvalidArgument("expected either submit or report_changes option to be enabled")
    if submit is not None and not isinstance(submit, str):
        raise InvalidArgument(f"expected submit to be a button label, got: {submit!r}")

    return _new(
        runtime,
        "form",
        {
            "fields": tuple(pairs),
            "submit": submit,
            "report_changes": MappingProxyType(report_changes),
            "reset_on_submit": tuple(reset_on_submit),
        },
    )


def text(runtime: Runtime, label: str, default: str = "") -> InteractiveSource:
    """Create a text input. Change events carry ``value``."""
    label = _require_label(label)
    if not isinstance(default, str):
        raise InvalidArgument(f"expected default to be a string, got: {default!r}")
    return _new(runtime, "text", {"label": label, "default": default})


def number(runtime: Runtime, label: str, default: int | float | None = None) -> InteractiveSource:
    label = _require_label(label)
    if default is not None and (isinstance(default, bool) or not isinstance(default, (int, float))):
        raise InvalidArgument(f"expected default to be a number or None, got: {default!r}")
    return _new(runtime, "number", {"label": label, "default": default})


def checkbox(runtime: Runtime, label: str, default: bool = False) -> InteractiveSource:
    label = _require_label(label)
    if not isinstance(default, bool):
        raise InvalidArgument(f"expected default to be a boolean, got: {default!r}")
    return _new(runtime, "checkbox", {"label": label, "default": default})


def select(
    runtime: Runtime,
    label: str,
    options: Sequence[tuple[Any, str]],
    default: Any = None,
) -> InteractiveSource:
    """Create a select input from ``(value, label)`` options."""
    label = _require_label(label)
    options = list(options)
    if not options:
        raise InvalidArgument(f"expected at least one option, got: {options!r}")
    for option in options:
        if not isinstance(option, tuple) or len(option) != 2:
            raise InvalidArgument(f"expected options to be (value, label) pairs, got: {option!r}")
    values = [value for value, _ in options]
    if default is None:
        default = values[0]
    elif default not in values:
        raise InvalidArgument(
            f"expected default to be one of the option values {values!r}, got: {default!r}"
        )
    return _new(runtime, "select", {"label": label, "options": tuple(options), "default": default})


def range_input(
    runtime: Runtime,
    label: str,
    *,
    min: int | float = 0,
    max: int | float = 100,
    step: int | float = 1,
    default: int | float | None = None,
) -> InteractiveSource:
    """Create a slider over ``[min, max]``."""
    label = _require_label(label)
    if min >= max:
        raise InvalidArgument(f"expected min to be less than max, got: min={min!r}, max={max!r}")
    if step <= 0:
        raise InvalidArgument(f"expected step to be positive, got: {step!r}")
    if default is None:
        default = min
    elif not min <= default <= max:
        raise InvalidArgument(f"expected default to be within [{min}, {max}], got: {default!r}")
    return _new(
        runtime,
        "range",
        {"label": label, "min": min, "max": max, "step": step, "default": default},
    )


_FACTORIES: dict[str, Any] = {
    "button": button,
    "keyboard": keyboard,
    "form": form,
    "text": text,
    "number": number,
    "checkbox": checkbox,
    "select": select,
    "range": range_input,
}


def create(runtime: Runtime, type: str, /, *args: Any, **attrs: Any) -> InteractiveSource:
    """Create a source of the given type, e.g. ``create(rt, "keyboard", ["keyup"])``."""
    try:
        factory = _FACTORIES[type]
    except (KeyError, TypeError):
        raise InvalidArgument(
            f"expected type to be one of {sorted(_FACTORIES)!r}, got: {type!r}"
        ) from None
    return factory(runtime, *args, **attrs)


def subscribe(source: InteractiveSource, subscriber: Mailbox, tag: Any) -> None:
    """Subscribe ``subscriber`` to ``source`` events, delivered as ``Envelope(tag, info)``.

    ``info`` always includes ``origin``, an opaque identifier of the client
    that triggered the event.
    """
    source.destination.subscribe(source.id, subscriber, tag)


def unsubscribe(source: InteractiveSource, subscriber: Mailbox) -> None:
    source.destination.unsubscribe(source.id, subscriber)
