"""Output values exchanged with the notebook host.

Formatting arbitrary terms is the host integration's job; the runtime only
needs *some* callable turning a term into an output mapping. ``to_output`` is
the plain-text fallback used when no renderer is configured.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Literal

Output = Mapping[str, Any]
Renderer = Callable[[Any], Output]

FrameUpdateType = Literal["replace", "append"]


def to_output(term: Any) -> Output:
    """Render ``term`` as terminal text, passing existing outputs through."""
    if isinstance(term, Mapping) and "type" in term:
        return term
    return {"type": "terminal_text", "text": repr(term), "chunk": False}


def frame_output(outputs: list[Output], ref: str, update: FrameUpdateType) -> Output:
    """Build the output describing an update of frame ``ref``."""
    return {"type": "frame", "ref": ref, "outputs": list(outputs), "update": update}
