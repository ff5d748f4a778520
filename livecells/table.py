"""A widget for interactively paging through an in-memory collection.

Records may be tuples, lists, mappings or plain values; a mapping passed as
the collection is viewed as its ``(key, value)`` items.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from .exceptions import InvalidArgument
from .widget import StatefulWidget

if TYPE_CHECKING:
    from .runtime import Runtime

FEATURES = ["refetch", "pagination"]


def _record_fields(record: Any) -> dict[Any, Any]:
    if isinstance(record, Mapping):
        return dict(record)
    if isinstance(record, (tuple, list)):
        return dict(enumerate(record))
    return {0: record}


def columns_for_records(records: Sequence[Any]) -> list[dict[str, Any]]:
    """Column descriptors covering every field of ``records``, in first-seen order."""
    keys: dict[Any, None] = {}
    for record in records:
        for key in _record_fields(record):
            keys.setdefault(key, None)
    return [{"key": key, "label": str(key)} for key in keys]


def record_to_row(record: Any) -> dict[str, Any]:
    # The row id is opaque to the client and unused for now.
    return {"id": None, "fields": {key: repr(value) for key, value in _record_fields(record).items()}}


class TableWidget(StatefulWidget):
    """Read-only paged view of a collection of records."""

    def __init__(
        self,
        runtime: Runtime,
        records: Sequence[Any] | Mapping[Any, Any],
        name: str | None = None,
        *,
        owner: Any = None,
    ) -> None:
        if isinstance(records, Mapping):
            rows = list(records.items())
        elif isinstance(records, Sequence) and not isinstance(records, (str, bytes)):
            rows = list(records)
        else:
            raise InvalidArgument(
                f"expected records to be a sequence or a mapping, got: {records!r}"
            )
        super().__init__(runtime, owner=owner)
        self._records = rows
        self.name = name or f"Table {self.ref[:8]}"

    @classmethod
    def start(
        cls,
        runtime: Runtime,
        records: Sequence[Any] | Mapping[Any, Any],
        name: str | None = None,
        *,
        owner: Any = None,
    ) -> TableWidget:
        return cls._spawn(runtime, records, name, owner=owner)

    async def connect(self) -> dict[str, Any]:
        """Table name, column shape probed from the first record, and features."""
        return await self.call(("connect",))

    async def get_rows(self, offset: int = 0, limit: int = 10) -> dict[str, Any]:
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise InvalidArgument(f"expected offset to be a non-negative integer, got: {offset!r}")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidArgument(f"expected limit to be a positive integer, got: {limit!r}")
        return await self.call(("get_rows", offset, limit))

    def handle_call(self, request: Any) -> Any:
        if request == ("connect",):
            columns = columns_for_records(self._records[:1])
            return {"name": self.name, "columns": columns, "features": list(FEATURES)}
        if isinstance(request, tuple) and request[0] == "get_rows":
            _, offset, limit = request
            page = self._records[offset:offset + limit]
            return {
                "rows": [record_to_row(record) for record in page],
                "total_rows": len(self._records),
                "columns": columns_for_records(page) if page else "initial",
            }
        return super().handle_call(request)
