"""Result set interface shared by both upstream transports.

A result set exposes its schema up front and its rows as batches. Streaming
result sets decode batches lazily from the open HTTP response and can be
consumed once; buffered result sets are fully decoded before they are returned.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from types import TracebackType
from typing import Any, Protocol

from logfire_pg.schema.descriptors import ColumnSchema

Row = tuple[Any, ...]


class ResultSet(Protocol):
    """Protocol implemented by upstream query results."""

    @property
    def schema(self) -> Sequence[ColumnSchema]:
        """Columns in result order."""
        ...

    @property
    def is_streaming(self) -> bool:
        """True when batches are decoded lazily from the network."""
        ...

    def batches(self) -> Iterator[list[Row]]:
        """Yield rows batch by batch, in upstream order.

        Every row has exactly `len(schema)` values. May block on network reads.
        """
        ...

    def rows(self) -> Iterator[Row]:
        """Yield rows one at a time across all batches."""
        ...

    def close(self) -> None:
        """Release the response and decoder state. Safe to call more than once."""
        ...

    def __enter__(self) -> ResultSet: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None: ...


class BaseResultSet:
    """Common result set behavior.

    Subclasses implement `_iter_batches` and `_release`.
    """

    is_streaming = False

    def __init__(self, schema: Sequence[ColumnSchema]) -> None:
        self._schema = list(schema)
        self._consumed = False
        self._closed = False

    @property
    def schema(self) -> Sequence[ColumnSchema]:
        return self._schema

    @property
    def closed(self) -> bool:
        return self._closed

    def batches(self) -> Iterator[list[Row]]:
        if self._closed:
            raise RuntimeError("result set is closed")
        if self._consumed and self.is_streaming:
            raise RuntimeError("streaming result set can only be consumed once")
        self._consumed = True
        return self._iter_batches()

    def rows(self) -> Iterator[Row]:
        for batch in self.batches():
            yield from batch

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._release()

    def _iter_batches(self) -> Iterator[list[Row]]:
        raise NotImplementedError

    def _release(self) -> None:
        """Release transport resources. Default: nothing to release."""

    def __enter__(self) -> BaseResultSet:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
