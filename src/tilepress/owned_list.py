"""Ordered container that owns its values and releases them once."""

from __future__ import annotations

from typing import Callable, Generic, Iterator, TypeVar

from .errors import OwnershipError

T = TypeVar("T")

_UNTRACKED = object()


class OwnedList(Generic[T]):
    """Insertion-ordered sequence of owned values.

    Values that expose an ``_owner`` attribute (filters, layers) are claimed on
    push; pushing one that another list already owns raises ``OwnershipError``.
    Immutable values such as styles carry no owner marker and are stored as-is.
    """

    __slots__ = ("_items", "_release")

    def __init__(self, release: Callable[[T], None] | None = None) -> None:
        self._items: list[T] = []
        self._release = release

    def push(self, value: T) -> T:
        owner = getattr(value, "_owner", _UNTRACKED)
        if owner is not _UNTRACKED:
            if owner is not None:
                raise OwnershipError(f"{value!r} is already owned by another list")
            setattr(value, "_owner", self)
        self._items.append(value)
        return value

    def set_release(self, release: Callable[[T], None] | None) -> None:
        self._release = release

    def lookup(self, predicate: Callable[[T], bool]) -> T | None:
        for value in self._items:
            if predicate(value):
                return value
        return None

    def release(self) -> None:
        """Run the release hook once per value, then drop every value."""
        items, self._items = self._items, []
        for value in items:
            if self._release is not None:
                self._release(value)
            if getattr(value, "_owner", _UNTRACKED) is self:
                setattr(value, "_owner", None)

    @property
    def head(self) -> T | None:
        return self._items[0] if self._items else None

    @property
    def tail(self) -> T | None:
        return self._items[-1] if self._items else None

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __repr__(self) -> str:
        return f"OwnedList({self._items!r})"
