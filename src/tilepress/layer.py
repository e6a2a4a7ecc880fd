"""A data source and the ordered filters rendered from it."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import cairo

from .errors import TilepressError
from .filter import Filter
from .geodata import GeodataEngine
from .lithograph import Lithograph
from .owned_list import OwnedList

if TYPE_CHECKING:
    from .map import Map

_LOGGER = logging.getLogger("tilepress.layer")


class Layer:
    def __init__(self, source: str) -> None:
        self._source = _require_source(source)
        self.filters: OwnedList[Filter] = OwnedList(release=Filter.close)
        self.error: TilepressError | None = None
        self._owner: Any = None

    @property
    def source(self) -> str:
        return self._source

    def set_source(self, source: str) -> None:
        self._source = _require_source(source)

    def add_filter(self, filter_: Filter | str) -> Filter:
        """Append a filter, taking ownership of an existing one or building it from a query."""
        if not isinstance(filter_, Filter):
            filter_ = Filter(filter_)
        return self.filters.push(filter_)

    def close(self) -> None:
        self.filters.release()

    def process(
        self,
        map_: Map,
        engine: GeodataEngine,
        lithograph: Lithograph,
        ctx: cairo.Context,
    ) -> None:
        """Run every filter against this layer's source, in order.

        The source is opened once and exactly one reference is released on
        every exit path. The first failing filter stops the layer.
        """
        try:
            source = engine.open_shared(self._source)
        except TilepressError as exc:
            self.error = exc
            raise
        try:
            for filter_ in self.filters:
                try:
                    filter_.process(map_, source, lithograph, ctx)
                except TilepressError as exc:
                    self.error = exc
                    raise
                lithograph.apply(filter_.styles)
        finally:
            engine.release(source)
        _LOGGER.debug("Layer %s rendered %d filters", self._source, len(self.filters))

    def __repr__(self) -> str:
        return f"Layer({self._source!r}, filters={len(self.filters)})"


def _require_source(source: Any) -> str:
    if not isinstance(source, str) or not source.strip():
        raise ValueError("Expected non-empty data source string")
    return source
