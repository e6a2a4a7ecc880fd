"""Geodata engine seam and its geopandas-backed implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Protocol

from .bounds import QueryRegion
from .errors import DataSourceError

_LOGGER = logging.getLogger("tilepress.geodata")


@dataclass(frozen=True, slots=True)
class Feature:
    """One query row: a shapely geometry (or None) plus its attributes."""

    geometry: Any | None
    properties: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class QueryResult:
    crs: Any | None
    features: tuple[Feature, ...] = ()

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)


class DataSource(Protocol):
    source: str

    def execute(
        self,
        query: str,
        region: QueryRegion | None = None,
        *,
        limit: int | None = None,
    ) -> QueryResult | None:
        """Run ``query``; ``None`` means the query legitimately produced no layer."""


class GeodataEngine(Protocol):
    def open_shared(self, source: str) -> DataSource:
        """Open (or reuse) a connection and take one reference to it."""

    def release(self, handle: DataSource) -> None:
        """Drop one reference taken by ``open_shared``."""


class _SharedSource:
    __slots__ = ("source", "refcount", "_gpd")

    def __init__(self, source: str, gpd: Any) -> None:
        self.source = source
        self.refcount = 0
        self._gpd = gpd

    def execute(
        self,
        query: str,
        region: QueryRegion | None = None,
        *,
        limit: int | None = None,
    ) -> QueryResult | None:
        kwargs: dict[str, Any] = {"sql": query}
        if region is not None:
            kwargs["mask"] = region.geometry
        if limit is not None:
            kwargs["rows"] = limit
        try:
            frame = self._gpd.read_file(self.source, **kwargs)
        except Exception as exc:
            raise DataSourceError(f"Query failed on '{self.source}': {exc}") from exc
        crs = getattr(frame, "crs", None)
        if crs is None:
            return None
        return QueryResult(crs=crs, features=tuple(_frame_features(frame)))

    def __repr__(self) -> str:
        return f"_SharedSource({self.source!r}, refcount={self.refcount})"


class GeoPandasEngine:
    """Connection cache over geopandas/OGR data sources.

    The first open of a source retains one extra reference for the cache, so a
    long-lived process keeps the connection between renders until
    ``close_all`` runs.
    """

    def __init__(self) -> None:
        self._sources: dict[str, _SharedSource] = {}

    def open_shared(self, source: str) -> _SharedSource:
        handle = self._sources.get(source)
        if handle is None:
            gpd = _require_geopandas()
            try:
                layers = gpd.list_layers(source)
            except Exception as exc:
                raise DataSourceError(f"Error opening data source '{source}': {exc}") from exc
            _LOGGER.debug("Opened data source %s (%d layers)", source, len(layers))
            handle = _SharedSource(source, gpd)
            handle.refcount = 1
            self._sources[source] = handle
        handle.refcount += 1
        return handle

    def release(self, handle: DataSource) -> None:
        shared = self._sources.get(handle.source)
        if shared is None or shared is not handle:
            return
        shared.refcount -= 1
        if shared.refcount <= 0:
            del self._sources[handle.source]

    def refcount(self, source: str) -> int:
        handle = self._sources.get(source)
        return handle.refcount if handle is not None else 0

    def close_all(self) -> None:
        self._sources.clear()


def _frame_features(frame: Any) -> Iterator[Feature]:
    geometry_name = frame.geometry.name
    attributes = frame.drop(columns=[geometry_name])
    for geometry, row in zip(frame.geometry, attributes.to_dict("records")):
        yield Feature(geometry=geometry, properties=row)


def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("geopandas is required for reading data sources") from exc
    return gpd


_DEFAULT_ENGINE: GeoPandasEngine | None = None


def default_engine() -> GeoPandasEngine:
    global _DEFAULT_ENGINE
    if _DEFAULT_ENGINE is None:
        _DEFAULT_ENGINE = GeoPandasEngine()
    return _DEFAULT_ENGINE
