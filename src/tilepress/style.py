"""Style values and their ordered application to a cairo context."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Iterable, NamedTuple

import cairo

from .errors import UnknownStyleError
from .owned_list import OwnedList

StyleCallback = Callable[[cairo.Context], None]

CLOSED_SHAPE_KEYS = ("line-join", "line-cap", "weight", "fill", "stroke")
OPEN_PATH_KEYS = ("line-join", "line-cap", "weight", "stroke")
POINT_KEYS = ("weight", "fill", "stroke")

_LINE_JOINS = {
    "miter": cairo.LINE_JOIN_MITER,
    "round": cairo.LINE_JOIN_ROUND,
    "bevel": cairo.LINE_JOIN_BEVEL,
}
_LINE_CAPS = {
    "butt": cairo.LINE_CAP_BUTT,
    "round": cairo.LINE_CAP_ROUND,
    "square": cairo.LINE_CAP_SQUARE,
}


class StyleKind(Enum):
    LITERAL = "literal"
    CALLBACK = "callback"


@dataclass(frozen=True, slots=True)
class Style:
    """A named visual attribute: a literal argument or a computed callback."""

    key: str
    kind: StyleKind
    argument: str | None = None
    callback: StyleCallback | None = None

    def __post_init__(self) -> None:
        if self.key not in STYLE_EFFECTS:
            raise UnknownStyleError(f"Unrecognized style key '{self.key}'")
        if self.kind is StyleKind.LITERAL:
            if self.argument is None or self.callback is not None:
                raise ValueError("Literal styles take an argument and no callback")
            STYLE_EFFECTS[self.key].parse(self.argument)
        elif self.callback is None or self.argument is not None:
            raise ValueError("Computed styles take a callback and no argument")

    @classmethod
    def literal(cls, key: str, argument: Any) -> Style:
        text = "" if argument is None else str(argument)
        return cls(key=key, kind=StyleKind.LITERAL, argument=text)

    @classmethod
    def computed(cls, key: str, callback: StyleCallback) -> Style:
        return cls(key=key, kind=StyleKind.CALLBACK, callback=callback)

    def apply(self, ctx: cairo.Context) -> None:
        if self.callback is not None:
            self.callback(ctx)
            return
        effect = STYLE_EFFECTS[self.key]
        effect.paint(ctx, effect.parse(self.argument or ""))


def lookup_style(styles: OwnedList[Style], key: str) -> Style | None:
    """First style in ``styles`` whose key is ``key``."""
    return styles.lookup(lambda style: style.key == key)


def apply_styles(ctx: cairo.Context, styles: OwnedList[Style], *keys: str) -> None:
    """Apply the first style for each key, in the order given.

    A key without a style leaves the context untouched so cairo's default
    state stands in for it.
    """
    for key in keys:
        style = lookup_style(styles, key)
        if style is not None:
            style.apply(ctx)


def is_known_style(key: str) -> bool:
    return key in STYLE_EFFECTS


def known_style_keys() -> Iterable[str]:
    return tuple(STYLE_EFFECTS)


@lru_cache(maxsize=1)
def _require_color_parser() -> Callable[[str], tuple[float, float, float, float]]:
    try:
        from matplotlib.colors import to_rgba
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for style color parsing") from exc
    return to_rgba


def parse_color(text: str) -> tuple[float, float, float, float]:
    to_rgba = _require_color_parser()
    try:
        r, g, b, a = to_rgba(text.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid color '{text}'") from exc
    return (float(r), float(g), float(b), float(a))


def _parse_float(text: str) -> float:
    try:
        value = float(text)
    except ValueError as exc:
        raise ValueError(f"Expected a number, got '{text}'") from exc
    if value < 0:
        raise ValueError(f"Expected a non-negative number, got '{text}'")
    return value


def _parse_choice(choices: dict[str, Any]) -> Callable[[str], Any]:
    def _parse(text: str) -> Any:
        value = choices.get(text.strip().casefold())
        if value is None:
            raise ValueError(f"Expected one of {', '.join(sorted(choices))}, got '{text}'")
        return value

    return _parse


def _paint_fill(ctx: cairo.Context, rgba: tuple[float, float, float, float]) -> None:
    ctx.set_source_rgba(*rgba)
    ctx.fill_preserve()


def _paint_stroke(ctx: cairo.Context, rgba: tuple[float, float, float, float]) -> None:
    ctx.set_source_rgba(*rgba)
    ctx.stroke_preserve()


def _paint_weight(ctx: cairo.Context, width: float) -> None:
    # Weights are in pixels; convert to the current user space.
    dx, _ = ctx.device_to_user_distance(width, 0.0)
    ctx.set_line_width(abs(dx))


def _no_paint(ctx: cairo.Context, value: Any) -> None:
    pass


class _StyleEffect(NamedTuple):
    parse: Callable[[str], Any]
    paint: Callable[[cairo.Context, Any], None]


STYLE_EFFECTS: dict[str, _StyleEffect] = {
    "fill": _StyleEffect(parse_color, _paint_fill),
    "stroke": _StyleEffect(parse_color, _paint_stroke),
    "weight": _StyleEffect(_parse_float, _paint_weight),
    "line-join": _StyleEffect(_parse_choice(_LINE_JOINS), lambda ctx, v: ctx.set_line_join(v)),
    "line-cap": _StyleEffect(_parse_choice(_LINE_CAPS), lambda ctx, v: ctx.set_line_cap(v)),
    "radius": _StyleEffect(_parse_float, _no_paint),
    "seamless": _StyleEffect(str, _no_paint),
}
