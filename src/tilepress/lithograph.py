"""Label placement seam invoked by the render pipeline."""

from __future__ import annotations

from typing import Protocol

import cairo

from .geodata import Feature
from .owned_list import OwnedList
from .style import Style


class Lithograph(Protocol):
    def add_placement(self, feature: Feature, styles: OwnedList[Style], ctx: cairo.Context) -> None:
        """Called once per drawn feature, after its geometry is on ``ctx``."""

    def apply(self, styles: OwnedList[Style]) -> None:
        """Called once per filter after all its features were processed."""


class NullLithograph:
    """Places no labels."""

    def add_placement(self, feature: Feature, styles: OwnedList[Style], ctx: cairo.Context) -> None:
        return None

    def apply(self, styles: OwnedList[Style]) -> None:
        return None
