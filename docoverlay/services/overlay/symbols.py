"""
Symbol Glyphs

Vector glyphs drawn for symbol annotations. Each glyph is an SVG path
inscribed in a 24x24 design box (Y-down), stroked rather than filled.
"""

import re
from dataclasses import dataclass
from functools import lru_cache

from .models import SYMBOL_DESIGN_SIZE, SymbolKind

Point = tuple[float, float]

# Stroke width in design units
GLYPH_STROKE_WIDTH = 2.0

GLYPH_PATHS = {
    SymbolKind.CHECKMARK: "M20 6L9 17l-5-5",
}

_TOKEN_RE = re.compile(r"[MmLlHhVvZz]|-?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


@dataclass(frozen=True)
class SymbolGlyph:
    """Parsed glyph: one tuple of absolute points per subpath."""

    kind: SymbolKind
    subpaths: tuple[tuple[Point, ...], ...]
    closed: tuple[bool, ...]
    design_size: float = SYMBOL_DESIGN_SIZE
    stroke_width: float = GLYPH_STROKE_WIDTH


def parse_svg_path(path: str) -> tuple[list[list[Point]], list[bool]]:
    """
    Parse straight-line SVG path data.

    Supports M, L, H, V and Z in absolute and relative forms, including
    implicit repeated coordinates after a command.

    Returns:
        (subpaths, closed flags)
    """
    tokens = _TOKEN_RE.findall(path)
    subpaths: list[list[Point]] = []
    closed: list[bool] = []
    x = y = 0.0
    start = (0.0, 0.0)
    command = None
    i = 0

    def take() -> float:
        nonlocal i
        if i >= len(tokens) or tokens[i].isalpha():
            raise ValueError(f"Malformed path data: {path!r}")
        value = float(tokens[i])
        i += 1
        return value

    while i < len(tokens):
        if tokens[i].isalpha():
            command = tokens[i]
            i += 1
        elif command is None:
            raise ValueError(f"Path data must start with a command: {path!r}")

        if command in "Zz":
            if subpaths:
                closed[-1] = True
            x, y = start
            command = None
            continue

        relative = command.islower()
        op = command.upper()
        if op == "M":
            dx, dy = take(), take()
            x, y = (x + dx, y + dy) if relative else (dx, dy)
            start = (x, y)
            subpaths.append([(x, y)])
            closed.append(False)
            # Coordinates following a moveto are implicit linetos
            command = "l" if relative else "L"
            continue
        if op == "L":
            dx, dy = take(), take()
            x, y = (x + dx, y + dy) if relative else (dx, dy)
        elif op == "H":
            dx = take()
            x = x + dx if relative else dx
        elif op == "V":
            dy = take()
            y = y + dy if relative else dy
        else:
            raise ValueError(f"Unsupported path command {command!r} in {path!r}")

        if not subpaths:
            raise ValueError(f"Path data must start with a moveto: {path!r}")
        subpaths[-1].append((x, y))

    return subpaths, closed


@lru_cache(maxsize=None)
def glyph_for(kind: SymbolKind) -> SymbolGlyph:
    subpaths, closed = parse_svg_path(GLYPH_PATHS[kind])
    return SymbolGlyph(
        kind=kind,
        subpaths=tuple(tuple(points) for points in subpaths),
        closed=tuple(closed),
    )
