"""Palette helpers for indexed cel images."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

import numpy as np
from PIL import Image


RGBA = Tuple[int, int, int, int]


class PaletteError(RuntimeError):
    """Raised when palette processing fails."""


@dataclass(slots=True)
class Palette:
    """Ordered RGBA palette entries of an indexed image."""

    colors: List[RGBA] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.colors)

    def get_color(self, index: int) -> RGBA:
        return self.colors[index]

    def copy(self) -> "Palette":
        return Palette(colors=list(self.colors))

    @classmethod
    def from_colors(cls, colors: Iterable[Sequence[int]]) -> "Palette":
        normalized: List[RGBA] = []
        for color in colors:
            if len(color) == 3:
                r, g, b = color
                a = 255
            elif len(color) == 4:
                r, g, b, a = color
            else:
                raise PaletteError(f"Palette entries need 3 or 4 channels, got {len(color)}")
            normalized.append((int(r), int(g), int(b), int(a)))
        return cls(colors=normalized)


def palettes_match(first: Palette, second: Palette) -> bool:
    """Exact comparison: same length and identical RGBA at every index."""

    if len(first) != len(second):
        return False
    for index in range(len(first)):
        if first.get_color(index) != second.get_color(index):
            return False
    return True


def ensure_indexed(image: Image.Image) -> Image.Image:
    if image.mode != "P":
        raise PaletteError(f"Expected indexed image (mode 'P'), got mode {image.mode!r}")
    return image


def _alphas_from_info(image: Image.Image, count: int) -> List[int]:
    alphas = [255] * count
    transparency = image.info.get("transparency")
    if isinstance(transparency, int):
        if 0 <= transparency < count:
            alphas[transparency] = 0
    elif isinstance(transparency, (bytes, bytearray, list, tuple)):
        for idx in range(min(count, len(transparency))):
            alphas[idx] = max(0, min(255, int(transparency[idx])))
    return alphas


def extract_palette(image: Image.Image) -> Palette:
    """Return the full palette of ``image`` with tRNS alpha folded in."""

    ensure_indexed(image)
    flat = image.getpalette()
    if not flat:
        raise PaletteError("Image does not contain palette data")
    count = len(flat) // 3
    alphas = _alphas_from_info(image, count)
    colors: List[RGBA] = []
    for i in range(count):
        colors.append((flat[i * 3], flat[i * 3 + 1], flat[i * 3 + 2], alphas[i]))
    return Palette(colors=colors)


def apply_palette(image: Image.Image, palette: Palette) -> None:
    """Write ``palette`` onto an indexed image in place, alpha as a tRNS table."""

    ensure_indexed(image)
    colors = palette.colors[:256]
    flat: List[int] = []
    for r, g, b, _a in colors:
        flat.extend((r, g, b))
    if not flat:
        flat = [0, 0, 0]
    image.putpalette(flat)
    alphas = [a for _r, _g, _b, a in colors]
    if any(alpha < 255 for alpha in alphas):
        image.info["transparency"] = bytes(alphas)
    elif "transparency" in image.info:
        del image.info["transparency"]


def palette_lut(palette: Palette) -> np.ndarray:
    """Lookup table from index to RGBA; indices past the palette are transparent."""

    lut = np.zeros((256, 4), dtype=np.uint8)
    for index, color in enumerate(palette.colors[:256]):
        lut[index] = color
    return lut
