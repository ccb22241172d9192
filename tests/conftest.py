"""Shared fixtures that write small cel PNGs with Pillow."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Sequence, Tuple

import pytest
from PIL import Image

from cel_tools.palette_ops import Palette, apply_palette

PALETTE_4: List[Tuple[int, int, int]] = [(0, 0, 0), (255, 0, 0), (0, 255, 0), (0, 0, 255)]


def indexed_image(rows: Sequence[Sequence[int]], colors: Sequence[Sequence[int]]) -> Image.Image:
    height = len(rows)
    width = len(rows[0])
    image = Image.new("P", (width, height))
    apply_palette(image, Palette.from_colors(colors))
    image.putdata([value for row in rows for value in row])
    return image


def bank_palette() -> Palette:
    """256 distinct opaque colors, index 0 transparent."""

    colors = [(i, 255 - i, (i * 7) % 256, 255) for i in range(256)]
    colors[0] = (0, 0, 0, 0)
    return Palette.from_colors(colors)


@pytest.fixture
def write_indexed(tmp_path: Path) -> Callable[..., Path]:
    def _write(
        name: str,
        rows: Sequence[Sequence[int]],
        colors: Sequence[Sequence[int]] = PALETTE_4,
        folder: Path | None = None,
    ) -> Path:
        target = (folder or tmp_path) / name
        target.parent.mkdir(parents=True, exist_ok=True)
        indexed_image(rows, colors).save(target)
        return target

    return _write


@pytest.fixture
def write_rgba(tmp_path: Path) -> Callable[..., Path]:
    def _write(
        name: str,
        size: Tuple[int, int],
        color: Tuple[int, int, int, int] = (10, 20, 30, 255),
        folder: Path | None = None,
    ) -> Path:
        target = (folder or tmp_path) / name
        target.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGBA", size, color).save(target)
        return target

    return _write
