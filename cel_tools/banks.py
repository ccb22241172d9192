"""16-color palette bank classification and mask synthesis.

A 256-entry palette is split into banks of 16 consecutive indices. Bank ids
are 1-based (``index // 16 + 1``) and the first slot of every bank
(``index % 16 == 0``) is reserved for transparency, so it never counts
towards a bank.

A cel whose pixels reference more than one bank is "mixed". For mixed cels a
mask image records which bank every pixel came from, remapped into the 1..15
range so the mask stays readable on a single bank.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from PIL import Image

from .palette_ops import ensure_indexed


logger = logging.getLogger(__name__)

BANK_SIZE = 16
MASK_BANK_COUNT = 15


@dataclass(frozen=True, slots=True)
class CelBankClassification:
    bank_id: int | None
    has_valid_pixels: bool

    @property
    def is_empty(self) -> bool:
        return not self.has_valid_pixels

    @property
    def is_mixed(self) -> bool:
        return self.has_valid_pixels and self.bank_id is None


def is_reserved(value):
    """True for the transparent first slot of a bank. Works on ints and numpy arrays."""

    return value % BANK_SIZE == 0


def bank_id(value):
    return value // BANK_SIZE + 1


def mask_index(bank):
    """Fold a bank id onto the mask range 1..15."""

    return (bank - 1) % MASK_BANK_COUNT + 1


def classify_indices(values) -> CelBankClassification:
    """Classify an index buffer by the banks its non-reserved values use."""

    indices = np.asarray(values, dtype=np.int64).ravel()
    valid = indices[~is_reserved(indices)]
    if valid.size == 0:
        return CelBankClassification(bank_id=None, has_valid_pixels=False)
    banks = np.unique(bank_id(valid))
    if banks.size == 1:
        return CelBankClassification(bank_id=int(banks[0]), has_valid_pixels=True)
    return CelBankClassification(bank_id=None, has_valid_pixels=True)


def classify_image(image: Image.Image) -> CelBankClassification:
    ensure_indexed(image)
    return classify_indices(np.asarray(image))


def build_mask_image(
    image: Image.Image, position: Tuple[int, int], canvas_size: Tuple[int, int]
) -> Image.Image:
    """Return a canvas-sized indexed mask of the bank used by each pixel of ``image``.

    Pixels are written at ``position`` plus their local offset; anything that
    falls outside the canvas is dropped.
    """

    ensure_indexed(image)
    width, height = canvas_size
    mask = np.zeros((height, width), dtype=np.uint8)
    indices = np.asarray(image).astype(np.int64)
    ys, xs = np.nonzero(~is_reserved(indices))
    if ys.size:
        values = mask_index(bank_id(indices[ys, xs]))
        canvas_x = xs + int(position[0])
        canvas_y = ys + int(position[1])
        inside = (canvas_x >= 0) & (canvas_x < width) & (canvas_y >= 0) & (canvas_y < height)
        mask[canvas_y[inside], canvas_x[inside]] = values[inside]
        logger.debug(
            "build_mask_image pixels=%s inside=%s position=%s canvas=%sx%s",
            ys.size,
            int(inside.sum()),
            position,
            width,
            height,
        )
    return Image.frombytes("P", (width, height), mask.tobytes())
