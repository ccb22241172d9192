"""Export sprite cels as Frame-X-Layer-Y.png files and mask multi-bank cels."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

import numpy as np
from PIL import Image

from .banks import CelBankClassification, build_mask_image, classify_image
from .errors import ExportRefused
from .palette_ops import apply_palette
from .scene import Cel, ColorMode, Layer, SceneError, Sprite


logger = logging.getLogger(__name__)

MASK_LAYER_PREFIX = "Palette-Mask"
EXPORT_NAME_TEMPLATE = "Frame-{frame}-Layer-{layer}.png"


@dataclass(slots=True)
class CelRecord:
    layer: Layer
    cel: Cel
    layer_index: int
    frame: int
    classification: CelBankClassification


@dataclass(slots=True)
class CelScan:
    all_cels: List[CelRecord] = field(default_factory=list)
    multi_pal_cels: List[CelRecord] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.all_cels)

    @property
    def multi_pal_count(self) -> int:
        return len(self.multi_pal_cels)

    @property
    def single_pal_count(self) -> int:
        return self.total_count - self.multi_pal_count


@dataclass(slots=True)
class ExportOptions:
    output_dir: Path | None = None


def validate_export_target(sprite: Sprite | None) -> Sprite:
    """Refuse sprites that are missing, never saved, or carry unsaved edits."""

    if sprite is None:
        raise ExportRefused("No Active Sprite", "Please select a sprite before running this command.")
    if sprite.filename is None or sprite.is_modified:
        raise ExportRefused("Unsaved Changes", "Please save the sprite before exporting.")
    return sprite


def output_folder_for(sprite: Sprite) -> Path:
    if sprite.filename is None:
        raise ExportRefused("Unsaved Changes", "Please save the sprite before exporting.")
    return sprite.filename.parent / sprite.filename.stem


def mask_layer_name(layer_index: int, layer_name: str) -> str:
    return f"{MASK_LAYER_PREFIX}-L{layer_index}-{layer_name}"


def export_filename(frame: int, layer_index: int) -> str:
    return EXPORT_NAME_TEMPLATE.format(frame=frame, layer=layer_index)


def _classify_cel(sprite: Sprite, cel: Cel) -> CelBankClassification:
    if sprite.color_mode is ColorMode.INDEXED:
        return classify_image(cel.image)
    # banks only exist for indexed sprites; any visible pixel makes the cel exportable
    alpha = np.asarray(cel.image.getchannel("A"))
    return CelBankClassification(bank_id=None, has_valid_pixels=bool(alpha.any()))


def scan_cels(sprite: Sprite) -> CelScan:
    """Collect exportable cels and the subset that mixes palette banks."""

    scan = CelScan()
    for layer in sprite.layers:
        if layer.name.startswith(MASK_LAYER_PREFIX):
            continue
        for cel in layer.cels:
            classification = _classify_cel(sprite, cel)
            if not classification.has_valid_pixels:
                logger.debug("Skipping empty cel layer=%s frame=%s", layer.name, cel.frame)
                continue
            record = CelRecord(
                layer=layer,
                cel=cel,
                layer_index=layer.stack_index,
                frame=cel.frame,
                classification=classification,
            )
            scan.all_cels.append(record)
            if sprite.color_mode is ColorMode.INDEXED and classification.is_mixed:
                scan.multi_pal_cels.append(record)
    logger.debug(
        "scan_cels layers=%s cels=%s multi_pal=%s",
        len(sprite.layers),
        scan.total_count,
        scan.multi_pal_count,
    )
    return scan


def mask_multi_pal_cels(sprite: Sprite, records: Sequence[CelRecord]) -> int:
    """Write a bank mask for each mixed cel onto its Palette-Mask layer.

    All edits form a single transaction.
    """

    if records and sprite.color_mode is not ColorMode.INDEXED:
        raise SceneError("Palette masks require an indexed sprite")
    with sprite.transaction("Mask multi palette cels"):
        for record in records:
            name = mask_layer_name(record.layer_index, record.layer.name)
            mask_layer = sprite.find_layer(name)
            if mask_layer is None:
                mask_layer = sprite.new_layer(name)
            mask_image = build_mask_image(record.cel.image, record.cel.position, sprite.size)
            existing = mask_layer.cel(record.frame)
            if existing is not None:
                sprite.delete_cel(existing)
            sprite.new_cel(mask_layer, record.frame, mask_image, (0, 0))
            logger.debug("Masked cel layer=%s frame=%s mask_layer=%s", record.layer.name, record.frame, name)
    return len(records)


def render_cel(sprite: Sprite, cel: Cel) -> Image.Image:
    """Flatten one cel onto a transparent, sprite-sized single-frame image."""

    if sprite.color_mode is ColorMode.INDEXED:
        canvas = Image.new("P", sprite.size, sprite.transparent_index)
        apply_palette(canvas, sprite.palette)
        alphas = [alpha for _r, _g, _b, alpha in sprite.palette.colors[:256]]
        if 0 <= sprite.transparent_index < len(alphas):
            alphas[sprite.transparent_index] = 0
            canvas.info["transparency"] = bytes(alphas)
        canvas.paste(cel.image, cel.position)
        return canvas
    canvas = Image.new(sprite.color_mode.image_mode, sprite.size)
    canvas.paste(cel.image, cel.position)
    return canvas


def export_cel(sprite: Sprite, record: CelRecord, folder: Path) -> Path:
    path = folder / export_filename(record.frame, record.layer_index)
    image = render_cel(sprite, record.cel)
    if image.mode == "P" and image.getextrema()[1] >= len(sprite.palette):
        # indices past the palette need the full byte; Pillow pads PLTE to 256 then
        image.save(path, bits=8)
    else:
        image.save(path)
    logger.debug("Exported cel path=%s", path)
    return path


def export_all_cels(sprite: Sprite, records: Sequence[CelRecord], options: ExportOptions | None = None) -> int:
    """Export ``records`` and return how many files were written."""

    options = options or ExportOptions()
    folder = options.output_dir or output_folder_for(sprite)
    folder.mkdir(parents=True, exist_ok=True)
    exported = 0
    for record in records:
        export_cel(sprite, record, folder)
        exported += 1
    logger.info("Exported %s cel(s) to %s", exported, folder)
    return exported
