"""Rebuild a layered sprite from a folder of Frame-X-Layer-Y.png files."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Tuple

import numpy as np
from PIL import Image

from .errors import ImportAborted
from .file_scanner import CelFileRef, iter_cel_files
from .palette_ops import Palette, PaletteError, extract_palette, palette_lut, palettes_match
from .scene import ColorMode, Sprite
from .scene_io import save_scene


logger = logging.getLogger(__name__)

WIDE_GRAY_MODES = {"I", "I;16", "I;16L", "I;16B"}


@dataclass(frozen=True, slots=True)
class SourceFile:
    path: Path
    filename: str
    frame: int
    layer: int
    width: int
    height: int
    color_mode: ColorMode
    image: Image.Image = field(repr=False)
    palette: Palette | None = field(default=None, repr=False)

    @property
    def is_indexed(self) -> bool:
        return self.color_mode is ColorMode.INDEXED


@dataclass(slots=True)
class LayerGroup:
    layer: int
    files: List[SourceFile] = field(default_factory=list)


@dataclass(slots=True)
class ScanResult:
    folder: Path
    files: List[SourceFile]
    layer_groups: List[LayerGroup]
    min_frame: int
    max_frame: int
    max_width: int
    max_height: int
    all_indexed: bool
    same_palette: bool
    first_palette: Palette | None
    first_palette_file: Tuple[int, int] | None
    mismatched_palette_files: List[SourceFile]
    non_indexed_files: List[SourceFile]
    unreadable_files: List[Path]
    duplicate_files: List[Path]

    @property
    def use_indexed(self) -> bool:
        return self.all_indexed and self.same_palette

    @property
    def target_color_mode(self) -> ColorMode:
        return ColorMode.INDEXED if self.use_indexed else ColorMode.RGB


@dataclass(slots=True)
class ImportOptions:
    folder: Path
    output_path: Path | None = None


@dataclass(slots=True)
class ImportResult:
    sprite: Sprite
    cel_count: int
    layer_count: int
    frame_count: int
    color_mode: ColorMode


def _color_mode_of(image: Image.Image) -> ColorMode:
    if image.mode == "P":
        return ColorMode.INDEXED
    if image.mode in {"1", "L", "LA"} or image.mode in WIDE_GRAY_MODES:
        return ColorMode.GRAYSCALE
    return ColorMode.RGB


def _load_source(ref: CelFileRef) -> SourceFile:
    with Image.open(ref.path) as img:
        img.load()
        image = img.copy()
    color_mode = _color_mode_of(image)
    palette = extract_palette(image) if color_mode is ColorMode.INDEXED else None
    width, height = image.size
    logger.debug(
        "Scanned cel file name=%s frame=%s layer=%s size=%sx%s mode=%s",
        ref.path.name,
        ref.frame,
        ref.layer,
        width,
        height,
        image.mode,
    )
    return SourceFile(
        path=ref.path,
        filename=ref.path.name,
        frame=ref.frame,
        layer=ref.layer,
        width=width,
        height=height,
        color_mode=color_mode,
        image=image,
        palette=palette,
    )


def _require_palette(source: SourceFile) -> Palette:
    if source.palette is None:
        raise PaletteError(f"{source.filename}: indexed image has no palette")
    return source.palette


def scan_png_files(folder: Path) -> ScanResult:
    """Decode every cel file in ``folder`` and summarize what kind of sprite they make."""

    loaded: List[SourceFile] = []
    unreadable: List[Path] = []
    duplicates: List[Path] = []
    seen: Dict[Tuple[int, int], Path] = {}
    for ref in iter_cel_files(folder):
        key = (ref.frame, ref.layer)
        if key in seen:
            logger.warning("Duplicate cel file name=%s already provided by %s", ref.path.name, seen[key].name)
            duplicates.append(ref.path)
            continue
        try:
            source = _load_source(ref)
        except OSError as exc:
            logger.warning("Failed to decode cel file path=%s: %s", ref.path, exc)
            unreadable.append(ref.path)
            continue
        seen[key] = ref.path
        loaded.append(source)

    max_width = 0
    max_height = 0
    all_indexed = True
    same_palette = True
    first_palette: Palette | None = None
    first_palette_source: SourceFile | None = None
    mismatched: List[SourceFile] = []
    non_indexed: List[SourceFile] = []
    for source in loaded:
        max_width = max(max_width, source.width)
        max_height = max(max_height, source.height)
        if not source.is_indexed:
            all_indexed = False
            same_palette = False
            non_indexed.append(source)
            continue
        palette = _require_palette(source)
        if first_palette is None:
            first_palette = palette
            first_palette_source = source
        elif not palettes_match(first_palette, palette):
            same_palette = False
            mismatched.append(source)

    min_frame = min((source.frame for source in loaded), default=0)
    max_frame = max((source.frame for source in loaded), default=0)
    offset = 1 if min_frame == 0 else 0
    normalized = {id(source): replace(source, frame=source.frame + offset) for source in loaded}

    def _normalize(sources: List[SourceFile]) -> List[SourceFile]:
        return [normalized[id(source)] for source in sources]

    files = sorted(normalized.values(), key=lambda s: (s.layer, s.frame))
    groups: Dict[int, LayerGroup] = {}
    for source in files:
        groups.setdefault(source.layer, LayerGroup(layer=source.layer)).files.append(source)
    layer_groups = [groups[layer] for layer in sorted(groups)]

    first_palette_file = None
    if first_palette_source is not None:
        first_palette_file = (first_palette_source.frame + offset, first_palette_source.layer)

    result = ScanResult(
        folder=folder,
        files=files,
        layer_groups=layer_groups,
        min_frame=min_frame + offset if loaded else 0,
        max_frame=max_frame + offset if loaded else 0,
        max_width=max_width,
        max_height=max_height,
        all_indexed=all_indexed,
        same_palette=same_palette,
        first_palette=first_palette,
        first_palette_file=first_palette_file,
        mismatched_palette_files=_normalize(mismatched),
        non_indexed_files=_normalize(non_indexed),
        unreadable_files=unreadable,
        duplicate_files=duplicates,
    )
    logger.debug(
        "scan_png_files folder=%s files=%s layers=%s frames=%s canvas=%sx%s mode=%s",
        folder,
        len(files),
        len(layer_groups),
        result.max_frame,
        max_width,
        max_height,
        result.target_color_mode.value,
    )
    return result


def convert_indexed_to_rgb(image: Image.Image, palette: Palette) -> Image.Image:
    """Resolve every index of ``image`` through ``palette`` into an RGBA image."""

    lut = palette_lut(palette)
    rgba = lut[np.asarray(image)]
    return Image.frombytes("RGBA", image.size, np.ascontiguousarray(rgba).tobytes())


def convert_wide_gray_to_rgb(image: Image.Image) -> Image.Image:
    """Scale a 16-bit (``I``/``I;16``) grayscale image down to 8 bits, then to RGBA."""

    values = np.asarray(image).astype(np.int64)
    gray = np.clip(values >> 8, 0, 255).astype(np.uint8)
    return Image.frombytes("L", image.size, np.ascontiguousarray(gray).tobytes()).convert("RGBA")


def _cel_image(source: SourceFile, color_mode: ColorMode) -> Image.Image:
    if color_mode is ColorMode.INDEXED:
        return source.image.copy()
    if source.is_indexed:
        return convert_indexed_to_rgb(source.image, _require_palette(source))
    if source.image.mode in WIDE_GRAY_MODES:
        return convert_wide_gray_to_rgb(source.image)
    return source.image.convert("RGBA")


def create_sprite_from_files(scan: ScanResult) -> ImportResult:
    """Build a sprite with one layer per layer number and one frame per frame number."""

    if not scan.files:
        raise ImportAborted("No valid PNG files found.")
    if scan.max_width == 0 or scan.max_height == 0:
        raise ImportAborted("Failed to load any valid images.")

    color_mode = scan.target_color_mode
    sprite = Sprite(scan.max_width, scan.max_height, color_mode)
    cel_count = 0
    with sprite.transaction("Import cels"):
        if scan.use_indexed and scan.first_palette is not None:
            sprite.set_palette(scan.first_palette)
        for _ in range(2, scan.max_frame + 1):
            sprite.new_empty_frame()
        if scan.layer_groups and sprite.layers:
            sprite.delete_layer(sprite.layers[0])
        for group in scan.layer_groups:
            layer = sprite.new_layer(f"Layer {group.layer}")
            for source in group.files:
                sprite.new_cel(layer, source.frame, _cel_image(source, color_mode), (0, 0))
                cel_count += 1

    logger.info(
        "Imported cels=%s layers=%s frames=%s mode=%s from %s",
        cel_count,
        len(scan.layer_groups),
        scan.max_frame,
        color_mode.value,
        scan.folder,
    )
    return ImportResult(
        sprite=sprite,
        cel_count=cel_count,
        layer_count=len(scan.layer_groups),
        frame_count=scan.max_frame,
        color_mode=color_mode,
    )


def import_folder(options: ImportOptions) -> ImportResult:
    """Scan ``options.folder``, build the sprite and optionally save it."""

    scan = scan_png_files(options.folder)
    result = create_sprite_from_files(scan)
    if options.output_path is not None:
        save_scene(result.sprite, options.output_path)
    return result
