from __future__ import annotations

import base64
import binascii
import io
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from PIL import Image

from .palette_ops import Palette, PaletteError
from .scene import ColorMode, SceneError, Sprite

SCENE_SCHEMA_VERSION = 1
SCENE_SUFFIX = ".celscene"

logger = logging.getLogger(__name__)


class SceneFormatError(ValueError):
    """Raised when a scene document cannot be read."""


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _encode_image(image: Image.Image) -> str:
    buffer = io.BytesIO()
    if image.mode == "P":
        # cels carry no palette of their own; keep every index byte intact
        image.save(buffer, format="PNG", bits=8)
    else:
        image.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def _decode_image(payload: str, expected_mode: str) -> Image.Image:
    try:
        raw = base64.b64decode(payload.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise SceneFormatError(f"Invalid cel payload: {exc}") from exc
    with Image.open(io.BytesIO(raw)) as img:
        img.load()
        image = img.copy()
    if image.mode != expected_mode:
        image = image.convert(expected_mode)
    return image


def scene_to_dict(sprite: Sprite) -> Dict[str, Any]:
    layers: List[Dict[str, Any]] = []
    for layer in sprite.layers:
        layers.append(
            {
                "name": layer.name,
                "cels": [
                    {
                        "frame": cel.frame,
                        "x": cel.position[0],
                        "y": cel.position[1],
                        "png": _encode_image(cel.image),
                    }
                    for cel in layer.cels
                ],
            }
        )
    return {
        "schema_version": SCENE_SCHEMA_VERSION,
        "saved_at": _utc_now_iso(),
        "width": sprite.width,
        "height": sprite.height,
        "color_mode": sprite.color_mode.value,
        "frame_count": sprite.frame_count,
        "transparent_index": sprite.transparent_index,
        "palettes": [[list(color) for color in palette.colors] for palette in sprite.palettes],
        "layers": layers,
    }


def scene_from_dict(payload: Dict[str, Any]) -> Sprite:
    if not isinstance(payload, dict):
        raise SceneFormatError("Scene root must be an object")
    try:
        schema_version = int(payload.get("schema_version", SCENE_SCHEMA_VERSION))
        if schema_version != SCENE_SCHEMA_VERSION:
            raise SceneFormatError(f"Unsupported scene schema version {schema_version}")
        width = int(payload["width"])
        height = int(payload["height"])
        color_mode = ColorMode(str(payload.get("color_mode", ColorMode.RGB.value)))
        frame_count = max(1, int(payload.get("frame_count", 1)))
        palettes = [Palette.from_colors(colors) for colors in payload.get("palettes", [])]
        sprite = Sprite(width, height, color_mode)
        sprite.transparent_index = int(payload.get("transparent_index", 0))
        if palettes:
            sprite.palettes = palettes
        for _ in range(2, frame_count + 1):
            sprite.new_empty_frame()
        layer_entries = payload.get("layers", [])
        if layer_entries:
            sprite.delete_layer(sprite.layers[0])
        for entry in layer_entries:
            layer = sprite.new_layer(str(entry.get("name", "")) or None)
            for cel_entry in entry.get("cels", []):
                image = _decode_image(str(cel_entry["png"]), color_mode.image_mode)
                position = (int(cel_entry.get("x", 0)), int(cel_entry.get("y", 0)))
                sprite.new_cel(layer, int(cel_entry["frame"]), image, position)
    except (KeyError, TypeError, ValueError, OSError, PaletteError, SceneError) as exc:
        if isinstance(exc, SceneFormatError):
            raise
        raise SceneFormatError(f"Malformed scene document: {exc}") from exc
    return sprite


def save_scene(sprite: Sprite, path: Path) -> Path:
    """Write ``sprite`` to ``path`` and mark it as saved there."""

    path = path.expanduser()
    if not path.suffix:
        path = path.with_suffix(SCENE_SUFFIX)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = scene_to_dict(sprite)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    sprite.mark_saved(path.resolve())
    logger.debug("Saved scene path=%s layers=%s frames=%s", path, len(sprite.layers), sprite.frame_count)
    return path


def load_scene(path: Path) -> Sprite:
    path = path.expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Scene file not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SceneFormatError(f"{path.name}: invalid JSON ({exc})") from exc
    sprite = scene_from_dict(payload)
    sprite.mark_saved(path.resolve())
    logger.debug("Loaded scene path=%s layers=%s frames=%s", path, len(sprite.layers), sprite.frame_count)
    return sprite
