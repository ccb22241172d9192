"""In-memory sprite scene: layers, frames, cels, palettes and undo history."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Tuple

from PIL import Image

from .palette_ops import Palette


logger = logging.getLogger(__name__)

Point = Tuple[int, int]


class SceneError(RuntimeError):
    """Raised when a scene mutation is invalid."""


class ColorMode(str, Enum):
    RGB = "rgb"
    GRAYSCALE = "grayscale"
    INDEXED = "indexed"

    @property
    def image_mode(self) -> str:
        return {"rgb": "RGBA", "grayscale": "LA", "indexed": "P"}[self.value]

    @property
    def display_name(self) -> str:
        return {"rgb": "RGB", "grayscale": "Grayscale", "indexed": "Indexed"}[self.value]


@dataclass(eq=False)
class Cel:
    frame: int
    image: Image.Image
    position: Point = (0, 0)


@dataclass(eq=False)
class Layer:
    name: str
    cels: List[Cel] = field(default_factory=list)
    sprite: "Sprite | None" = field(default=None, repr=False)

    def cel(self, frame: int) -> Cel | None:
        for cel in self.cels:
            if cel.frame == frame:
                return cel
        return None

    @property
    def stack_index(self) -> int:
        """1-based position in the sprite's layer stack, bottom layer first."""

        if self.sprite is None:
            raise SceneError(f"Layer {self.name!r} is not part of a sprite")
        return self.sprite.layers.index(self) + 1


@dataclass
class _LayerState:
    layer: Layer
    name: str
    cels: Tuple[Cel, ...]


@dataclass
class _SceneState:
    color_mode: ColorMode
    palettes: List[Palette]
    frame_count: int
    layers: List[_LayerState]


@dataclass
class HistoryEntry:
    label: str
    before: _SceneState
    after: _SceneState


class Sprite:
    """A multi-layer, multi-frame sprite owned by this program."""

    def __init__(self, width: int, height: int, color_mode: ColorMode = ColorMode.RGB) -> None:
        if width <= 0 or height <= 0:
            raise SceneError(f"Sprite size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self.color_mode = color_mode
        self.palettes: List[Palette] = [Palette(colors=[(0, 0, 0, 0)])]
        self.layers: List[Layer] = []
        self.frame_count = 1
        self.transparent_index = 0
        self.filename: Path | None = None
        self.is_modified = False
        self._history: List[HistoryEntry] = []
        self._index = -1
        self._transaction_depth = 0
        self._restoring = False
        self.new_layer("Layer 1")
        self.is_modified = False

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def palette(self) -> Palette:
        return self.palettes[0]

    # -- mutations -------------------------------------------------------

    def set_palette(self, palette: Palette) -> None:
        self.palettes[0] = palette.copy()
        self._touch()

    def new_empty_frame(self) -> int:
        self.frame_count += 1
        self._touch()
        return self.frame_count

    def new_layer(self, name: str | None = None) -> Layer:
        layer = Layer(name=name or f"Layer {len(self.layers) + 1}", sprite=self)
        self.layers.append(layer)
        self._touch()
        return layer

    def delete_layer(self, layer: Layer) -> None:
        self._require_layer(layer)
        self.layers.remove(layer)
        layer.sprite = None
        self._touch()

    def find_layer(self, name: str) -> Layer | None:
        for layer in self.layers:
            if layer.name == name:
                return layer
        return None

    def new_cel(self, layer: Layer, frame: int, image: Image.Image, position: Point = (0, 0)) -> Cel:
        self._require_layer(layer)
        if frame < 1 or frame > self.frame_count:
            raise SceneError(f"Frame {frame} out of range 1..{self.frame_count}")
        if layer.cel(frame) is not None:
            raise SceneError(f"Layer {layer.name!r} already has a cel at frame {frame}")
        expected = self.color_mode.image_mode
        if image.mode != expected:
            raise SceneError(
                f"Cel image mode {image.mode!r} does not match sprite color mode {self.color_mode.value}"
            )
        cel = Cel(frame=frame, image=image, position=(int(position[0]), int(position[1])))
        layer.cels.append(cel)
        layer.cels.sort(key=lambda c: c.frame)
        self._touch()
        return cel

    def delete_cel(self, cel: Cel) -> None:
        for layer in self.layers:
            if any(existing is cel for existing in layer.cels):
                layer.cels = [existing for existing in layer.cels if existing is not cel]
                self._touch()
                return
        raise SceneError(f"Cel at frame {cel.frame} is not part of this sprite")

    def mark_saved(self, path: Path) -> None:
        self.filename = path
        self.is_modified = False

    def _require_layer(self, layer: Layer) -> None:
        if not any(existing is layer for existing in self.layers):
            raise SceneError(f"Layer {layer.name!r} is not part of this sprite")

    def _touch(self) -> None:
        if not self._restoring:
            self.is_modified = True

    # -- transactions and history ------------------------------------------

    @contextmanager
    def transaction(self, label: str = "edit") -> Iterator["Sprite"]:
        """Apply a batch of edits as one undoable step.

        Edits made inside the block are rolled back if it raises. Nested
        transactions join the outermost one.
        """

        if self._transaction_depth:
            self._transaction_depth += 1
            try:
                yield self
            finally:
                self._transaction_depth -= 1
            return

        before = self._capture_state()
        was_modified = self.is_modified
        self._transaction_depth = 1
        try:
            yield self
        except BaseException:
            logger.debug("Transaction rollback label=%s", label)
            self._apply_state(before)
            self.is_modified = was_modified
            raise
        finally:
            self._transaction_depth = 0
        after = self._capture_state()
        if self._index < len(self._history) - 1:
            self._history = self._history[: self._index + 1]
        self._history.append(HistoryEntry(label=label, before=before, after=after))
        self._index += 1
        logger.debug("Transaction commit label=%s index=%s entries=%s", label, self._index, len(self._history))

    @property
    def can_undo(self) -> bool:
        return self._index >= 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._history) - 1

    def undo(self) -> str | None:
        if not self.can_undo:
            return None
        entry = self._history[self._index]
        self._index -= 1
        self._apply_state(entry.before)
        self.is_modified = True
        logger.debug("History undo label=%s index=%s", entry.label, self._index)
        return entry.label

    def redo(self) -> str | None:
        if not self.can_redo:
            return None
        self._index += 1
        entry = self._history[self._index]
        self._apply_state(entry.after)
        self.is_modified = True
        logger.debug("History redo label=%s index=%s", entry.label, self._index)
        return entry.label

    def _capture_state(self) -> _SceneState:
        return _SceneState(
            color_mode=self.color_mode,
            palettes=[palette.copy() for palette in self.palettes],
            frame_count=self.frame_count,
            layers=[_LayerState(layer=layer, name=layer.name, cels=tuple(layer.cels)) for layer in self.layers],
        )

    def _apply_state(self, state: _SceneState) -> None:
        self._restoring = True
        try:
            for layer in self.layers:
                layer.sprite = None
            self.color_mode = state.color_mode
            self.palettes = [palette.copy() for palette in state.palettes]
            self.frame_count = state.frame_count
            self.layers = []
            for saved in state.layers:
                saved.layer.name = saved.name
                saved.layer.cels = list(saved.cels)
                saved.layer.sprite = self
                self.layers.append(saved.layer)
        finally:
            self._restoring = False
