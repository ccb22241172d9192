"""Directory scanning helpers for Frame-X-Layer-Y.png cel files."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Tuple

CEL_FILENAME_RE = re.compile(r"^frame-(\d+)-layer-(\d+)\.png$", re.IGNORECASE)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CelFileRef:
    path: Path
    frame: int
    layer: int


def parse_cel_filename(name: str) -> Tuple[int, int] | None:
    """Return ``(frame, layer)`` parsed from ``name`` or ``None`` if it does not match."""

    match = CEL_FILENAME_RE.match(name)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def iter_cel_files(folder: Path) -> Iterator[CelFileRef]:
    """Yield cel files directly inside ``folder`` in name order."""

    folder = folder.expanduser()
    if not folder.exists():
        raise FileNotFoundError(folder)
    if not folder.is_dir():
        raise NotADirectoryError(folder)
    for path in sorted(folder.iterdir(), key=lambda p: p.name):
        if not path.is_file():
            continue
        parsed = parse_cel_filename(path.name)
        if parsed is None:
            logger.debug("Skipping non-cel file name=%s", path.name)
            continue
        frame, layer = parsed
        yield CelFileRef(path=path, frame=frame, layer=layer)
