"""Presentation state for the import and export dialogs.

Everything here is plain data recomputed from scan results, so any front end
(the Qt dialogs, the CLI printer, tests) can render it without touching the
scan or reconstruction logic.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from .exporter import CelScan, output_folder_for
from .importer import ImportResult, ScanResult
from .scene import ColorMode, Sprite

MAX_LISTED = 20
PER_LINE = 10


def format_cel_list(
    items: Iterable[Tuple[int, int]], per_line: int = PER_LINE, max_items: int = MAX_LISTED
) -> Tuple[List[str], int]:
    """Render ``(frame, layer)`` pairs as ``F1-L2`` lines; return the lines and the hidden count."""

    entries = list(items)
    shown = entries[:max_items]
    lines = []
    for start in range(0, len(shown), per_line):
        chunk = shown[start : start + per_line]
        lines.append(", ".join(f"F{frame}-L{layer}" for frame, layer in chunk))
    return lines, max(0, len(entries) - max_items)


def overflow_text(hidden: int) -> str | None:
    return f"and {hidden} more" if hidden > 0 else None


def color_mode_label(mode: ColorMode) -> str:
    return "Indexed" if mode is ColorMode.INDEXED else "RGBA"


@dataclass(slots=True)
class DiagnosticSection:
    heading: str
    lines: List[str]
    overflow: str | None = None

    @classmethod
    def from_pairs(cls, heading: str, pairs: Sequence[Tuple[int, int]]) -> "DiagnosticSection":
        lines, hidden = format_cel_list(pairs)
        return cls(heading=heading, lines=lines, overflow=overflow_text(hidden))

    def render(self) -> List[str]:
        rendered = [self.heading, *self.lines]
        if self.overflow:
            rendered.append(self.overflow)
        return rendered


@dataclass(slots=True)
class ImportViewState:
    file_count_text: str = "No Folder Selected"
    folder_text: str = ""
    show_analysis: bool = False
    sprite_mode_text: str = ""
    reason_text: str = ""
    diagnostics: List[DiagnosticSection] = field(default_factory=list)
    import_button_text: str = "No Valid Files"
    import_enabled: bool = False

    @classmethod
    def from_scan(cls, scan: ScanResult) -> "ImportViewState":
        count = len(scan.files)
        state = cls(
            file_count_text=f"{count} valid PNG file(s) detected in",
            folder_text=str(scan.folder),
            show_analysis=count > 0,
            import_button_text=f"Import {count} File(s)" if count else "No Valid Files",
            import_enabled=count > 0,
        )
        if count == 0:
            return state
        state.sprite_mode_text = f"Sprite Mode: {color_mode_label(scan.target_color_mode)}"
        if scan.use_indexed:
            state.reason_text = "All images are indexed and share same palette"
        elif not scan.all_indexed:
            state.reason_text = "Some images are not in Indexed color mode"
        else:
            state.reason_text = "Indexed images do not share one palette"
        if scan.non_indexed_files:
            state.diagnostics.append(
                DiagnosticSection.from_pairs(
                    "Non-indexed images:",
                    [(source.frame, source.layer) for source in scan.non_indexed_files],
                )
            )
        if scan.mismatched_palette_files and scan.first_palette_file is not None:
            base_frame, base_layer = scan.first_palette_file
            state.diagnostics.append(
                DiagnosticSection.from_pairs(
                    f"Palette mismatch (base: F{base_frame}-L{base_layer}):",
                    [(source.frame, source.layer) for source in scan.mismatched_palette_files],
                )
            )
        skipped = [*scan.unreadable_files, *scan.duplicate_files]
        if skipped:
            names = [path.name for path in skipped]
            shown = names[:MAX_LISTED]
            state.diagnostics.append(
                DiagnosticSection(
                    heading="Skipped files:",
                    lines=[", ".join(shown[i : i + PER_LINE]) for i in range(0, len(shown), PER_LINE)],
                    overflow=overflow_text(len(names) - len(shown)),
                )
            )
        return state

    def render(self) -> List[str]:
        lines = [self.file_count_text]
        if self.show_analysis:
            lines.extend([self.folder_text, self.sprite_mode_text, self.reason_text])
            for section in self.diagnostics:
                lines.extend(section.render())
        return lines


@dataclass(slots=True)
class ExportViewState:
    output_folder: Path
    color_mode_text: str
    palette_colors_text: str
    cel_counts_text: str
    multi_palette: DiagnosticSection | None
    export_button_text: str
    export_enabled: bool
    mask_enabled: bool

    @classmethod
    def from_scan(cls, sprite: Sprite, scan: CelScan) -> "ExportViewState":
        multi = None
        if scan.multi_pal_count:
            multi = DiagnosticSection.from_pairs(
                "Multi Palette Cels:",
                [(record.frame, record.layer_index) for record in scan.multi_pal_cels],
            )
        total = scan.total_count
        return cls(
            output_folder=output_folder_for(sprite),
            color_mode_text=f"Color Mode: {sprite.color_mode.display_name}",
            palette_colors_text=f"Palette Colors: {len(sprite.palette)}",
            cel_counts_text=f"Single Palette: {scan.single_pal_count} | Multi Palette: {scan.multi_pal_count}",
            multi_palette=multi,
            export_button_text=f"Export {total} Cels" if total else "No Valid Cels",
            export_enabled=total > 0,
            mask_enabled=scan.multi_pal_count > 0,
        )

    def render(self) -> List[str]:
        lines = [
            f"Output Folder: {self.output_folder}",
            self.color_mode_text,
            self.palette_colors_text,
            self.cel_counts_text,
        ]
        if self.multi_palette is not None:
            lines.extend(self.multi_palette.render())
        return lines


def import_summary(result: ImportResult) -> List[str]:
    return [
        f"Successfully imported {result.cel_count} cel(s)",
        f"Layers: {result.layer_count}",
        f"Frames: {result.frame_count}",
        f"Color Mode: {color_mode_label(result.color_mode)}",
    ]


def export_summary(count: int, folder: Path) -> List[str]:
    return [f"Successfully exported {count} cels.", f"Location: {folder}"]


def mask_summary(count: int) -> List[str]:
    return [f"Created palette mask layers for {count} multi palette cels."]
