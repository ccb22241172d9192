from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List

from PySide6.QtWidgets import (
    QApplication,
    QDialog,
    QFileDialog,
    QFrame,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from cel_tools.errors import CelToolsError, ExportRefused, ImportAborted
from cel_tools.exporter import (
    CelScan,
    export_all_cels,
    mask_multi_pal_cels,
    output_folder_for,
    scan_cels,
    validate_export_target,
)
from cel_tools.importer import ScanResult, create_sprite_from_files, scan_png_files
from cel_tools.logging_setup import setup_debug_logging
from cel_tools.scene import Sprite
from cel_tools.scene_io import SCENE_SUFFIX, SceneFormatError, load_scene, save_scene
from cel_tools.view_state import (
    ExportViewState,
    ImportViewState,
    export_summary,
    import_summary,
    mask_summary,
)

logger = logging.getLogger(__name__)


def _section(title: str, parent: QVBoxLayout) -> QVBoxLayout:
    box = QGroupBox(title)
    layout = QVBoxLayout(box)
    layout.setContentsMargins(8, 6, 8, 6)
    layout.setSpacing(4)
    parent.addWidget(box)
    return layout


def _separator(parent: QVBoxLayout) -> None:
    line = QFrame()
    line.setFrameShape(QFrame.Shape.HLine)
    line.setFrameShadow(QFrame.Shadow.Sunken)
    parent.addWidget(line)


class ImportDialog(QDialog):
    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._scan: ScanResult | None = None
        self.sprite: Sprite | None = None
        self.setModal(True)
        self.setWindowTitle("Import")
        self.resize(520, 360)

        root = QVBoxLayout(self)
        root.setContentsMargins(8, 8, 8, 8)
        root.setSpacing(6)

        folder_layout = _section("Input Folder", root)
        folder_row = QHBoxLayout()
        self.folder_edit = QLineEdit()
        self.folder_edit.setReadOnly(True)
        folder_row.addWidget(self.folder_edit, 1)
        self.browse_btn = QPushButton("Browse...")
        self.browse_btn.clicked.connect(self._browse_folder)
        folder_row.addWidget(self.browse_btn)
        folder_layout.addLayout(folder_row)

        analysis_layout = _section("Folder Analysis", root)
        self.file_count_label = QLabel()
        self.folder_label = QLabel()
        self.sprite_mode_label = QLabel()
        self.reason_label = QLabel()
        self.diagnostics_label = QLabel()
        self.diagnostics_label.setWordWrap(True)
        for label in (
            self.file_count_label,
            self.folder_label,
            self.sprite_mode_label,
            self.reason_label,
            self.diagnostics_label,
        ):
            analysis_layout.addWidget(label)

        info_layout = _section("Info", root)
        info_layout.addWidget(QLabel("Only png files matching Frame-X-Layer-Y.png will be imported"))

        _separator(root)
        buttons = QHBoxLayout()
        buttons.addStretch(1)
        self.import_btn = QPushButton()
        self.import_btn.clicked.connect(self._import)
        buttons.addWidget(self.import_btn)
        cancel_btn = QPushButton("Cancel")
        cancel_btn.clicked.connect(self.reject)
        buttons.addWidget(cancel_btn)
        root.addLayout(buttons)

        self._render(ImportViewState())

    def _browse_folder(self) -> None:
        folder = QFileDialog.getExistingDirectory(self, "Select cel folder", self.folder_edit.text())
        if folder:
            self.load_folder(Path(folder))

    def load_folder(self, folder: Path) -> None:
        self.folder_edit.setText(str(folder))
        self._scan = scan_png_files(folder)
        self._render(ImportViewState.from_scan(self._scan))

    def _render(self, state: ImportViewState) -> None:
        self.file_count_label.setText(state.file_count_text)
        self.folder_label.setText(state.folder_text)
        self.sprite_mode_label.setText(state.sprite_mode_text)
        self.reason_label.setText(state.reason_text)
        diagnostic_lines: List[str] = []
        for section in state.diagnostics:
            diagnostic_lines.extend(section.render())
        self.diagnostics_label.setText("\n".join(diagnostic_lines))
        for label in (self.folder_label, self.sprite_mode_label, self.reason_label):
            label.setVisible(state.show_analysis)
        self.diagnostics_label.setVisible(state.show_analysis and bool(diagnostic_lines))
        self.import_btn.setText(state.import_button_text)
        self.import_btn.setEnabled(state.import_enabled)

    def _import(self) -> None:
        if self._scan is None:
            return
        try:
            result = create_sprite_from_files(self._scan)
        except ImportAborted as exc:
            QMessageBox.warning(self, "Import", str(exc))
            return
        self.sprite = result.sprite
        QMessageBox.information(self, "Import Complete", "\n".join(import_summary(result)))
        default_path = self._scan.folder.parent / f"{self._scan.folder.name}{SCENE_SUFFIX}"
        target, _filter = QFileDialog.getSaveFileName(
            self, "Save scene", str(default_path), f"Cel scenes (*{SCENE_SUFFIX})"
        )
        if target:
            saved = save_scene(result.sprite, Path(target))
            logger.debug("Import dialog saved scene path=%s", saved)
        self.accept()


class ExportDialog(QDialog):
    def __init__(self, sprite: Sprite, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._sprite = sprite
        self._scan: CelScan = scan_cels(sprite)
        self.setModal(True)
        self.setWindowTitle("Export")
        self.resize(520, 360)

        root = QVBoxLayout(self)
        root.setContentsMargins(8, 8, 8, 8)
        root.setSpacing(6)

        self.output_label = QLabel()
        _section("Output Folder", root).addWidget(self.output_label)

        sprite_layout = _section("Sprite Analysis", root)
        self.color_mode_label = QLabel()
        self.palette_label = QLabel()
        sprite_layout.addWidget(self.color_mode_label)
        sprite_layout.addWidget(self.palette_label)

        cel_layout = _section("Cel Analysis", root)
        self.cel_counts_label = QLabel()
        self.multi_label = QLabel()
        self.multi_label.setWordWrap(True)
        cel_layout.addWidget(self.cel_counts_label)
        cel_layout.addWidget(self.multi_label)

        _section("Info", root).addWidget(
            QLabel("Images will be exported in the format: Frame-X-Layer-Y.png")
        )

        _separator(root)
        buttons = QHBoxLayout()
        buttons.addStretch(1)
        self.export_btn = QPushButton()
        self.export_btn.clicked.connect(self._export)
        buttons.addWidget(self.export_btn)
        self.mask_btn = QPushButton("Mask Multi Palette")
        self.mask_btn.clicked.connect(self._mask)
        buttons.addWidget(self.mask_btn)
        cancel_btn = QPushButton("Cancel")
        cancel_btn.clicked.connect(self.reject)
        buttons.addWidget(cancel_btn)
        root.addLayout(buttons)

        self._render(ExportViewState.from_scan(sprite, self._scan))

    def _render(self, state: ExportViewState) -> None:
        self.output_label.setText(str(state.output_folder))
        self.color_mode_label.setText(state.color_mode_text)
        self.palette_label.setText(state.palette_colors_text)
        self.cel_counts_label.setText(state.cel_counts_text)
        if state.multi_palette is not None:
            self.multi_label.setText("\n".join(state.multi_palette.render()))
            self.multi_label.setVisible(True)
        else:
            self.multi_label.setVisible(False)
        self.export_btn.setText(state.export_button_text)
        self.export_btn.setEnabled(state.export_enabled)
        self.mask_btn.setEnabled(state.mask_enabled)

    def _export(self) -> None:
        folder = output_folder_for(self._sprite)
        count = export_all_cels(self._sprite, self._scan.all_cels)
        QMessageBox.information(self, "Export Complete", "\n".join(export_summary(count, folder)))
        self.accept()

    def _mask(self) -> None:
        count = mask_multi_pal_cels(self._sprite, self._scan.multi_pal_cels)
        QMessageBox.information(self, "Masking Complete", "\n".join(mask_summary(count)))
        answer = QMessageBox.question(self, "Save Scene", "Save the scene with the new mask layers?")
        if answer == QMessageBox.StandardButton.Yes and self._sprite.filename is not None:
            save_scene(self._sprite, self._sprite.filename)
        self._scan = scan_cels(self._sprite)
        self._render(ExportViewState.from_scan(self._sprite, self._scan))
        self.export_btn.setEnabled(self.export_btn.isEnabled() and not self._sprite.is_modified)


def _open_export_dialog(scene_path: Path | None) -> int:
    if scene_path is None:
        selected, _filter = QFileDialog.getOpenFileName(None, "Open scene", "", f"Cel scenes (*{SCENE_SUFFIX})")
        if not selected:
            return 1
        scene_path = Path(selected)
    try:
        sprite = validate_export_target(load_scene(scene_path))
    except ExportRefused as exc:
        QMessageBox.warning(None, exc.title, exc.message)
        return 1
    except (OSError, SceneFormatError) as exc:
        QMessageBox.warning(None, "Open Scene", f"Failed to read scene: {exc}")
        return 1
    dialog = ExportDialog(sprite)
    return 0 if dialog.exec() == QDialog.DialogCode.Accepted else 1


def run(dialog: str = "import", scene_path: Path | None = None) -> int:
    setup_debug_logging()
    app = QApplication.instance() or QApplication(sys.argv)
    try:
        if dialog == "export":
            return _open_export_dialog(scene_path)
        window = ImportDialog()
        return 0 if window.exec() == QDialog.DialogCode.Accepted else 1
    except CelToolsError as exc:
        logger.error("Dialog failed: %s", exc)
        QMessageBox.critical(None, "CelTools", str(exc))
        return 1
    finally:
        app.processEvents()


if __name__ == "__main__":
    raise SystemExit(run(*sys.argv[1:2]))
