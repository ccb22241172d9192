"""Command-line interface for CelTools import/export operations."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable

from .errors import CelToolsError
from .exporter import (
    ExportOptions,
    export_all_cels,
    mask_multi_pal_cels,
    output_folder_for,
    scan_cels,
    validate_export_target,
)
from .importer import ImportOptions, import_folder, scan_png_files
from .logging_setup import setup_debug_logging
from .scene_io import SceneFormatError, load_scene, save_scene
from .view_state import (
    ExportViewState,
    ImportViewState,
    export_summary,
    import_summary,
    mask_summary,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cel-tools",
        description="Rebuild sprites from Frame-X-Layer-Y.png files and export them back",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Print debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    analyze = commands.add_parser("analyze", help="Report what importing a folder would produce")
    analyze.add_argument("folder", type=Path, help="Folder holding Frame-X-Layer-Y.png files")

    import_cmd = commands.add_parser("import", help="Build a scene from a folder of cel PNGs")
    import_cmd.add_argument("folder", type=Path, help="Folder holding Frame-X-Layer-Y.png files")
    import_cmd.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Scene file to write (defaults to <folder>.celscene)",
    )

    inspect = commands.add_parser("inspect", help="Report palette banks used by a scene's cels")
    inspect.add_argument("scene", type=Path, help="Scene file")

    export = commands.add_parser("export", help="Write every non-empty cel as its own PNG")
    export.add_argument("scene", type=Path, help="Scene file")
    export.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Destination folder (defaults to <scene dir>/<scene name>)",
    )

    mask = commands.add_parser("mask", help="Add Palette-Mask layers for cels that mix palette banks")
    mask.add_argument("scene", type=Path, help="Scene file")
    mask.add_argument("--dry-run", action="store_true", help="Do not save the scene afterwards")

    gui = commands.add_parser("gui", help="Open the import or export dialog")
    gui.add_argument("dialog", choices=("import", "export"), help="Dialog to open")
    gui.add_argument("scene", type=Path, nargs="?", default=None, help="Scene file for the export dialog")
    return parser


def _print_lines(lines: Iterable[str]) -> None:
    for line in lines:
        print(line)


def _load_scene_or_error(parser: argparse.ArgumentParser, path: Path):
    try:
        return load_scene(path)
    except FileNotFoundError as exc:
        parser.error(str(exc))
    except SceneFormatError as exc:
        parser.error(f"Failed to read scene: {exc}")


def _require_folder(parser: argparse.ArgumentParser, folder: Path) -> None:
    if not folder.is_dir():
        parser.error(f"Input folder not found: {folder}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_debug_logging()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s [%(name)s] %(message)s")

    if args.command == "gui":
        from .ui.main import run

        return run(args.dialog, args.scene)

    try:
        if args.command == "analyze":
            _require_folder(parser, args.folder)
            _print_lines(ImportViewState.from_scan(scan_png_files(args.folder)).render())
            return 0

        if args.command == "import":
            _require_folder(parser, args.folder)
            folder = args.folder.resolve()
            output = args.output or folder.parent / f"{folder.name}.celscene"
            result = import_folder(ImportOptions(folder=args.folder, output_path=output))
            _print_lines(import_summary(result))
            print(f"Saved: {result.sprite.filename}")
            return 0

        sprite = _load_scene_or_error(parser, args.scene)
        validate_export_target(sprite)
        scan = scan_cels(sprite)

        if args.command == "inspect":
            _print_lines(ExportViewState.from_scan(sprite, scan).render())
            return 0

        if args.command == "export":
            folder = args.out or output_folder_for(sprite)
            count = export_all_cels(sprite, scan.all_cels, ExportOptions(output_dir=folder))
            _print_lines(export_summary(count, folder))
            return 0

        if args.command == "mask":
            if not scan.multi_pal_cels:
                print("No multi palette cels to mask.")
                return 0
            count = mask_multi_pal_cels(sprite, scan.multi_pal_cels)
            _print_lines(mask_summary(count))
            if not args.dry_run:
                save_scene(sprite, sprite.filename)
                print(f"Saved: {sprite.filename}")
            return 0
    except CelToolsError as exc:
        print(f"[FAIL] {exc}")
        return 1

    parser.error(f"Unknown command {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
