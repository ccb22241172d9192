"""Tests for folder scanning and sprite reconstruction."""

import numpy as np
import pytest
from PIL import Image

from cel_tools.errors import ImportAborted
from cel_tools.importer import (
    ImportOptions,
    LayerGroup,
    ScanResult,
    SourceFile,
    convert_indexed_to_rgb,
    convert_wide_gray_to_rgb,
    create_sprite_from_files,
    import_folder,
    scan_png_files,
)
from cel_tools.palette_ops import Palette, PaletteError
from cel_tools.scene import ColorMode

from conftest import PALETTE_4

OTHER_PALETTE = [(0, 0, 0), (255, 255, 0), (0, 255, 0), (0, 0, 255)]


class TestScan:
    def test_frames_normalized_when_min_is_zero(self, tmp_path, write_indexed):
        write_indexed("Frame-0-Layer-0.png", [[1]])
        write_indexed("Frame-3-Layer-0.png", [[1]])

        scan = scan_png_files(tmp_path)

        assert [source.frame for source in scan.files] == [1, 4]
        assert scan.min_frame == 1
        assert scan.max_frame == 4

    def test_frames_kept_when_min_is_positive(self, tmp_path, write_indexed):
        write_indexed("Frame-2-Layer-0.png", [[1]])
        write_indexed("Frame-5-Layer-0.png", [[1]])

        scan = scan_png_files(tmp_path)

        assert [source.frame for source in scan.files] == [2, 5]
        assert scan.min_frame >= 1
        assert scan.max_frame == 5

    def test_canvas_is_max_width_and_height(self, tmp_path, write_indexed):
        write_indexed("Frame-1-Layer-0.png", [[1, 1], [1, 1], [1, 1]])
        write_indexed("Frame-1-Layer-1.png", [[1, 1, 1, 1]])

        scan = scan_png_files(tmp_path)

        assert (scan.max_width, scan.max_height) == (4, 3)

    def test_non_matching_files_ignored_and_names_case_insensitive(self, tmp_path, write_indexed):
        write_indexed("FRAME-1-LAYER-2.PNG", [[1]])
        write_indexed("frame-1-layer-2-copy.png", [[1]])
        write_indexed("sprite.png", [[1]])
        (tmp_path / "notes.txt").write_text("hello", encoding="utf-8")

        scan = scan_png_files(tmp_path)

        assert len(scan.files) == 1
        assert (scan.files[0].frame, scan.files[0].layer) == (1, 2)

    def test_files_sorted_by_layer_then_frame(self, tmp_path, write_indexed):
        for name in ("Frame-2-Layer-1.png", "Frame-1-Layer-3.png", "Frame-1-Layer-1.png"):
            write_indexed(name, [[1]])

        scan = scan_png_files(tmp_path)

        assert [(s.layer, s.frame) for s in scan.files] == [(1, 1), (1, 2), (3, 1)]
        assert [group.layer for group in scan.layer_groups] == [1, 3]
        assert [s.frame for s in scan.layer_groups[0].files] == [1, 2]

    def test_rgb_file_forces_rgb_mode(self, tmp_path, write_indexed, write_rgba):
        write_indexed("Frame-1-Layer-0.png", [[1]])
        write_rgba("Frame-2-Layer-0.png", (1, 1))

        scan = scan_png_files(tmp_path)

        assert scan.all_indexed is False
        assert scan.target_color_mode is ColorMode.RGB
        assert [s.filename for s in scan.non_indexed_files] == ["Frame-2-Layer-0.png"]
        assert scan.mismatched_palette_files == []

    def test_palette_divergence_forces_rgb_mode(self, tmp_path, write_indexed):
        write_indexed("Frame-1-Layer-0.png", [[1]])
        write_indexed("Frame-2-Layer-0.png", [[1]], colors=OTHER_PALETTE)

        scan = scan_png_files(tmp_path)

        assert scan.all_indexed is True
        assert scan.same_palette is False
        assert scan.target_color_mode is ColorMode.RGB
        assert scan.first_palette_file == (1, 0)
        assert [(s.frame, s.layer) for s in scan.mismatched_palette_files] == [(2, 0)]

    def test_identical_palettes_choose_indexed(self, tmp_path, write_indexed):
        write_indexed("Frame-1-Layer-0.png", [[1]])
        write_indexed("Frame-2-Layer-0.png", [[2]])

        scan = scan_png_files(tmp_path)

        assert scan.use_indexed is True
        assert scan.target_color_mode is ColorMode.INDEXED

    def test_unreadable_file_is_skipped(self, tmp_path, write_indexed):
        write_indexed("Frame-1-Layer-0.png", [[1]])
        (tmp_path / "Frame-2-Layer-0.png").write_bytes(b"not a png")

        scan = scan_png_files(tmp_path)

        assert len(scan.files) == 1
        assert [path.name for path in scan.unreadable_files] == ["Frame-2-Layer-0.png"]

    def test_duplicate_coordinates_keep_first_file(self, tmp_path, write_indexed):
        write_indexed("Frame-01-Layer-1.png", [[1]])
        write_indexed("Frame-1-Layer-1.png", [[2]])

        scan = scan_png_files(tmp_path)

        assert len(scan.files) == 1
        assert scan.files[0].filename == "Frame-01-Layer-1.png"
        assert [path.name for path in scan.duplicate_files] == ["Frame-1-Layer-1.png"]

    def test_missing_folder_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            scan_png_files(tmp_path / "missing")


class TestCreateSprite:
    def test_indexed_scenario(self, tmp_path, write_indexed):
        write_indexed("Frame-0-Layer-0.png", [[1, 2], [3, 0]])
        write_indexed("Frame-1-Layer-1.png", [[2, 2], [2, 2]])

        result = create_sprite_from_files(scan_png_files(tmp_path))
        sprite = result.sprite

        assert result.cel_count == 2
        assert result.layer_count == 2
        assert result.frame_count == 2
        assert result.color_mode is ColorMode.INDEXED
        assert sprite.frame_count == 2
        assert [layer.name for layer in sprite.layers] == ["Layer 0", "Layer 1"]
        assert sprite.layers[0].cel(1) is not None
        assert sprite.layers[1].cel(2) is not None
        assert sprite.layers[0].cel(1).position == (0, 0)
        assert np.asarray(sprite.layers[0].cel(1).image).tolist() == [[1, 2], [3, 0]]
        assert [color[:3] for color in sprite.palette.colors[:4]] == PALETTE_4

    def test_rgb_scenario_uses_each_files_own_palette(self, tmp_path, write_indexed, write_rgba):
        write_indexed("Frame-0-Layer-0.png", [[1, 3]])
        write_rgba("Frame-1-Layer-1.png", (2, 1), color=(9, 9, 9, 255))

        result = create_sprite_from_files(scan_png_files(tmp_path))
        sprite = result.sprite

        assert result.color_mode is ColorMode.RGB
        cel = sprite.layers[0].cel(1)
        assert cel.image.mode == "RGBA"
        assert cel.image.getpixel((0, 0)) == (255, 0, 0, 255)
        assert cel.image.getpixel((1, 0)) == (0, 0, 255, 255)
        assert sprite.layers[1].cel(2).image.getpixel((0, 0)) == (9, 9, 9, 255)

    def test_mismatched_palettes_convert_with_their_own_palette(self, tmp_path, write_indexed):
        write_indexed("Frame-1-Layer-0.png", [[1]])
        write_indexed("Frame-1-Layer-1.png", [[1]], colors=OTHER_PALETTE)

        sprite = create_sprite_from_files(scan_png_files(tmp_path)).sprite

        assert sprite.color_mode is ColorMode.RGB
        assert sprite.layers[0].cel(1).image.getpixel((0, 0)) == (255, 0, 0, 255)
        assert sprite.layers[1].cel(1).image.getpixel((0, 0)) == (255, 255, 0, 255)

    def test_missing_frames_stay_empty(self, tmp_path, write_indexed):
        write_indexed("Frame-1-Layer-0.png", [[1]])
        write_indexed("Frame-4-Layer-0.png", [[1]])

        sprite = create_sprite_from_files(scan_png_files(tmp_path)).sprite

        assert sprite.frame_count == 4
        assert [cel.frame for cel in sprite.layers[0].cels] == [1, 4]

    def test_smaller_files_placed_at_origin(self, tmp_path, write_indexed):
        write_indexed("Frame-1-Layer-0.png", [[1, 1, 1], [1, 1, 1]])
        write_indexed("Frame-1-Layer-1.png", [[2]])

        sprite = create_sprite_from_files(scan_png_files(tmp_path)).sprite

        assert sprite.size == (3, 2)
        small = sprite.layers[1].cel(1)
        assert small.position == (0, 0)
        assert small.image.size == (1, 1)

    def test_import_is_one_undo_step(self, tmp_path, write_indexed):
        write_indexed("Frame-1-Layer-0.png", [[1]])

        sprite = create_sprite_from_files(scan_png_files(tmp_path)).sprite

        assert sprite.undo() == "Import cels"
        assert sprite.can_undo is False

    def test_empty_folder_aborts(self, tmp_path):
        with pytest.raises(ImportAborted):
            create_sprite_from_files(scan_png_files(tmp_path))

    def test_import_folder_saves_scene(self, tmp_path, write_indexed):
        cels = tmp_path / "cels"
        write_indexed("Frame-1-Layer-0.png", [[1]], folder=cels)
        target = tmp_path / "hero.celscene"

        result = import_folder(ImportOptions(folder=cels, output_path=target))

        assert target.exists()
        assert result.sprite.filename == target.resolve()
        assert result.sprite.is_modified is False


def test_convert_indexed_to_rgb_out_of_range_index_is_transparent():
    image = Image.new("P", (2, 1))
    image.putdata([1, 9])
    palette = Palette.from_colors([(0, 0, 0, 0), (1, 2, 3, 255)])

    converted = convert_indexed_to_rgb(image, palette)

    assert converted.mode == "RGBA"
    assert converted.getpixel((0, 0)) == (1, 2, 3, 255)
    assert converted.getpixel((1, 0)) == (0, 0, 0, 0)


def test_sixteen_bit_gray_is_scaled_to_eight_bits(tmp_path):
    values = np.full((2, 2), 40000, dtype="<u2")
    Image.frombytes("I;16", (2, 2), values.tobytes()).save(tmp_path / "Frame-1-Layer-0.png")

    result = create_sprite_from_files(scan_png_files(tmp_path))

    assert result.color_mode is ColorMode.RGB
    assert result.sprite.layers[0].cel(1).image.getpixel((1, 1)) == (156, 156, 156, 255)


def test_convert_wide_gray_to_rgb_keeps_extremes():
    values = np.array([[0, 255], [256, 65535]], dtype="<u2")
    image = Image.frombytes("I;16", (2, 2), values.tobytes())

    converted = convert_wide_gray_to_rgb(image)

    assert converted.mode == "RGBA"
    assert [converted.getpixel((x, y))[0] for y in range(2) for x in range(2)] == [0, 0, 1, 255]


def test_indexed_source_without_palette_raises(tmp_path):
    source = SourceFile(
        path=tmp_path / "Frame-1-Layer-0.png",
        filename="Frame-1-Layer-0.png",
        frame=1,
        layer=0,
        width=1,
        height=1,
        color_mode=ColorMode.INDEXED,
        image=Image.new("P", (1, 1), 1),
    )
    scan = ScanResult(
        folder=tmp_path,
        files=[source],
        layer_groups=[LayerGroup(layer=0, files=[source])],
        min_frame=1,
        max_frame=1,
        max_width=1,
        max_height=1,
        all_indexed=False,
        same_palette=False,
        first_palette=None,
        first_palette_file=None,
        mismatched_palette_files=[],
        non_indexed_files=[],
        unreadable_files=[],
        duplicate_files=[],
    )

    with pytest.raises(PaletteError):
        create_sprite_from_files(scan)
