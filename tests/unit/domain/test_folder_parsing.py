"""Unit tests for release folder parsing.

Tests the pure helpers that decide work roots, external codes, covers, track
numbers and which duplicate format stays visible.
"""

from pathlib import Path

import pytest

from voicevault.domain.value_objects.folder_parsing import (
    DEFAULT_CODE_PATTERN,
    choose_visible_paths,
    compile_code_pattern,
    extract_external_code,
    find_cover_image,
    format_rank,
    is_audio_file,
    natural_sort_key,
    parse_track_number,
    resolve_work_root,
)


class TestExtractExternalCode:
    """Tests for extract_external_code function."""

    def test_plain_code_folder(self) -> None:
        assert extract_external_code("RJ01234567", DEFAULT_CODE_PATTERN) == "RJ01234567"

    def test_code_inside_longer_name_is_uppercased(self) -> None:
        """Lower-case codes embedded in a title are found and normalized."""
        name = "[Circle] rj123456 Whispering Rain"
        assert extract_external_code(name, DEFAULT_CODE_PATTERN) == "RJ123456"

    def test_folder_without_code(self) -> None:
        assert extract_external_code("My Folder", DEFAULT_CODE_PATTERN) is None

    def test_too_few_digits_is_not_a_code(self) -> None:
        assert extract_external_code("RJ12345", DEFAULT_CODE_PATTERN) is None

    def test_accepts_precompiled_pattern(self) -> None:
        pattern = compile_code_pattern(r"XX\d{3}")
        assert extract_external_code("xx123 test", pattern) == "XX123"


class TestParseTrackNumber:
    """Tests for parse_track_number function."""

    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("01.wav", 1),
            ("12 - Good night.mp3", 12),
            ("003-Ear cleaning.flac", 3),
            ("  7_whisper.ogg", 7),
            ("Bonus track.mp3", None),
            ("Track 05.mp3", None),
            ("12345 too long.mp3", None),
        ],
    )
    def test_leading_number(self, filename: str, expected: int | None) -> None:
        assert parse_track_number(filename) == expected


class TestFormatHelpers:
    """Tests for is_audio_file, format_rank and natural_sort_key."""

    def test_audio_extensions_case_insensitive(self) -> None:
        assert is_audio_file("a/01.WAV")
        assert is_audio_file("b/02.opus")
        assert not is_audio_file("cover.jpg")
        assert not is_audio_file("readme.txt")

    def test_lossless_ranks_before_lossy(self) -> None:
        assert format_rank("x.flac") < format_rank("x.wav") < format_rank("x.mp3")
        assert format_rank("x.mp3") < format_rank("x.wma")

    def test_unknown_extension_ranks_last(self) -> None:
        assert format_rank("x.xyz") > format_rank("x.wma")

    def test_natural_sort_orders_numbers_numerically(self) -> None:
        names = ["track10.mp3", "track2.mp3", "Track1.mp3"]
        assert sorted(names, key=natural_sort_key) == [
            "Track1.mp3",
            "track2.mp3",
            "track10.mp3",
        ]


class TestChooseVisiblePaths:
    """Tests for the duplicate-format rule."""

    def test_wav_beats_mp3_of_same_stem(self) -> None:
        visible = choose_visible_paths(["w/01.wav", "w/01.mp3", "w/02.mp3"])
        assert visible == {"w/01.wav", "w/02.mp3"}

    def test_copies_in_format_subfolders_are_grouped(self) -> None:
        """mp3/01 Intro.mp3 and wav/01 intro.wav are the same logical track."""
        paths = ["RJ1/mp3/01 Intro.mp3", "RJ1/wav/01 intro.wav", "RJ1/mp3/02 Body.mp3"]
        assert choose_visible_paths(paths) == {
            "RJ1/wav/01 intro.wav",
            "RJ1/mp3/02 Body.mp3",
        }

    def test_same_format_in_sibling_folders_stays_visible(self) -> None:
        visible = choose_visible_paths(["b/01.mp3", "a/01.mp3"])
        assert visible == {"a/01.mp3", "b/01.mp3"}

    def test_main_and_bonus_tracks_are_distinct(self) -> None:
        """Main/01.wav and Bonus/01.wav share a stem but are different tracks."""
        root = "lib/RJ01234567 Rain"
        paths = [f"{root}/Main/01.wav", f"{root}/Bonus/01.wav", f"{root}/Main/01.mp3"]
        assert choose_visible_paths(paths, root) == {
            f"{root}/Main/01.wav",
            f"{root}/Bonus/01.wav",
        }

    def test_se_on_and_off_variants_are_distinct(self) -> None:
        root = "lib/RJ01234567"
        paths = [
            f"{root}/SE有り/wav/01.wav",
            f"{root}/SE有り/mp3/01.mp3",
            f"{root}/SE無し/wav/01.wav",
            f"{root}/SE無し/mp3/01.mp3",
        ]
        assert choose_visible_paths(paths, root) == {
            f"{root}/SE有り/wav/01.wav",
            f"{root}/SE無し/wav/01.wav",
        }

    @pytest.mark.parametrize(
        "folder", ["MP3", "mp3版", "[FLAC]", "wav_ver", "Opus version"]
    )
    def test_format_named_folders_collapse(self, folder: str) -> None:
        paths = [f"RJ1/{folder}/01.m4a", "RJ1/WAV/01.wav"]
        assert choose_visible_paths(paths, "RJ1") == {"RJ1/WAV/01.wav"}

    def test_every_copy_in_the_winning_format_stays_visible(self) -> None:
        paths = ["x/wav/01.wav", "x/WAV/01.wav", "x/mp3/01.mp3"]
        assert choose_visible_paths(paths, "x") == {"x/wav/01.wav", "x/WAV/01.wav"}

    def test_paths_outside_root_fall_back_to_full_parent(self) -> None:
        visible = choose_visible_paths(["a/01.wav", "b/01.wav"], "elsewhere")
        assert visible == {"a/01.wav", "b/01.wav"}

    def test_exactly_one_visible_per_stem(self) -> None:
        paths = ["x/01.flac", "x/01.wav", "x/01.mp3", "x/01.m4a"]
        assert choose_visible_paths(paths) == {"x/01.flac"}


class TestFindCoverImage:
    """Tests for find_cover_image function."""

    def test_priority_stem_wins_over_larger_image(self, tmp_path: Path) -> None:
        (tmp_path / "folder.png").write_bytes(b"\x00" * 10)
        (tmp_path / "huge.jpg").write_bytes(b"\x00" * 1000)
        assert find_cover_image(tmp_path) == tmp_path / "folder.png"

    def test_stem_order_beats_extension_order(self, tmp_path: Path) -> None:
        (tmp_path / "front.jpg").write_bytes(b"\x00")
        (tmp_path / "cover.webp").write_bytes(b"\x00")
        assert find_cover_image(tmp_path) == tmp_path / "cover.webp"

    def test_priority_match_is_case_insensitive(self, tmp_path: Path) -> None:
        (tmp_path / "Cover.JPG").write_bytes(b"\x00")
        assert find_cover_image(tmp_path) == tmp_path / "Cover.JPG"

    def test_largest_image_anywhere_below_root(self, tmp_path: Path) -> None:
        nested = tmp_path / "images" / "extra"
        nested.mkdir(parents=True)
        (tmp_path / "small.png").write_bytes(b"\x00" * 5)
        (nested / "big.jpg").write_bytes(b"\x00" * 500)
        assert find_cover_image(tmp_path) == nested / "big.jpg"

    def test_no_image_returns_none(self, tmp_path: Path) -> None:
        (tmp_path / "01.mp3").write_bytes(b"\x00")
        assert find_cover_image(tmp_path) is None

    def test_missing_directory_returns_none(self, tmp_path: Path) -> None:
        assert find_cover_image(tmp_path / "nope") is None


class TestResolveWorkRoot:
    """Tests for resolve_work_root function."""

    pattern = compile_code_pattern(DEFAULT_CODE_PATTERN)

    def test_nearest_coded_ancestor_is_root(self, tmp_path: Path) -> None:
        work = tmp_path / "RJ01234567 Title"
        file_dir = work / "mp3"
        assert resolve_work_root(file_dir, tmp_path, self.pattern) == (
            work,
            "RJ01234567",
        )

    def test_coded_directory_itself(self, tmp_path: Path) -> None:
        work = tmp_path / "circle" / "RJ111111"
        assert resolve_work_root(work, tmp_path, self.pattern) == (work, "RJ111111")

    def test_uncoded_files_anchor_at_own_directory(self, tmp_path: Path) -> None:
        file_dir = tmp_path / "misc" / "disc1"
        assert resolve_work_root(file_dir, tmp_path, self.pattern) == (file_dir, None)

    def test_walk_stops_at_scan_root(self, tmp_path: Path) -> None:
        """A code above the scan root is not consulted."""
        scan_root = tmp_path / "RJ999999" / "library"
        file_dir = scan_root / "plain"
        assert resolve_work_root(file_dir, scan_root, self.pattern) == (file_dir, None)
