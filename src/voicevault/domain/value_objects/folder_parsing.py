"""Patterns and pure helpers for turning release folders into works and tracks.

Hey future me - everything in here is PURE (no DB, no logging side effects beyond debug).
The scanner service does the walking and the persistence; these helpers answer the
"what is this folder / file?" questions so they can be unit-tested with plain strings.

The key rules:
1. EXTERNAL CODE: first match of a letter-prefix + digits pattern in a directory name
   (e.g. "RJ01234567 My Release" -> "RJ01234567"). Optional.
2. COVER: priority stems x priority extensions, first hit wins; else the largest image.
3. TRACK NUMBER: leading integer of the file stem ("03 Ear cleaning.wav" -> 3).
4. DUPLICATE FORMATS: same folder + stem, different container -> lossless beats lossy.
   Folders named after a format ("mp3/", "wav/") don't count as a different folder.

Usage:
    code = extract_external_code("RJ01234567 Whispering Rain", DEFAULT_CODE_PATTERN)
    visible = choose_visible_paths(["a/01.wav", "a/01.mp3", "a/02.mp3"])
"""

import re
from collections.abc import Iterable
from pathlib import Path, PurePath

# =============================================================================
# CONSTANTS
# =============================================================================

# Supported audio file extensions (lowercase)
AUDIO_EXTENSIONS = frozenset(
    {
        # Lossless
        ".flac",
        ".wav",
        ".aiff",
        ".aif",
        ".ape",
        ".wv",
        # Lossy
        ".m4a",
        ".ogg",
        ".opus",
        ".mp3",
        ".aac",
        ".wma",
    }
)

# Hey future me - this is THE duplicate-format decision. Lossless first, then lossy roughly
# by quality-per-bit. Index 0 wins. Anything not listed sorts after everything listed.
FORMAT_PRIORITY: tuple[str, ...] = (
    ".flac",
    ".wav",
    ".aiff",
    ".aif",
    ".ape",
    ".wv",
    ".m4a",
    ".ogg",
    ".opus",
    ".mp3",
    ".aac",
    ".wma",
)

IMAGE_EXTENSIONS: tuple[str, ...] = (".jpg", ".jpeg", ".png", ".webp", ".bmp")

# Cover candidates in priority order (file stem, compared case-insensitively)
COVER_STEMS: tuple[str, ...] = ("cover", "folder", "front", "main", "jacket")

DEFAULT_CODE_PATTERN = r"(?:RJ|BJ|VJ)\d{6,8}"

# "03 Title", "03. Title", "003-Title", "3_title" -> 3
TRACK_NUMBER_PATTERN = re.compile(r"^\s*(?P<number>\d{1,4})(?!\d)")

_NATURAL_SPLIT = re.compile(r"(\d+)")

# Folders that only name a container: "mp3", "WAV", "flac版", "mp3_ver", "[FLAC]"
_FORMAT_FOLDER_PATTERN = re.compile(
    r"[\W_]*(?:"
    + "|".join(ext.lstrip(".") for ext in FORMAT_PRIORITY)
    + r")(?:[\W_]*(?:ver(?:sion)?|版|形式))?[\W_]*",
    re.IGNORECASE,
)


# =============================================================================
# PARSERS
# =============================================================================


def compile_code_pattern(pattern: str) -> re.Pattern[str]:
    """Compile an external-code pattern (case-insensitive)."""
    return re.compile(pattern, re.IGNORECASE)


def extract_external_code(name: str, pattern: str | re.Pattern[str]) -> str | None:
    """Return the upper-cased external code embedded in ``name``, or None.

    Examples:
        "RJ01234567" -> "RJ01234567"
        "[circle] rj123456 title" -> "RJ123456"
        "My Folder" -> None
    """
    regex = compile_code_pattern(pattern) if isinstance(pattern, str) else pattern
    match = regex.search(name)
    if match is None:
        return None
    return match.group(0).upper()


def is_audio_file(path: str | Path) -> bool:
    """True when the extension is one of AUDIO_EXTENSIONS."""
    return Path(path).suffix.lower() in AUDIO_EXTENSIONS


def parse_track_number(filename: str) -> int | None:
    """Extract the leading track number from a filename (extension ignored).

    Examples:
        "01.wav" -> 1
        "12 - Good night.mp3" -> 12
        "Bonus track.mp3" -> None
    """
    match = TRACK_NUMBER_PATTERN.match(Path(filename).stem)
    if match is None:
        return None
    return int(match.group("number"))


def natural_sort_key(name: str) -> tuple[tuple[int, int | str], ...]:
    """Sort key that orders "track2" before "track10".

    Hey future me - each chunk becomes (kind, value) so ints and strings never get
    compared directly (Python 3 would raise TypeError).
    """
    parts: list[tuple[int, int | str]] = []
    for chunk in _NATURAL_SPLIT.split(name.casefold()):
        if not chunk:
            continue
        if chunk.isdigit():
            parts.append((0, int(chunk)))
        else:
            parts.append((1, chunk))
    return tuple(parts)


def format_rank(path: str | Path) -> int:
    """Position of the file's container in FORMAT_PRIORITY (lower wins)."""
    suffix = Path(path).suffix.lower()
    try:
        return FORMAT_PRIORITY.index(suffix)
    except ValueError:
        return len(FORMAT_PRIORITY)


def _is_format_folder(name: str) -> bool:
    """True for folder names that only say which container lives inside ("mp3", "WAV版")."""
    return _FORMAT_FOLDER_PATTERN.fullmatch(name.strip()) is not None


def logical_track_key(
    path: str | Path, root: str | Path | None = None
) -> tuple[str, ...]:
    """Key shared by all format copies of the same logical track.

    The key is the file's parent folders (relative to ``root`` when given) plus the
    case-folded stem. Folders named after a format are dropped, so ``mp3/01.mp3``
    and ``wav/01.wav`` share a key while ``Main/01.wav`` and ``Bonus/01.wav`` don't.
    """
    file_path = PurePath(path)
    parent = file_path.parent
    if root is not None and parent.is_relative_to(root):
        parent = parent.relative_to(root)
    folders = tuple(
        part.casefold() for part in parent.parts if not _is_format_folder(part)
    )
    return (*folders, file_path.stem.casefold())


def choose_visible_paths(
    paths: Iterable[str], root: str | Path | None = None
) -> set[str]:
    """Pick the visible files of each logical track.

    Groups files by logical_track_key and keeps the best-ranked format of each
    group. Every member sharing the winner's extension stays visible too; only a
    different, lower-priority container is ever hidden.

    Returns:
        Set of paths that should be ``is_visible=True``. Every other path in
        ``paths`` is a lower-priority duplicate.
    """
    groups: dict[tuple[str, ...], list[str]] = {}
    for path in paths:
        groups.setdefault(logical_track_key(path, root), []).append(path)

    visible: set[str] = set()
    for members in groups.values():
        best = min(format_rank(p) for p in members)
        visible.update(p for p in members if format_rank(p) == best)
    return visible


def find_cover_image(work_root: Path) -> Path | None:
    """Select a cover image for a work directory.

    1. Priority stems (cover, folder, front, main, jacket) x image extensions,
       directly inside ``work_root``; first hit in that order wins.
    2. Otherwise the largest image anywhere below ``work_root``.
    3. Otherwise None.

    Unreadable entries are ignored; this never raises OSError.
    """
    try:
        direct = [p for p in work_root.iterdir() if p.is_file()]
    except OSError:
        return None

    by_name = {p.name.casefold(): p for p in direct}
    for stem in COVER_STEMS:
        for ext in IMAGE_EXTENSIONS:
            hit = by_name.get(f"{stem}{ext}")
            if hit is not None:
                return hit

    best: tuple[int, str, Path] | None = None
    for candidate in _iter_images(work_root):
        try:
            size = candidate.stat().st_size
        except OSError:
            continue
        # Largest wins; ties go to the shorter/lexically smaller path for determinism
        rank = (-size, str(candidate), candidate)
        if best is None or rank[:2] < best[:2]:
            best = rank
    return best[2] if best is not None else None


def _iter_images(root: Path) -> Iterable[Path]:
    try:
        for path in root.rglob("*"):
            if path.suffix.lower() in IMAGE_EXTENSIONS and path.is_file():
                yield path
    except OSError:
        return


def resolve_work_root(
    file_dir: Path, scan_root: Path, code_pattern: re.Pattern[str]
) -> tuple[Path, str | None]:
    """Decide which directory a file's work is anchored at.

    Walks up from ``file_dir`` to ``scan_root`` (inclusive) looking for a
    directory whose name carries an external code. The nearest such directory
    is the work root, so ``RJ01234567/mp3/01.mp3`` and ``RJ01234567/wav/01.wav``
    land in the same work. Without a coded ancestor the file's own directory
    is the work root.

    Returns:
        (work_root, external_code or None)
    """
    current = file_dir
    while True:
        code = extract_external_code(current.name, code_pattern)
        if code is not None:
            return current, code
        if current == scan_root or current.parent == current:
            break
        current = current.parent
    return file_dir, None
