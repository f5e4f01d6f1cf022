# File: easydev/utils.py
"""
EasyDev - Utility Functions & Helpers
======================================
String transformation, naming, hashing and file I/O utilities shared by the
generator, the synchronizer and the persisted state layer.

Strategy:
- Naming functions are decorated with ``@lru_cache(maxsize=None)``; the
  same entity names are converted many times per invocation.
- File writes go through a temp file in the destination directory followed
  by ``os.replace`` so a reader never sees a half-written file.
- No external dependencies beyond the Python standard library.
"""

from __future__ import annotations

import functools
import hashlib
import keyword
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("easydev.utils")

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

_CAMEL_TO_SNAKE_RE1: re.Pattern[str] = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_TO_SNAKE_RE2: re.Pattern[str] = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALPHANUM_RE: re.Pattern[str] = re.compile(r"[^a-zA-Z0-9]")
_MULTI_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"_{2,}")
_LEADING_TRAILING_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"^_+|_+$")
_SPLIT_WORDS_RE: re.Pattern[str] = re.compile(
    r"[A-Z]?[a-z]+|[A-Z]+(?=[A-Z][a-z]|\d|\b)|[A-Z]|\d+"
)

# Python keywords that cannot be module or attribute names
PYTHON_KEYWORDS: FrozenSet[str] = frozenset(keyword.kwlist)


# ---------------------------------------------------------------------------
# Cached string transformation functions
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def to_snake_case(name: str) -> str:
    """
    Convert any string to snake_case.

    Examples:
        >>> to_snake_case("BlogPost")
        'blog_post'
        >>> to_snake_case("getHTTPResponse")
        'get_http_response'
        >>> to_snake_case("already_snake")
        'already_snake'
    """
    if not name:
        return ""
    s: str = _CAMEL_TO_SNAKE_RE1.sub(r"\1_\2", name)
    s = _CAMEL_TO_SNAKE_RE2.sub(r"\1_\2", s)
    s = _NON_ALPHANUM_RE.sub("_", s)
    s = _MULTI_UNDERSCORE_RE.sub("_", s)
    s = _LEADING_TRAILING_UNDERSCORE_RE.sub("", s)
    return s.lower()


@functools.lru_cache(maxsize=None)
def to_kebab_case(name: str) -> str:
    """Convert any string to kebab-case (used in URL paths)."""
    if not name:
        return ""
    words: Tuple[str, ...] = _extract_words(name)
    return "-".join(words)


@functools.lru_cache(maxsize=None)
def to_title_human(name: str) -> str:
    """
    Convert identifier to human-readable title.

    Examples:
        >>> to_title_human("blog_posts")
        'Blog Posts'
    """
    if not name:
        return ""
    words: Tuple[str, ...] = _extract_words(name)
    return " ".join(w.capitalize() for w in words)


@functools.lru_cache(maxsize=None)
def to_plural(name: str) -> str:
    """
    Naive English pluralisation sufficient for code generation.

    Handles common suffixes and a few irregular words seen in schemas.
    """
    if not name:
        return ""

    lower: str = name.lower()

    irregulars: Dict[str, str] = {
        "person": "people",
        "child": "children",
        "man": "men",
        "woman": "women",
        "mouse": "mice",
        "datum": "data",
        "index": "indices",
        "matrix": "matrices",
        "vertex": "vertices",
        "axis": "axes",
        "analysis": "analyses",
        "status": "statuses",
        "address": "addresses",
    }

    # Only the last word of a snake_case name is inflected
    head: str = ""
    tail: str = name
    if "_" in name:
        head, _, tail = name.rpartition("_")
        head += "_"
        lower = tail.lower()

    if lower in irregulars:
        plural: str = irregulars[lower]
        if tail[0].isupper():
            plural = plural[0].upper() + plural[1:]
        return head + plural

    if lower.endswith("s") and not lower.endswith("ss"):
        return head + tail

    if lower.endswith(("sh", "ch", "x", "z", "ss")):
        return head + tail + "es"
    if lower.endswith("y") and len(tail) > 1 and lower[-2] not in "aeiou":
        return head + tail[:-1] + "ies"
    if lower.endswith("fe"):
        return head + tail[:-2] + "ves"
    if lower.endswith("f") and not lower.endswith("ff"):
        return head + tail[:-1] + "ves"
    if lower.endswith("o") and len(tail) > 1 and lower[-2] not in "aeiou":
        return head + tail + "es"

    return head + tail + "s"


@functools.lru_cache(maxsize=None)
def _extract_words(name: str) -> Tuple[str, ...]:
    """
    Extract individual words from any casing style.

    Returns a tuple (hashable for LRU cache) of lowercase word strings.
    """
    cleaned: str = _NON_ALPHANUM_RE.sub(" ", name)
    words: List[str] = _SPLIT_WORDS_RE.findall(cleaned)
    return tuple(w.lower() for w in words if w)


# ---------------------------------------------------------------------------
# Entity naming
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def entity_to_module(entity: str) -> str:
    """Module / file stem for an entity: ``BlogPost`` -> ``blog_post``."""
    return to_snake_case(entity)


@functools.lru_cache(maxsize=None)
def entity_to_table(entity: str) -> str:
    """Table name for an entity: ``BlogPost`` -> ``blog_posts``."""
    return to_plural(to_snake_case(entity))


@functools.lru_cache(maxsize=None)
def entity_to_route_prefix(entity: str) -> str:
    """Router prefix for an entity: ``BlogPost`` -> ``blog-posts``."""
    return to_kebab_case(entity_to_table(entity))


@functools.lru_cache(maxsize=None)
def entity_to_route_tag(entity: str) -> str:
    """Router tag for an entity: ``BlogPost`` -> ``Blog Posts``."""
    return to_title_human(entity_to_table(entity))


def accessor_name(entity: str, many: bool) -> str:
    """Attribute name under which *entity* is reached from a related model."""
    return entity_to_table(entity) if many else entity_to_module(entity)


def pivot_table_name(first: str, second: str) -> str:
    """Alphabetical pivot table for a many-to-many pair: ``post_tag``."""
    names: List[str] = sorted((entity_to_module(first), entity_to_module(second)))
    return "_".join(names)


# ---------------------------------------------------------------------------
# Indentation & code formatting helpers
# ---------------------------------------------------------------------------


def indent_lines(lines: Sequence[str], level: int = 1, size: int = 4) -> List[str]:
    """Indent a list of lines, returning a new list. Blank lines stay blank."""
    prefix: str = " " * (level * size)
    return [prefix + line if line.strip() else "" for line in lines]


def python_literal(value: object) -> str:
    """Render a default value as Python source (``True``, ``3``, ``"x"``)."""
    if isinstance(value, str):
        escaped: str = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return repr(value)


def build_import_block(imports: Dict[str, Set[str]]) -> str:
    """
    Build a sorted, de-duplicated import block from a mapping of
    module -> set of names.

    Example:
        >>> build_import_block({"typing": {"List", "Optional"}, "datetime": {"date"}})
        'from datetime import date\\nfrom typing import List, Optional'
    """
    lines: List[str] = []
    for module in sorted(imports.keys()):
        names: List[str] = sorted(imports[module])
        if names:
            lines.append(f"from {module} import {', '.join(names)}")
        else:
            lines.append(f"import {module}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# File I/O helpers
# ---------------------------------------------------------------------------


def write_file(path: Path, content: str) -> int:
    """
    Atomically write *content* to *path* and return the bytes written.

    The data goes to a temporary file in the same directory, is fsync'ed,
    then renamed over the target with ``os.replace``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded: bytes = content.encode("utf-8")

    fd: int = -1
    tmp_path: str = ""
    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
        )
        os.write(fd, encoded)
        os.fsync(fd)
        os.close(fd)
        fd = -1
        os.replace(tmp_path, str(path))
    except BaseException:
        if fd >= 0:
            os.close(fd)
        if tmp_path and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logger.debug("Wrote %d bytes to %s", len(encoded), path)
    return len(encoded)


def read_file(path: Path) -> str:
    """Read a file as UTF-8 text without newline translation."""
    with open(path, "r", encoding="utf-8", newline="") as fh:
        return fh.read()


def relative_posix(path: Path, root: Path) -> str:
    """Project-relative POSIX path string used as manifest key."""
    return path.resolve().relative_to(root.resolve()).as_posix()


# ---------------------------------------------------------------------------
# Checksum & metrics
# ---------------------------------------------------------------------------


def sha256_hex(content: str) -> str:
    """Return SHA-256 hex digest of a string."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def count_lines(content: str) -> int:
    """Count the number of lines in a string."""
    if not content:
        return 0
    return content.count("\n") + (1 if not content.endswith("\n") else 0)


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Simple context-manager timer for profiling command steps.

    Usage:
        with Timer("generate") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.info("Timer [%s]: %.4f seconds", self.label, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "PYTHON_KEYWORDS",
    "to_snake_case",
    "to_kebab_case",
    "to_title_human",
    "to_plural",
    "entity_to_module",
    "entity_to_table",
    "entity_to_route_prefix",
    "entity_to_route_tag",
    "accessor_name",
    "pivot_table_name",
    "indent_lines",
    "python_literal",
    "build_import_block",
    "write_file",
    "read_file",
    "relative_posix",
    "sha256_hex",
    "count_lines",
    "Timer",
]

logger.debug("easydev.utils loaded — %d public symbols.", len(__all__))
