"""Destination path normalization and classification.

Paths are relative to the project and always use forward slashes. Anything
that could escape the project tree or that has an extension outside the
current mode's set is rejected (``None``), never coerced.
"""

import re
from enum import Enum

from sitebuilder.models import FileRole

SITE_ROOT = "landing"
HTML_ENTRY_PATH = f"{SITE_ROOT}/index.html"
COMPONENT_ENTRY_PATH = f"{SITE_ROOT}/index.tsx"
ENTRY_PATHS = frozenset({HTML_ENTRY_PATH, COMPONENT_ENTRY_PATH})

PAGES_NAMESPACE = "pages"
SECTIONS_NAMESPACE = "sections"


class PathMode(str, Enum):
    """Which family of files a destination belongs to."""

    DOCUMENT = "document"
    COMPONENT = "component"


MODE_EXTENSIONS: dict[PathMode, tuple[str, ...]] = {
    PathMode.DOCUMENT: (".html",),
    PathMode.COMPONENT: (".tsx", ".ts", ".jsx"),
}

DEFAULT_COMPONENT_EXTENSION = ".tsx"

_DUPLICATE_SLASHES = re.compile(r"/{2,}")
_LEADING_DOT_SLASH = re.compile(r"^(?:\./+)+")


def normalize_path(raw: str | None, mode: PathMode) -> str | None:
    """Canonicalize a caller-supplied relative path.

    Rules, in order: trim, backslashes to forward slashes, collapse duplicate
    slashes, strip leading ``./``; then reject absolute paths, NUL bytes,
    ``..`` or empty segments, and extensions not permitted for ``mode``.

    Returns:
        The canonical path, or None if the path must be rejected.
    """
    if not raw:
        return None
    path = str(raw).strip()
    if not path:
        return None

    path = path.replace("\\", "/")
    path = _DUPLICATE_SLASHES.sub("/", path)
    path = _LEADING_DOT_SLASH.sub("", path)

    if not path or path.startswith("/"):
        return None
    if "\0" in path:
        return None
    if any(segment in ("..", "", ".") for segment in path.split("/")):
        return None
    if not path.lower().endswith(MODE_EXTENSIONS[mode]):
        return None
    return path


def infer_mode(path: str | None) -> PathMode | None:
    """Pick the path mode from a raw path's extension."""
    if not path:
        return None
    lowered = path.strip().lower()
    for mode, extensions in MODE_EXTENSIONS.items():
        if lowered.endswith(extensions):
            return mode
    return None


def _namespace_parts(path: str) -> list[str]:
    parts = path.split("/")
    if parts and parts[0] == SITE_ROOT:
        parts = parts[1:]
    return parts


def classify_path(path: str) -> FileRole:
    """Classify a normalized path by prefix convention."""
    if path in ENTRY_PATHS:
        return FileRole.LAYOUT
    parts = _namespace_parts(path)
    if len(parts) > 1 and parts[0] == PAGES_NAMESPACE:
        return FileRole.PAGE
    if len(parts) > 1 and parts[0] == SECTIONS_NAMESPACE:
        return FileRole.SECTION
    return FileRole.OTHER


def is_fragment_destination(path: str) -> bool:
    """Pages and sections are embedded elsewhere and must not be full documents."""
    return classify_path(path) in (FileRole.PAGE, FileRole.SECTION)


def is_document_destination(path: str) -> bool:
    """The entry layout must carry the document root."""
    return classify_path(path) == FileRole.LAYOUT


def strip_source_extension(path: str) -> str:
    """Drop a component-source extension, if any."""
    for extension in MODE_EXTENSIONS[PathMode.COMPONENT]:
        if path.lower().endswith(extension):
            return path[: -len(extension)]
    return path
