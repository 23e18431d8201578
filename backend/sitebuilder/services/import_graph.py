"""Static import-graph discovery over an in-memory component snapshot.

Import specifiers are found by pattern matching, never by executing code.
Only project specifiers (``./x``, ``../y`` and the ``@/`` alias for the site
root) are followed; everything else is a package import left to the bundler.
"""

import logging
import posixpath
import re
from collections import deque
from dataclasses import dataclass, field

from sitebuilder.services.paths import (
    DEFAULT_COMPONENT_EXTENSION,
    MODE_EXTENSIONS,
    SITE_ROOT,
    PathMode,
    normalize_path,
    strip_source_extension,
)

logger = logging.getLogger(__name__)

MAX_GRAPH_DEPTH = 10
MAX_GRAPH_FILES = 50

PROJECT_ALIAS = "@/"

IMPORT_RE = re.compile(
    r"""(?:import|export)\s+(?:type\s+)?[\w*${}\s,]+?\s+from\s+['"]([^'"]+)['"]"""
    r"""|import\s+['"]([^'"]+)['"]"""
    r"""|import\(\s*['"]([^'"]+)['"]\s*\)"""
)


@dataclass
class ImportGraph:
    """Files reachable from an entry, keyed by stored path, in discovery order."""
    entry_path: str
    files: dict[str, str] = field(default_factory=dict)
    # importer path -> {specifier: stored path}
    resolutions: dict[str, dict[str, str]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def is_project_specifier(spec: str) -> bool:
    return spec.startswith(("./", "../", PROJECT_ALIAS))


def extract_import_specifiers(source: str) -> list[str]:
    """Return project import specifiers in source order, without duplicates."""
    specs: list[str] = []
    for match in IMPORT_RE.finditer(source):
        spec = next((group for group in match.groups() if group), "")
        if spec and is_project_specifier(spec) and spec not in specs:
            specs.append(spec)
    return specs


def resolve_import_path(from_path: str, spec: str) -> str | None:
    """Resolve a project specifier against the importing file's directory.

    The result must stay under the site root. A missing extension defaults
    to ``.tsx``.
    """
    spec = spec.strip()
    if spec.startswith(PROJECT_ALIAS):
        joined = posixpath.join(SITE_ROOT, spec[len(PROJECT_ALIAS):])
    elif spec.startswith("."):
        joined = posixpath.join(posixpath.dirname(from_path), spec)
    else:
        return None

    resolved = posixpath.normpath(joined)
    if not resolved.startswith(f"{SITE_ROOT}/"):
        return None
    if not resolved.lower().endswith(MODE_EXTENSIONS[PathMode.COMPONENT]):
        resolved += DEFAULT_COMPONENT_EXTENSION
    return normalize_path(resolved, PathMode.COMPONENT)


def find_path_match(requested: str, available: dict[str, str]) -> str | None:
    """Find the stored path for a requested one.

    Tries an exact case-insensitive match, then an extension-insensitive
    match, then a directory ``index`` module.
    """
    requested_lower = requested.lower()
    base_lower = strip_source_extension(requested).lower()
    index_lower = f"{base_lower}/index"

    by_base: str | None = None
    by_index: str | None = None
    for path in available:
        path_lower = path.lower()
        if path_lower == requested_lower:
            return path
        stored_base = strip_source_extension(path).lower()
        if by_base is None and stored_base == base_lower:
            by_base = path
        if by_index is None and stored_base == index_lower:
            by_index = path
    return by_base or by_index


def collect_import_graph(
    entry_path: str,
    available: dict[str, str],
    max_depth: int = MAX_GRAPH_DEPTH,
    max_files: int = MAX_GRAPH_FILES,
    debug: bool = False,
) -> ImportGraph:
    """Breadth-first walk of relative imports starting from ``entry_path``.

    Unmatched specifiers are dropped with a warning instead of failing, so a
    partially generated site still builds. The walk stops descending past
    ``max_depth`` and stops adding files at ``max_files``.
    """
    graph = ImportGraph(entry_path=entry_path)
    entry = find_path_match(entry_path, available)
    if entry is None:
        graph.warnings.append(f"Entry {entry_path} not found")
        return graph

    graph.entry_path = entry
    graph.files[entry] = available[entry]
    queue: deque[tuple[str, int]] = deque([(entry, 0)])

    while queue:
        importer, depth = queue.popleft()
        specs = extract_import_specifiers(graph.files[importer])
        if debug:
            logger.debug(f"Graph visit {importer} (depth {depth}): {specs}")

        for spec in specs:
            target = resolve_import_path(importer, spec)
            match = find_path_match(target, available) if target else None
            if match is None:
                graph.warnings.append(f"Unresolved import '{spec}' in {importer}")
                continue

            if match in graph.files:
                graph.resolutions.setdefault(importer, {})[spec] = match
                continue
            if depth + 1 > max_depth:
                graph.warnings.append(f"Import '{spec}' in {importer} exceeds depth limit {max_depth}")
                continue
            if len(graph.files) >= max_files:
                graph.warnings.append(f"Import '{spec}' in {importer} exceeds file limit {max_files}")
                continue

            graph.files[match] = available[match]
            graph.resolutions.setdefault(importer, {})[spec] = match
            queue.append((match, depth + 1))

    return graph
