"""Validation and single-pass repair of generated markup and component sources.

Generated text often arrives wrapped in markdown fences or with tags left
open. Validation parses the text, checks the structure its destination needs,
and when that fails runs exactly one repair pass before re-checking.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

from bs4 import BeautifulSoup, Doctype

MAX_CONTENT_BYTES = 1024 * 1024

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})

_FENCE_OPEN = re.compile(r"^```[^\r\n]*\r?\n")
_FENCE_CLOSE = re.compile(r"\r?\n```$")
_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
_RAW_TEXT = re.compile(r"<(script|style|textarea)\b[^>]*>.*?</\1\s*>", re.DOTALL | re.IGNORECASE)
_TAG = re.compile(r"<(/?)([a-zA-Z][a-zA-Z0-9:-]*)((?:[^>\"']|\"[^\"]*\"|'[^']*')*)>")
_DOCTYPE = re.compile(r"<!doctype\s+html", re.IGNORECASE)
_DOCTYPE_DECL = re.compile(r"<!doctype[^>]*>\s*", re.IGNORECASE)
_HTML_OPEN = re.compile(r"<html[\s>]", re.IGNORECASE)
_JSX_DOCUMENT_ROOT = re.compile(r"<\s*(html|body)[\s>/]", re.IGNORECASE)
_DEFAULT_EXPORT = re.compile(r"\bexport\s+default\b")


class MarkupMode(str, Enum):
    """Structure a destination requires."""

    DOCUMENT = "document"
    FRAGMENT = "fragment"


@dataclass
class ValidationResult:
    """Outcome of validating (and possibly repairing) generated text."""
    is_valid: bool
    fixed_code: str
    fixes_applied: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    too_large: bool = False
    nested_document: bool = False


@dataclass
class _Check:
    errors: list[str]
    nested_document: bool = False

    @property
    def is_valid(self) -> bool:
        return not self.errors


def strip_code_fences(text: str) -> tuple[str, bool]:
    """Remove an enclosing ```lang ... ``` block.

    Returns:
        (code, stripped) where stripped tells whether anything was removed
    """
    if not text:
        return text, False
    code = text.strip()
    if not code.startswith("```"):
        return code, False
    before = code
    code = _FENCE_OPEN.sub("", code, count=1)
    code = _FENCE_CLOSE.sub("", code, count=1)
    if code.endswith("```"):
        code = code[:-3]
    code = code.strip()
    return code, code != before


def find_unclosed_tags(html: str) -> list[str]:
    """Stack-scan tag opens and closes; return still-open tags in open order.

    A closing tag pops everything above its matching opener, so implicitly
    closed children (``<li>`` inside ``</ul>``) are not reported. Stray
    closers with no opener are ignored.
    """
    scannable = _RAW_TEXT.sub("", _COMMENT.sub("", html))
    stack: list[str] = []
    for match in _TAG.finditer(scannable):
        closing, name, attrs = match.group(1), match.group(2).lower(), match.group(3)
        if name in VOID_ELEMENTS or attrs.rstrip().endswith("/"):
            continue
        if not closing:
            stack.append(name)
            continue
        if name in stack:
            index = len(stack) - 1 - stack[::-1].index(name)
            del stack[index:]
    return stack


def _has_document_root(soup: BeautifulSoup) -> bool:
    if soup.find("html") is not None or soup.find("body") is not None:
        return True
    return any(isinstance(node, Doctype) for node in soup.contents)


def _check_markup(code: str, mode: MarkupMode) -> _Check:
    try:
        soup = BeautifulSoup(code, "html.parser")
    except Exception as e:
        return _Check(errors=[f"Failed to parse HTML: {e}"])

    errors: list[str] = []
    nested = False
    if mode == MarkupMode.DOCUMENT:
        for tag in ("html", "head", "body"):
            if soup.find(tag) is None:
                errors.append(f"Missing <{tag}> tag")
    else:
        if not code.strip() or (soup.find() is None and not soup.get_text(strip=True)):
            errors.append("HTML fragment is empty")
        if _has_document_root(soup):
            nested = True
            errors.append("Fragment contains a nested document root")

    unclosed = find_unclosed_tags(code)
    if unclosed:
        errors.append(f"Unclosed tag(s): {', '.join(unclosed)}")
    return _Check(errors=errors, nested_document=nested)


def _repair(code: str, mode: MarkupMode) -> tuple[str, list[str]]:
    fixes: list[str] = []
    fixed = code

    unclosed = find_unclosed_tags(fixed)
    if unclosed:
        fixed += "".join(f"</{tag}>" for tag in reversed(unclosed))
        fixes.append(f"Closed {len(unclosed)} unclosed tag(s)")

    if mode == MarkupMode.DOCUMENT:
        if not _HTML_OPEN.search(fixed):
            body = _DOCTYPE_DECL.sub("", fixed, count=1).strip()
            fixed = "<html>\n" + body + "\n</html>"
            fixes.append("Wrapped content in <html> tags")
        if not _DOCTYPE.search(fixed):
            fixed = "<!DOCTYPE html>\n" + fixed
            fixes.append("Added missing DOCTYPE declaration")

    return fixed, fixes


def _precheck(raw: str, max_bytes: int) -> ValidationResult | None:
    if not raw or not raw.strip():
        return ValidationResult(is_valid=False, fixed_code=raw or "", errors=["Code content is empty"])
    if len(raw.encode("utf-8")) > max_bytes:
        return ValidationResult(
            is_valid=False,
            fixed_code=raw,
            errors=[f"Code exceeds maximum size limit of {max_bytes // 1024} KiB"],
            too_large=True,
        )
    return None


def validate_and_fix(raw: str, mode: MarkupMode, max_bytes: int = MAX_CONTENT_BYTES) -> ValidationResult:
    """Validate generated HTML and attempt one repair pass if needed.

    A nested document root in a fragment is a policy violation, not a
    syntax defect, so it is reported without attempting repair.
    """
    rejected = _precheck(raw, max_bytes)
    if rejected:
        return rejected

    code, stripped = strip_code_fences(raw)
    fixes = ["Removed markdown code fences"] if stripped else []

    check = _check_markup(code, mode)
    if check.is_valid:
        return ValidationResult(is_valid=True, fixed_code=code, fixes_applied=fixes)
    if check.nested_document:
        return ValidationResult(
            is_valid=False,
            fixed_code=code,
            fixes_applied=fixes,
            errors=check.errors,
            nested_document=True,
        )

    fixed, repairs = _repair(code, mode)
    recheck = _check_markup(fixed, mode)
    return ValidationResult(
        is_valid=recheck.is_valid,
        fixed_code=fixed,
        fixes_applied=fixes + repairs,
        errors=recheck.errors,
        nested_document=recheck.nested_document,
    )


def validate_component_source(raw: str, mode: MarkupMode, max_bytes: int = MAX_CONTENT_BYTES) -> ValidationResult:
    """Validate a generated component module (.tsx/.ts/.jsx).

    Component sources are not repaired beyond fence stripping: fragments
    must not render a document root and the entry must export a default
    component.
    """
    rejected = _precheck(raw, max_bytes)
    if rejected:
        return rejected

    code, stripped = strip_code_fences(raw)
    fixes = ["Removed markdown code fences"] if stripped else []

    if not code:
        return ValidationResult(is_valid=False, fixed_code=code, fixes_applied=fixes, errors=["Code content is empty"])
    if mode == MarkupMode.FRAGMENT and _JSX_DOCUMENT_ROOT.search(code):
        return ValidationResult(
            is_valid=False,
            fixed_code=code,
            fixes_applied=fixes,
            errors=["Component fragment renders a nested <html> or <body> root"],
            nested_document=True,
        )
    if mode == MarkupMode.DOCUMENT and not _DEFAULT_EXPORT.search(code):
        return ValidationResult(
            is_valid=False,
            fixed_code=code,
            fixes_applied=fixes,
            errors=["Entry component must have a default export"],
        )
    return ValidationResult(is_valid=True, fixed_code=code, fixes_applied=fixes)
