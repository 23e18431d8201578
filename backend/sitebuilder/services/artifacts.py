"""Composed artifacts returned by the composition engines."""

from dataclasses import dataclass, field

HTML_MEDIA_TYPE = "text/html; charset=utf-8"
JAVASCRIPT_MEDIA_TYPE = "application/javascript; charset=utf-8"


@dataclass
class ComposedDocument:
    """A composed artifact plus any degradation warnings.

    Never stored: recomputed on demand from the file versions visible at
    ``revision_number``.
    """
    content: str
    media_type: str
    revision_number: int
    warnings: list[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)
