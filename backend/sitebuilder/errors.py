"""Domain errors raised by the generation and composition services."""


class SiteBuilderError(Exception):
    """Base class for errors with a stable code and a user-facing reason."""

    code = "SITE_BUILDER_ERROR"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidDestination(SiteBuilderError):
    """Destination path rejected by the path normalizer."""

    code = "INVALID_DESTINATION"


class ContentTooLarge(SiteBuilderError):
    code = "CONTENT_TOO_LARGE"


class MarkupInvalid(SiteBuilderError):
    """Validation failed and the single repair pass did not fix it."""

    code = "MARKUP_INVALID"

    def __init__(self, reason: str, errors: list[str] | None = None):
        super().__init__(reason)
        self.errors = errors or []


class NestedDocumentInFragment(SiteBuilderError):
    """A page or section file carries its own document root."""

    code = "NESTED_DOCUMENT_IN_FRAGMENT"


class RevisionAllocationFailed(SiteBuilderError):
    code = "REVISION_ALLOCATION_FAILED"


class ComposeUnavailable(SiteBuilderError):
    code = "COMPOSE_UNAVAILABLE"


class RateLimited(SiteBuilderError):
    code = "RATE_LIMITED"

    def __init__(self, reason: str, reset_epoch_millis: int, retry_after_seconds: int):
        super().__init__(reason)
        self.reset_epoch_millis = reset_epoch_millis
        self.retry_after_seconds = retry_after_seconds


class PersistenceFailed(SiteBuilderError):
    """A validated file could not be written; the payload is kept for retry."""

    code = "PERSISTENCE_FAILED"


class NotFound(SiteBuilderError):
    code = "NOT_FOUND"


class Forbidden(SiteBuilderError):
    code = "FORBIDDEN"
