from __future__ import annotations


class DeliverableError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(DeliverableError):
    status_code = 404


class InvalidInput(DeliverableError):
    status_code = 400


class UnsupportedFormat(InvalidInput):
    """Render source is not an HTML document."""


class NotPreviewable(InvalidInput):
    """File kind cannot be displayed inline; clients fall back to download."""

    status_code = 415


class Forbidden(DeliverableError):
    status_code = 403


class Unsupported(DeliverableError):
    """Host integration (reveal) is not available in this deployment."""

    status_code = 501


class RenderFailure(DeliverableError):
    status_code = 500


class Internal(DeliverableError):
    status_code = 500
