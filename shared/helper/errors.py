"""Error taxonomy shared by clients, services and the API boundary.

Every error carries the HTTP status code the API boundary answers with, so
routers never need to map exception types themselves.
"""


class BridgeError(Exception):
    """Base class for all errors raised by the recognition bridge."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        """Returns the structured failure body for API responses."""
        return {"ok": False, "error": self.message}


class ConfigurationError(BridgeError):
    """A required credential, identifier or setting is missing or invalid."""

    status_code = 500


class ValidationError(BridgeError):
    """A caller supplied parameter is missing or malformed."""

    status_code = 400


class NotFoundError(BridgeError):
    """A referenced folder or object does not exist."""

    status_code = 404


class UpstreamError(BridgeError):
    """A remote collaborator answered with a non-success response.

    Attributes:
        upstream_status: HTTP status returned by the collaborator, if any.
        detail: Raw (truncated) response body for diagnostics.
    """

    status_code = 502

    def __init__(self, message: str, upstream_status: int | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
        self.detail = detail

    def to_payload(self) -> dict:
        payload = super().to_payload()
        if self.upstream_status is not None:
            payload["status"] = self.upstream_status
        if self.detail:
            payload["detail"] = self.detail
        return payload


class ReindexBusyError(BridgeError):
    """Another stateful reindex run currently holds the scheduling lock."""

    status_code = 409


class UnauthorizedError(BridgeError):
    """The admin token is missing or wrong."""

    status_code = 401
