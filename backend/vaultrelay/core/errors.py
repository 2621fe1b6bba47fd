# vaultrelay/core/errors.py


class RelayError(Exception):
    """Base class for failures raised by the relay core."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidInput(RelayError):
    """A required field is missing or empty. Always a client bug."""

    status_code = 400


class NotFound(RelayError):
    """
    The message id or recipient is unknown.
    Expected during idempotent retries; callers treat it as "already handled".
    """

    status_code = 404


class PermissionDenied(RelayError):
    """Caller is neither sender nor recipient of the targeted message."""

    status_code = 403


class Conflict(RelayError):
    """Duplicate identity registration."""

    status_code = 409
