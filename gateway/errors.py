"""Gateway error types.

Local store errors map 1:1 onto an HTTP status and are rendered by the
handlers registered in ``gateway.main``. ``CoordinationUnavailable`` is the
odd one out: it is raised by coordination stores and must be caught by the
directory/registry before it ever reaches a client.
"""

from typing import Optional


class GatewayError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidInput(GatewayError):
    status_code = 400


class InvalidBucketName(InvalidInput):
    def __init__(self, name: str):
        if not name:
            message = "bucket name must not be empty"
        else:
            message = (
                "bucket name may only contain lowercase letters, digits and hyphens, "
                "and must not start or end with a hyphen"
            )
        super().__init__(message)
        self.name = name


class InvalidObjectKey(InvalidInput):
    def __init__(self, key: str):
        super().__init__(f"invalid object key: {key!r}")
        self.key = key


class MissingUpload(InvalidInput):
    def __init__(self):
        super().__init__("no file was uploaded")


class NotFound(GatewayError):
    status_code = 404


class BucketNotFound(NotFound):
    def __init__(self, bucket: str):
        super().__init__("bucket does not exist")
        self.bucket = bucket


class ObjectNotFound(NotFound):
    def __init__(self, bucket: str, key: str):
        super().__init__("file does not exist")
        self.bucket = bucket
        self.key = key


class Conflict(GatewayError):
    status_code = 409


class BucketAlreadyExists(Conflict):
    def __init__(self, bucket: str):
        super().__init__("bucket already exists")
        self.bucket = bucket


class StorageIOError(GatewayError):
    """Disk level failure. ``details`` carries the OS error text."""

    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, details=str(cause) if cause else None)
        self.cause = cause


class CoordinationUnavailable(Exception):
    """The shared key-value/set store could not be reached or answered badly."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(f"coordination store unavailable during {operation}: {cause}")
        self.operation = operation
        self.cause = cause
