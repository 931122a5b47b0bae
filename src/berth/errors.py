"""
Error taxonomy.

Each kind maps to a distinct caller reaction:
InvalidPortMapping is an input error and is never worth retrying.
ImagePullFailed and ReplaceFailed end a provisioning call.
RuntimeOperationFailed leaves the inventory record as it was.
StoreFailure is always surfaced on write paths.
"""

from typing import Optional


class BerthError(Exception):
    """Base class for all berth exceptions."""

    kind = "error"


class InvalidPortMapping(BerthError, ValueError):
    """Raised when a port mapping field cannot be parsed."""

    kind = "invalid_port_mapping"

    def __init__(self, entry: str, reason: str = "expected hostPort:containerPort[/protocol]"):
        self.entry = entry
        self.reason = reason
        super().__init__(f"Invalid port mapping '{entry}': {reason}")


class ImagePullFailed(BerthError):
    """Raised when an image is missing locally and could not be pulled."""

    kind = "image_pull_failed"

    def __init__(self, image: str, cause: Optional[BaseException] = None):
        self.image = image
        self.cause = cause
        super().__init__(f"Failed to pull image {image}: {cause}")


class ReplaceFailed(BerthError):
    """Raised when an existing same-named container could not be removed."""

    kind = "replace_failed"

    def __init__(self, name: str, cause: Optional[BaseException] = None):
        self.name = name
        self.cause = cause
        super().__init__(f"Failed to replace existing container {name}: {cause}")


class RuntimeOperationFailed(BerthError):
    """Raised when a runtime call for a container failed."""

    kind = "runtime_operation_failed"

    def __init__(self, operation: str, name: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.name = name
        self.cause = cause
        super().__init__(f"Failed to {operation} container {name}: {cause}")


class NotFound(BerthError):
    """Raised when a logical name has no inventory record or declared spec."""

    kind = "not_found"

    def __init__(self, name: str, what: str = "Container"):
        self.name = name
        super().__init__(f"{what} {name} not found")


class StoreFailure(BerthError):
    """Raised when an inventory store operation fails."""

    kind = "store_failure"

    def __init__(self, operation: str, cause: Optional[BaseException] = None, message: Optional[str] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(message or f"Inventory {operation} failed: {cause}")


class RecordNotFound(StoreFailure):
    """Raised by a store when no record exists for a key."""

    kind = "not_found"

    def __init__(self, key):
        self.key = key
        super().__init__("find", message=f"No inventory record for {key}")


class DuplicateRecord(StoreFailure):
    """Raised by a store when a record with the same name already exists."""

    kind = "duplicate_record"

    def __init__(self, name: str):
        self.name = name
        super().__init__("create", message=f"Inventory record {name} already exists")


class RuntimeClientError(BerthError):
    """Raised by runtime clients when the daemon call fails."""

    kind = "runtime_error"

    def __init__(self, operation: str, target: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.target = target
        self.cause = cause
        super().__init__(f"Runtime {operation} of {target} failed: {cause}")
