"""Error taxonomy for the health record core.

Every error carries a stable ``kind`` so that consumers (e.g. the HTTP layer)
can tell "not signed in" apart from "network problem" apart from "file is
corrupted" without inspecting messages.

Hierarchy:
  HealthRecordError
    InvalidInputError: precondition violated, no I/O attempted
    InvalidIndexError: stale positional reference into the registry
    MissingOwnerError: no authenticated owner available
    RemoteStoreError: a BlobStore call failed
      StoreUnavailableError: store answered with an error / is unreachable
        RegistrySyncError: object stored, but the follow-up refresh failed
      NetworkError: byte transfer failed
    LocatorResolutionError: download URL could not be resolved
    CorruptArtifactError: fetched bytes do not parse
"""


class HealthRecordError(Exception):
    """Base class for all errors raised by the health record core."""

    kind = "health_record_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(HealthRecordError):
    kind = "invalid_input"


class InvalidIndexError(HealthRecordError):
    kind = "invalid_index"

    def __init__(self, message: str, index: int | None = None):
        super().__init__(message)
        self.index = index


class MissingOwnerError(HealthRecordError):
    kind = "missing_owner"

    def __init__(self, message: str = "No authenticated owner is available."):
        super().__init__(message)


class RemoteStoreError(HealthRecordError):
    """A call against the remote object store failed."""

    kind = "remote_store_error"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StoreUnavailableError(RemoteStoreError):
    kind = "store_unavailable"


class RegistrySyncError(StoreUnavailableError):
    """The upload itself succeeded but the registry could not be refreshed.

    The stored document is attached so the caller knows the object exists
    remotely even though the local snapshot does not show it yet.
    """

    kind = "registry_sync_failed"

    def __init__(self, message: str, document=None, status_code: int | None = None):
        super().__init__(message, status_code=status_code)
        self.document = document


class NetworkError(RemoteStoreError):
    kind = "network_error"


class LocatorResolutionError(HealthRecordError):
    kind = "locator_resolution_failed"


class CorruptArtifactError(HealthRecordError):
    kind = "corrupt_artifact"
