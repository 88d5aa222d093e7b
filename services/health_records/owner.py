"""Owner resolution for the health record core.

The core never reads an ambient session: every operation receives the owner
id explicitly and validates it with :func:`require_owner`.
"""

from abc import ABC, abstractmethod

from shared.errors import InvalidInputError, MissingOwnerError

RECORDS_ROOT = "health_records"


class CurrentUserProvider(ABC):
    """Supplies the id of the authenticated user, or None when nobody is signed in."""

    @property
    @abstractmethod
    def owner_id(self) -> str | None:
        pass


class StaticCurrentUser(CurrentUserProvider):
    """Provider with a fixed owner, for scripts and tests."""

    def __init__(self, owner_id: str | None):
        self._owner_id = owner_id

    @property
    def owner_id(self) -> str | None:
        return self._owner_id


def require_owner(owner_id: str | None) -> str:
    """Return the owner id, or raise MissingOwnerError if it is absent or blank.

    Raises:
        MissingOwnerError: If owner_id is None, empty or whitespace-only.
        InvalidInputError: If owner_id would escape its namespace (contains "/").
    """
    if owner_id is None or not owner_id.strip():
        raise MissingOwnerError()
    if "/" in owner_id:
        raise InvalidInputError(f"Owner id '{owner_id}' must not contain '/'.")
    return owner_id


def owner_prefix(owner_id: str, root: str = RECORDS_ROOT) -> str:
    """Listing prefix of an owner's namespace, e.g. "health_records/{owner_id}/"."""
    return f"{root.strip('/')}/{owner_id}/"


def record_path(owner_id: str, file_name: str, root: str = RECORDS_ROOT) -> str:
    """Storage path of a record, e.g. "health_records/{owner_id}/{file_name}"."""
    return f"{owner_prefix(owner_id, root)}{file_name}"
