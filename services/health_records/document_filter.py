"""Search over a registry snapshot."""

from typing import Sequence

from shared.models.document import Document


def filter_documents(snapshot: Sequence[Document], query: str | None) -> tuple[Document, ...]:
    """Return the documents whose name contains the query, ignoring case.

    An empty query returns the whole snapshot. The relative
    order of the snapshot is preserved.

    Args:
        snapshot (Sequence[Document]): The documents to search.
        query (str | None): The search text.

    Returns:
        tuple[Document, ...]: The matching documents.
    """
    if not query:
        return tuple(snapshot)
    needle = query.casefold()
    return tuple(document for document in snapshot if needle in document.name.casefold())
