# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Per-session resource subscriptions.

A subscription exists only between an explicit ``resources/subscribe`` and
the matching ``resources/unsubscribe`` (or the end of the session).  Reads
never subscribe implicitly.  The table is the only thing the notification
bus consults before emitting ``notifications/resources/updated``.
"""

from __future__ import annotations

from collections.abc import Callable

from .errors import not_found


ResourceExists = Callable[[str], bool]


class SubscriptionTable:
    """Set of subscribed URIs for one session."""

    def __init__(self, exists: ResourceExists) -> None:
        self._exists = exists
        self._uris: set[str] = set()

    def subscribe(self, uri: str) -> bool:
        """Add ``uri``.  Returns ``False`` if it was already subscribed.

        Raises:
            ProtocolError: tagged ``NotFound`` when no static resource or
                template matches ``uri``.
        """
        if uri in self._uris:
            return False
        if not self._exists(uri):
            raise not_found(f"Resource not found: {uri}", uri=uri)
        self._uris.add(uri)
        return True

    def unsubscribe(self, uri: str) -> bool:
        if uri not in self._uris:
            return False
        self._uris.discard(uri)
        return True

    def is_subscribed(self, uri: str) -> bool:
        return uri in self._uris

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._uris)

    def clear(self) -> None:
        self._uris.clear()

    def __len__(self) -> int:
        return len(self._uris)

    def __contains__(self, uri: object) -> bool:
        return uri in self._uris


__all__ = ["SubscriptionTable", "ResourceExists"]
