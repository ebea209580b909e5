"""
Two-party conversation views over the shared log snapshot.

Conversations are not stored; a conversation is the subsequence of the
snapshot whose sender/receiver pair equals the two participants. The filter
is a single O(n) pass that keeps the snapshot's order and never re-sorts,
because the log's order is authoritative even between equal timestamps.
"""

from typing import Optional

from chatsync.schemas import ChatMessage
from chatsync.storage import Snapshot


def project(snapshot: Snapshot, local_identity: str, peer_identity: str) -> tuple[ChatMessage, ...]:
    """Messages exchanged between local_identity and peer_identity, in log order."""
    return tuple(
        m for m in snapshot
        if (m.sender_id == local_identity and m.receiver_id == peer_identity)
        or (m.sender_id == peer_identity and m.receiver_id == local_identity)
    )


class ConversationView:
    """
    Memoised project().

    The cache is keyed on the snapshot object itself. Snapshots are replaced
    whole, never mutated, so an identical object means identical content.
    """

    def __init__(self):
        self._key: Optional[tuple[int, str, str]] = None
        self._snapshot: Optional[Snapshot] = None
        self._result: tuple[ChatMessage, ...] = ()

    def get(self, snapshot: Snapshot, local_identity: str, peer_identity: str) -> tuple[ChatMessage, ...]:
        key = (id(snapshot), local_identity, peer_identity)
        if self._snapshot is snapshot and self._key == key:
            return self._result
        self._result = project(snapshot, local_identity, peer_identity)
        # Hold a reference so id(snapshot) cannot be reused by a new object.
        self._snapshot = snapshot
        self._key = key
        return self._result
