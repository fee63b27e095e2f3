"""
=============================================================================
PEER DIRECTORY
=============================================================================

The client's view of who else is signed in to the server.

The server is authoritative: it assigns every peer its id and tells us
about changes. Peers are described by one line each:

    name,id,connected\\n

    alice@laptop,7,1      ← peer 7 is signed in
    alice@laptop,7,0      ← peer 7 left

The sign-in response lists everyone already present (self included, which
we skip); every later change arrives as a single line on the long-poll.

=============================================================================
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional


# Self id before the server assigns one.
UNSET_PEER_ID = -1


@dataclass(frozen=True)
class PeerEntry:
    """One parsed directory line."""

    name: str
    peer_id: int
    connected: bool = False


def parse_entry(line: str) -> Optional[PeerEntry]:
    """
    Parse "name,id,connected".

    A missing connected field means not connected. Returns None when the
    name is empty or the id is not a number.
    """
    parts = line.strip("\r\n").split(",")
    if len(parts) < 2 or not parts[0]:
        return None
    try:
        peer_id = int(parts[1])
    except ValueError:
        return None

    connected = False
    if len(parts) > 2:
        try:
            connected = int(parts[2]) != 0
        except ValueError:
            connected = False
    return PeerEntry(name=parts[0], peer_id=peer_id, connected=connected)


def parse_listing(body: bytes) -> List[PeerEntry]:
    """
    Parse a newline-terminated listing, skipping malformed lines.

    A trailing fragment without its newline is ignored.
    """
    text = body.decode("utf-8", errors="replace")
    entries = []
    for line in text.split("\n")[:-1]:
        entry = parse_entry(line)
        if entry is not None:
            entries.append(entry)
    return entries


class PeerDirectory:
    """
    Mapping of peer id → display name.

    The self id is never stored, so a listing that includes ourselves can
    be fed in unfiltered.
    """

    def __init__(self, self_id: int = UNSET_PEER_ID):
        self.self_id = self_id
        self._peers: Dict[int, str] = {}

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._peers

    def __len__(self) -> int:
        return len(self._peers)

    def __iter__(self) -> Iterator[int]:
        return iter(self._peers)

    def get(self, peer_id: int, default: Optional[str] = None) -> Optional[str]:
        return self._peers.get(peer_id, default)

    def snapshot(self) -> Dict[int, str]:
        """A copy callers may keep without seeing later changes."""
        return dict(self._peers)

    def add(self, peer_id: int, name: str) -> bool:
        """Insert or rename a peer. Returns False for the self id."""
        if peer_id == self.self_id:
            return False
        self._peers[peer_id] = name
        return True

    def remove(self, peer_id: int) -> Optional[str]:
        """Drop a peer, returning its name if it was known."""
        return self._peers.pop(peer_id, None)

    def rebuild(self, entries: Iterable[PeerEntry]) -> List[PeerEntry]:
        """
        Replace the contents with a bulk listing.

        Returns the entries that were actually stored, i.e. everything
        except the self id.
        """
        self._peers.clear()
        stored = []
        for entry in entries:
            if self.add(entry.peer_id, entry.name):
                stored.append(entry)
        return stored

    def clear(self) -> None:
        self._peers.clear()
        self.self_id = UNSET_PEER_ID
