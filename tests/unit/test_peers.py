"""
Unit tests for the peer directory.
"""

from signalclient.peers import (
    UNSET_PEER_ID,
    PeerDirectory,
    PeerEntry,
    parse_entry,
    parse_listing,
)


class TestParseEntry:
    """Tests for parse_entry."""

    def test_connected_entry(self):
        assert parse_entry("alice,7,1") == PeerEntry("alice", 7, True)

    def test_disconnected_entry(self):
        assert parse_entry("alice,7,0\n") == PeerEntry("alice", 7, False)

    def test_missing_flag(self):
        """Test that a missing connected flag means not connected."""
        assert parse_entry("alice,7") == PeerEntry("alice", 7, False)

    def test_malformed(self):
        """Test rejection of lines without a name or numeric id."""
        assert parse_entry(",7,1") is None
        assert parse_entry("alice") is None
        assert parse_entry("alice,x,1") is None
        assert parse_entry("") is None


class TestParseListing:
    """Tests for parse_listing."""

    def test_listing(self):
        entries = parse_listing(b"alice,7,1\nbob,8,1\n")
        assert entries == [PeerEntry("alice", 7, True), PeerEntry("bob", 8, True)]

    def test_unterminated_tail_ignored(self):
        """Test that a line without its newline is skipped."""
        entries = parse_listing(b"alice,7,1\nbob,8")
        assert entries == [PeerEntry("alice", 7, True)]

    def test_bad_lines_skipped(self):
        entries = parse_listing(b"alice,7,1\n\ngarbage\nbob,8,1\n")
        assert [e.peer_id for e in entries] == [7, 8]

    def test_empty(self):
        assert parse_listing(b"") == []


class TestPeerDirectory:
    """Tests for PeerDirectory."""

    def test_add_and_remove(self):
        directory = PeerDirectory(self_id=3)

        assert directory.add(7, "alice") is True
        assert 7 in directory
        assert directory.get(7) == "alice"
        assert len(directory) == 1

        assert directory.remove(7) == "alice"
        assert 7 not in directory
        assert directory.remove(7) is None

    def test_self_never_member(self):
        """Test that the self id is refused."""
        directory = PeerDirectory(self_id=3)

        assert directory.add(3, "me") is False
        assert 3 not in directory

    def test_rebuild_skips_self(self):
        """Test bulk rebuild from a listing that includes ourselves."""
        directory = PeerDirectory(self_id=3)
        directory.add(99, "stale")

        stored = directory.rebuild(parse_listing(b"me,3,1\nalice,7,1\nbob,8,1\n"))

        assert [e.peer_id for e in stored] == [7, 8]
        assert directory.snapshot() == {7: "alice", 8: "bob"}

    def test_snapshot_is_copy(self):
        directory = PeerDirectory()
        directory.add(1, "a")
        snapshot = directory.snapshot()
        directory.add(2, "b")

        assert snapshot == {1: "a"}

    def test_clear_resets_self_id(self):
        directory = PeerDirectory(self_id=3)
        directory.add(7, "alice")
        directory.clear()

        assert len(directory) == 0
        assert directory.self_id == UNSET_PEER_ID
