"""
Tests for conversation projection.

Tests cover:
- Two-party filtering of a shared snapshot
- Symmetry of the filter
- Preservation of snapshot order (no re-sort)
- Memoisation of ConversationView
"""

from chatsync.conversation import ConversationView, project

from conftest import make_message


class TestProject:
    """Test the pure projection function."""

    def test_scenario_excludes_third_party(self):
        """A->B and B->A are kept in order, C->B is dropped."""
        snapshot = (
            make_message(1, "A", "B", "hi"),
            make_message(2, "C", "B", "yo"),
            make_message(3, "B", "A", "hey"),
        )

        result = project(snapshot, "A", "B")

        assert [(m.sender_id, m.receiver_id, m.text) for m in result] == [
            ("A", "B", "hi"),
            ("B", "A", "hey"),
        ]
        assert [m.created_at for m in result] == [1, 3]

    def test_symmetry(self):
        """project(S, A, B) == project(S, B, A)."""
        snapshot = (
            make_message(1, "A", "B"),
            make_message(2, "B", "C"),
            make_message(3, "B", "A"),
            make_message(4, "A", "C"),
            make_message(5, "A", "B"),
        )

        assert project(snapshot, "A", "B") == project(snapshot, "B", "A")

    def test_exact_pair_membership(self):
        """Only messages whose unordered pair is {A, B} are kept."""
        snapshot = (
            make_message(1, "A", "A"),
            make_message(2, "A", "B"),
            make_message(3, "B", "B"),
            make_message(4, "A", "bot"),
            make_message(5, "bot", "A"),
        )

        result = project(snapshot, "A", "B")

        assert [m.id for m in result] == ["m2"]

    def test_preserves_snapshot_order_without_sorting(self):
        """The snapshot order is authoritative even if ordering keys disagree."""
        snapshot = (
            make_message(7, "A", "B", "first"),
            make_message(3, "B", "A", "second"),
            make_message(5, "A", "B", "third"),
        )

        result = project(snapshot, "A", "B")

        assert [m.text for m in result] == ["first", "second", "third"]

    def test_empty_snapshot(self):
        assert project((), "A", "B") == ()

    def test_no_matching_messages(self):
        snapshot = (make_message(1, "C", "D"),)
        assert project(snapshot, "A", "B") == ()


class TestConversationView:
    """Test memoised projection."""

    def test_same_snapshot_returns_cached_result(self):
        snapshot = (make_message(1, "A", "B"), make_message(2, "B", "A"))
        view = ConversationView()

        first = view.get(snapshot, "A", "B")
        second = view.get(snapshot, "A", "B")

        assert first is second

    def test_new_snapshot_recomputes(self):
        view = ConversationView()
        first = view.get((make_message(1, "A", "B"),), "A", "B")
        second = view.get((make_message(1, "A", "B"), make_message(2, "B", "A")), "A", "B")

        assert len(first) == 1
        assert len(second) == 2

    def test_peer_change_recomputes(self):
        snapshot = (make_message(1, "A", "B"), make_message(2, "A", "C"))
        view = ConversationView()

        assert [m.id for m in view.get(snapshot, "A", "B")] == ["m1"]
        assert [m.id for m in view.get(snapshot, "A", "C")] == ["m2"]
