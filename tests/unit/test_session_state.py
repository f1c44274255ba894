"""
Unit tests for the session-state store.

Tests cover:
- Loading prior state from missing, empty, corrupt and partially valid files
- Merge rules (sprint replaced, other fields carried over)
- Monotonic last_compaction
- Best-effort atomic persistence
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
from structlog.testing import capture_logs

from mako_hooks.errors import StateError
from mako_hooks.log import configure_logging
from mako_hooks.session_state import (
    SessionState,
    format_agent_ids,
    load_and_merge,
    load_prior,
    next_compaction_timestamp,
    persist,
    read_active_agents,
    read_state_file,
)

FRESH_SPRINT = {
    "workflow": "feature",
    "status": "in-progress",
    "current_phase": "hojo",
    "next_phase": "reno",
    "quality_tier": "Standard",
    "scale": "medium",
}


class TestLoadPrior:
    """Tests for load_prior."""

    def test_missing_file(self, project_dir):
        """Test that no file yields the empty default."""
        assert load_prior(project_dir) == SessionState()

    @pytest.mark.parametrize("content", [
        b"",
        b"   \n",
        b"\x00\xff\xfe garbage",
        b"{not json",
        b"[1, 2, 3]",
        b'"just a string"',
        b"null",
    ])
    def test_unusable_content(self, state_file, project_dir, content):
        """Test that empty, binary, malformed or non-object files yield defaults."""
        state_file.write_bytes(content)
        state = load_prior(project_dir)
        assert state.active_agents == {}
        assert state.pending_decisions == []
        assert state.notes == ""

    def test_directory_at_state_path(self, state_file, project_dir):
        """Test that a directory where the file should be yields defaults."""
        state_file.mkdir()
        assert load_prior(project_dir) == SessionState()

    def test_prior_state(self, prior_state, project_dir):
        """Test that a valid snapshot is loaded as written."""
        state = load_prior(project_dir)
        assert state.active_agents == prior_state["active_agents"]
        assert state.pending_decisions == prior_state["pending_decisions"]
        assert state.notes == prior_state["notes"]

    def test_fields_validated_independently(self, state_file, project_dir):
        """Test that one bad field does not discard the good ones."""
        state_file.write_text(json.dumps({
            "active_agents": None,
            "pending_decisions": "not-a-list",
            "notes": "keep me",
            "unexpected": True,
        }))
        state = load_prior(project_dir)
        assert state.active_agents == {}
        assert state.pending_decisions == []
        assert state.notes == "keep me"

    def test_unknown_keys_logged(self, state_file, project_dir):
        """Test that keys outside the snapshot schema are reported when dropped."""
        state_file.write_text(json.dumps({"notes": "n", "legacy_field": 1, "extra": []}))
        configure_logging(debug=True)

        with capture_logs() as logs:
            state = load_prior(project_dir)

        assert state.notes == "n"
        dropped = [entry for entry in logs if entry["event"] == "Dropping unknown session-state keys"]
        assert dropped and dropped[0]["keys"] == ["extra", "legacy_field"]

    def test_read_state_file_raises_state_error(self, state_file):
        """Test that the raw reader reports malformed files."""
        state_file.write_text("{oops")
        with pytest.raises(StateError):
            read_state_file(state_file)


class TestLoadAndMerge:
    """Tests for load_and_merge."""

    def test_sprint_replaced_others_carried(self, prior_state, project_dir):
        """Test the merge rule."""
        state = load_and_merge(project_dir, FRESH_SPRINT)

        assert state.sprint == FRESH_SPRINT
        assert state.active_agents == prior_state["active_agents"]
        assert state.pending_decisions == prior_state["pending_decisions"]
        assert state.notes == prior_state["notes"]

    def test_stale_sprint_keys_do_not_linger(self, prior_state, project_dir):
        """Test that keys of the old sprint block are dropped."""
        state = load_and_merge(project_dir, {"workflow": "?"})
        assert state.sprint == {"workflow": "?"}

    def test_overrides(self, prior_state, project_dir):
        """Test that callers can replace carried fields."""
        state = load_and_merge(
            project_dir,
            FRESH_SPRINT,
            active_agents={},
            pending_decisions=["decision-gamma"],
            notes="",
        )
        assert state.active_agents == {}
        assert state.pending_decisions == ["decision-gamma"]
        assert state.notes == ""

    def test_no_prior_state(self, project_dir):
        """Test merging against nothing."""
        state = load_and_merge(project_dir, FRESH_SPRINT)
        assert state.active_agents == {}
        assert state.last_compaction

    def test_last_compaction_advances(self, prior_state, project_dir):
        """Test that the new timestamp is later than the prior one."""
        state = load_and_merge(project_dir, FRESH_SPRINT)
        new = datetime.fromisoformat(state.last_compaction)
        old = datetime.fromisoformat(prior_state["last_compaction"])
        assert new > old

    def test_out_of_range_prior_timestamp(self, prior_state, state_file, project_dir):
        """Test that a far-future last_compaction does not block the merge."""
        state_file.write_text(json.dumps({**prior_state, "last_compaction": "9999-12-31T23:59:59.999+00:00"}))

        state = load_and_merge(project_dir, FRESH_SPRINT)

        assert datetime.fromisoformat(state.last_compaction) <= datetime.now(timezone.utc)
        assert state.active_agents == prior_state["active_agents"]
        assert persist(project_dir, state) is True


class TestTimestamps:
    """Tests for next_compaction_timestamp."""

    def test_strictly_after_when_clock_collides(self):
        """Test that an equal clock still advances the timestamp."""
        now = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
        previous = now.isoformat(timespec="milliseconds")
        result = next_compaction_timestamp(previous, now)
        assert datetime.fromisoformat(result) > now

    def test_strictly_after_when_clock_goes_back(self):
        """Test that a clock behind the prior value still advances."""
        previous = "2030-01-01T00:00:00.000Z"
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        result = datetime.fromisoformat(next_compaction_timestamp(previous, now))
        assert result > datetime(2030, 1, 1, tzinfo=timezone.utc)

    def test_invalid_previous_ignored(self):
        """Test that an unparseable prior value is ignored."""
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert next_compaction_timestamp("yesterday", now) == "2026-03-01T00:00:00.000+00:00"

    @pytest.mark.parametrize("previous", [
        "9999-12-31T23:59:59.999+00:00",
        "9999-12-31T23:00:00.000-05:00",
    ])
    def test_previous_at_end_of_range_ignored(self, previous):
        """Test that a prior value that cannot be advanced falls back to the clock."""
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert next_compaction_timestamp(previous, now) == "2026-03-01T00:00:00.000+00:00"


class TestPersist:
    """Tests for persist."""

    def test_round_trip(self, project_dir, state_file):
        """Test that a persisted snapshot loads back identically."""
        state = load_and_merge(
            project_dir,
            FRESH_SPRINT,
            active_agents={"hojo": "task-1"},
            pending_decisions=["decision-alpha"],
            notes="n",
        )
        assert persist(project_dir, state) is True

        data = json.loads(state_file.read_text(encoding="utf-8"))
        assert set(data) == {"last_compaction", "sprint", "active_agents", "pending_decisions", "notes"}
        assert load_prior(project_dir) == state

    def test_idempotent_rewrite(self, project_dir):
        """Test that re-running with the same sprint only advances last_compaction."""
        first = load_and_merge(project_dir, FRESH_SPRINT, active_agents={"reno": "t"}, notes="x")
        persist(project_dir, first)
        second = load_and_merge(project_dir, FRESH_SPRINT)
        persist(project_dir, second)

        assert second.model_dump(exclude={"last_compaction"}) == first.model_dump(
            exclude={"last_compaction"}
        )
        assert second.last_compaction > first.last_compaction

    def test_directory_collision_returns_false(self, project_dir, state_file):
        """Test that a directory at the state path is reported, not raised."""
        state_file.mkdir()
        assert persist(project_dir, SessionState()) is False
        assert state_file.is_dir()
        assert [p.name for p in project_dir.iterdir()] == [state_file.name]

    def test_missing_project_dir_returns_false(self, tmp_path):
        """Test that an unwritable location is reported, not raised."""
        assert persist(tmp_path / "does-not-exist", SessionState()) is False


class TestAgentIds:
    """Tests for agent id helpers."""

    def test_format(self):
        """Test rendering and limiting."""
        agents = {f"a{i}": f"t{i}" for i in range(7)}
        assert format_agent_ids({"hojo": "task-1"}) == "hojo=task-1"
        assert format_agent_ids(agents, limit=5).count("=") == 5
        assert format_agent_ids({}) == ""

    def test_read_active_agents(self, prior_state, project_dir):
        """Test reading agent ids from the saved snapshot."""
        assert read_active_agents(project_dir) == prior_state["active_agents"]
        assert read_active_agents(project_dir, limit=1) == {"hojo": "task-abc123"}
