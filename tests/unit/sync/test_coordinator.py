"""
Unit tests for the sync coordinator.
"""

from unittest import mock

import pytest

from prompthive.sync import PullResponse, PushResponse, SyncStateKind
from prompthive.version_control import (
    InvalidSyncStateError,
    MergeConflictError,
    NetworkError,
    RemoteRejectedError,
)


@pytest.fixture
def published(repo, coordinator, other_repo, other_coordinator):
    """'doc' pushed by alice and pulled by bob: both at v1."""
    v1 = repo.create_version("doc", "intro\nbody\nfooter\n", tag="v1")
    coordinator.push("doc")
    other_coordinator.pull("doc")
    return v1


class TestStatus:
    """Tests for sync state classification."""

    def test_never_pushed_is_local_ahead(self, repo, coordinator) -> None:
        """Test an artifact unknown to the registry is ahead."""
        repo.create_version("doc", "one\n")
        status = coordinator.status("doc")

        assert status.state == SyncStateKind.LOCAL_AHEAD
        assert status.remote_head is None
        assert status.local_ahead == 1

    def test_synced_after_push(self, published, coordinator, other_coordinator) -> None:
        """Test both sides report synced once heads match."""
        assert coordinator.status("doc").state == SyncStateKind.SYNCED
        status = other_coordinator.status("doc")
        assert status.state == SyncStateKind.SYNCED
        assert status.common_ancestor == published.id

    def test_remote_ahead(self, published, repo, coordinator, other_coordinator) -> None:
        """Test a pushed version from elsewhere shows as remote-ahead."""
        repo.create_version("doc", "intro\nbody v2\nfooter\n")
        coordinator.push("doc")

        status = other_coordinator.status("doc")
        assert status.state == SyncStateKind.REMOTE_AHEAD
        assert status.remote_ahead == 1

    def test_status_is_read_only(self, repo, coordinator, registry) -> None:
        """Test status persists nothing and pushes nothing."""
        repo.create_version("doc", "one\n")
        before = repo.graph.load("doc")
        coordinator.status("doc")

        assert repo.graph.load("doc") == before
        assert registry.pushes == []

    def test_summary(self, repo, coordinator) -> None:
        repo.create_version("doc", "one\n")
        assert "ahead of the registry by 1" in coordinator.status("doc").summary()


class TestPushPull:
    """Tests for fast-forward push and pull."""

    def test_push_then_synced(self, repo, coordinator, registry) -> None:
        """Test push sends every entry and records the sync."""
        v1 = repo.create_version("doc", "one\n", tag="v1")
        v2 = repo.create_version("doc", "two\n", tag="v2")

        result = coordinator.push("doc")

        assert [e.id for e in result.entries] == [v1.id, v2.id]
        assert result.blob_count == 2
        assert registry.head("doc") == v2.id
        sync = repo.graph.load("doc").sync
        assert sync.remote_head == v2.id
        assert sync.last_sync is not None

    def test_second_push_is_noop(self, repo, coordinator, registry) -> None:
        """Test pushing an already synced artifact sends nothing."""
        repo.create_version("doc", "one\n")
        coordinator.push("doc")
        pushes = list(registry.pushes)

        result = coordinator.push("doc")

        assert result.was_noop
        assert registry.pushes == pushes

    def test_pull_fast_forwards(self, published, other_repo) -> None:
        """Test pull imports entries, moves head and writes the working copy."""
        assert other_repo.head("doc") == published
        assert other_repo.prompts.read("doc") == "intro\nbody\nfooter\n"
        assert other_repo.get("doc", "v1") == published

    def test_pull_when_synced_is_noop(self, published, other_coordinator) -> None:
        assert other_coordinator.pull("doc").was_noop

    def test_push_from_remote_ahead_fails(
        self, published, repo, coordinator, other_coordinator
    ) -> None:
        """Test a stale side cannot push."""
        repo.create_version("doc", "intro\nbody v2\nfooter\n")
        coordinator.push("doc")

        with pytest.raises(InvalidSyncStateError) as exc_info:
            other_coordinator.push("doc")
        assert exc_info.value.state == SyncStateKind.REMOTE_AHEAD

    def test_unchanged_blobs_not_resent(self, published, repo, coordinator) -> None:
        """Test content the registry already has is not uploaded again."""
        repo.rollback("doc", "v1")
        result = coordinator.push("doc")
        assert len(result.entries) == 1
        assert result.blob_count == 0

    def test_rejected_push_leaves_state(self, repo, coordinator, registry) -> None:
        """Test a refused push does not record a sync."""
        repo.create_version("doc", "one\n")
        with mock.patch.object(
            registry, "push", return_value=PushResponse(False, "quota exceeded")
        ):
            with pytest.raises(RemoteRejectedError):
                coordinator.push("doc")

        assert repo.graph.load("doc").sync.remote_head is None
        assert coordinator.status("doc").state == SyncStateKind.LOCAL_AHEAD


class TestRetries:
    """Tests for transient failure handling."""

    def test_network_error_retried(self, repo, coordinator, registry) -> None:
        """Test a transient failure is retried and the call succeeds."""
        repo.create_version("doc", "one\n")
        with mock.patch.object(
            registry, "pull", side_effect=[NetworkError("timeout"), PullResponse()]
        ) as pull:
            status = coordinator.status("doc")

        assert pull.call_count == 2
        assert status.state == SyncStateKind.LOCAL_AHEAD

    def test_retries_exhausted(self, repo, coordinator, registry) -> None:
        """Test the error surfaces after the configured attempts."""
        repo.create_version("doc", "one\n")
        with mock.patch.object(
            registry, "pull", side_effect=NetworkError("unreachable")
        ) as pull:
            with pytest.raises(NetworkError):
                coordinator.push("doc")

        assert pull.call_count == 3
        assert registry.pushes == []

    def test_rejection_not_retried(self, repo, coordinator, registry) -> None:
        """Test a terminal rejection is raised on the first attempt."""
        repo.create_version("doc", "one\n")
        with mock.patch.object(
            registry, "pull", side_effect=RemoteRejectedError("bad key")
        ) as pull:
            with pytest.raises(RemoteRejectedError):
                coordinator.status("doc")
        assert pull.call_count == 1


class TestReconcile:
    """Tests for divergent histories."""

    def _diverge(self, repo, coordinator, other_repo, other_coordinator, ours, theirs):
        local = repo.create_version("doc", ours, message="local edit")
        remote = other_repo.create_version("doc", theirs, message="remote edit")
        other_coordinator.push("doc")
        return local, remote

    def test_diverged_state(
        self, published, repo, coordinator, other_repo, other_coordinator
    ) -> None:
        """Test edits on both sides are detected as divergence."""
        self._diverge(
            repo, coordinator, other_repo, other_coordinator,
            "intro v2\nbody\nfooter\n", "intro\nbody\nfooter v2\n",
        )
        status = coordinator.status("doc")
        assert status.state == SyncStateKind.DIVERGED
        assert status.common_ancestor == published.id
        assert (status.local_ahead, status.remote_ahead) == (1, 1)

        with pytest.raises(InvalidSyncStateError):
            coordinator.push("doc")
        with pytest.raises(InvalidSyncStateError):
            coordinator.pull("doc")

    def test_clean_reconcile_then_push(
        self, published, repo, coordinator, registry, other_repo, other_coordinator
    ) -> None:
        """Test a clean merge commits M(B, C) and the next push sends B and M."""
        local, remote = self._diverge(
            repo, coordinator, other_repo, other_coordinator,
            "intro v2\nbody\nfooter\n", "intro\nbody\nfooter v2\n",
        )

        result = coordinator.reconcile("doc")

        assert not result.has_conflicts
        merged = result.entry
        assert set(merged.parent_ids) == {local.id, remote.id}
        assert repo.content(merged) == "intro v2\nbody\nfooter v2\n"
        assert repo.prompts.read("doc") == "intro v2\nbody\nfooter v2\n"
        assert coordinator.status("doc").state == SyncStateKind.LOCAL_AHEAD

        pushed = coordinator.push("doc")
        assert [e.id for e in pushed.entries] == [local.id, merged.id]
        assert registry.head("doc") == merged.id
        assert coordinator.status("doc").state == SyncStateKind.SYNCED

    def test_conflicting_reconcile_writes_nothing(
        self, published, repo, coordinator, other_repo, other_coordinator
    ) -> None:
        """Test conflicts are reported and local state is untouched."""
        local, _ = self._diverge(
            repo, coordinator, other_repo, other_coordinator,
            "intro\nbody local\nfooter\n", "intro\nbody remote\nfooter\n",
        )
        before = repo.graph.load("doc")

        result = coordinator.reconcile("doc")

        assert result.has_conflicts
        assert result.entry is None
        assert "<<<<<<< local\n" in result.result.content
        assert repo.graph.load("doc") == before
        assert repo.head("doc") == local

    def test_resolve_theirs(
        self, published, repo, coordinator, other_repo, other_coordinator
    ) -> None:
        """Test resolving with the remote side commits a two-parent entry."""
        local, remote = self._diverge(
            repo, coordinator, other_repo, other_coordinator,
            "intro\nbody local\nfooter\n", "intro\nbody remote\nfooter\n",
        )
        entry = coordinator.resolve("doc", "theirs")

        assert entry.parent_ids == (local.id, remote.id)
        assert repo.content(entry) == "intro\nbody remote\nfooter\n"
        assert repo.head("doc") == entry

    def test_resolve_manual(
        self, published, repo, coordinator, other_repo, other_coordinator
    ) -> None:
        """Test manual resolution requires content and commits it verbatim."""
        self._diverge(
            repo, coordinator, other_repo, other_coordinator,
            "intro\nbody local\nfooter\n", "intro\nbody remote\nfooter\n",
        )
        with pytest.raises(MergeConflictError):
            coordinator.resolve("doc", "manual")

        entry = coordinator.resolve("doc", "manual", content="intro\nbody both\nfooter\n")
        assert repo.content(entry) == "intro\nbody both\nfooter\n"

    def test_unknown_strategy(self, coordinator) -> None:
        with pytest.raises(ValueError):
            coordinator.resolve("doc", "newest")

    def test_reconcile_requires_divergence(self, published, coordinator) -> None:
        """Test reconcile on synced history is refused."""
        with pytest.raises(InvalidSyncStateError):
            coordinator.reconcile("doc")
