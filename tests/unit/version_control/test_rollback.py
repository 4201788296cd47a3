"""
Unit tests for rollback.
"""

import pytest

from prompthive.version_control import (
    ContentStore,
    NotFoundError,
    RollbackController,
    VersionGraph,
    VersionStorage,
)


@pytest.fixture
def scenario(repo):
    """v1.0 -> v1.1 -> v2.0 on artifact 'doc'."""
    v10 = repo.create_version("doc", "X", tag="v1.0", message="initial")
    v11 = repo.create_version("doc", "X+err handling", tag="v1.1", message="errors")
    v20 = repo.create_version("doc", "Y", tag="v2.0", message="rewrite")
    return v10, v11, v20


class TestRollback:
    """Tests for rolling back through the repository."""

    def test_rollback_creates_forward_entry(self, repo, scenario) -> None:
        """Test rollback to v1.1 appends an entry with v1.1's content after v2.0."""
        _, v11, v20 = scenario
        result = repo.rollback("doc", "v1.1")

        assert result.entry.content_digest == v11.content_digest
        assert result.entry.parent_ids == (v20.id,)
        assert result.entry.message == "rollback to v1.1"
        assert result.target == v11

        history = list(repo.history("doc"))
        assert len(history) == 4
        assert repo.head("doc") == result.entry
        assert history[0] == result.entry

    def test_rollback_updates_working_copy(self, repo, scenario) -> None:
        """Test the prompt file holds the restored content."""
        repo.rollback("doc", "v1.0")
        assert repo.prompts.read("doc") == "X"

    def test_rollback_with_backup(self, repo, scenario) -> None:
        """Test --backup tags the current content before rolling back."""
        _, _, v20 = scenario
        result = repo.rollback("doc", "v1.0", backup=True)

        assert result.backup is not None
        assert result.backup.tag.startswith("backup-")
        assert result.backup.message == "Pre-rollback backup"
        assert result.backup.parent_ids == (v20.id,)
        assert result.backup.content_digest == v20.content_digest
        assert result.entry.parent_ids == (result.backup.id,)
        assert len(repo.history("doc")) == 5

    def test_two_backups_get_distinct_tags(self, repo, scenario) -> None:
        """Test repeated backups in the same second do not collide."""
        first = repo.rollback("doc", "v1.0", backup=True)
        second = repo.rollback("doc", "v1.1", backup=True)
        assert first.backup.tag != second.backup.tag

    def test_rollback_unknown_ref(self, repo, scenario) -> None:
        """Test a bad ref fails and history is unchanged."""
        with pytest.raises(NotFoundError):
            repo.rollback("doc", "v9.9")
        assert len(repo.history("doc")) == 3

    def test_rollback_by_id_prefix(self, repo, scenario) -> None:
        """Test refs may be id prefixes."""
        v10, _, _ = scenario
        result = repo.rollback("doc", v10.short_id)
        assert result.entry.content_digest == v10.content_digest


class TestRollbackController:
    """Tests for the controller on a bare graph."""

    def test_controller_never_rewrites_history(self, tmp_path) -> None:
        """Test earlier entries are untouched by a rollback."""
        storage = VersionStorage(tmp_path)
        graph = VersionGraph(storage, ContentStore(storage.objects_dir))
        graph.create_version("doc", "one", tag="v1")
        graph.create_version("doc", "two", tag="v2")
        before = list(graph.load("doc").entries)

        RollbackController(graph).rollback("doc", "v1", author="ops")

        after = graph.load("doc").entries
        assert after[: len(before)] == before
        assert after[-1].author == "ops"
        assert graph.content(graph.head("doc")) == "one"
