"""Tests for repository resolution, topology inspection, and start preconditions."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest
from git import Repo

from mobsession.config_schema import MobConfig
from mobsession.errors import InspectError, InvalidRepositoryStateError, NoRepositoryError
from mobsession.repository import (
    ahead_behind,
    get_branch_name,
    has_local_branch,
    has_remote_branch,
    inspect,
    resolve_repository,
    status_line,
    validate_for_start,
)

from conftest import commit_file


# =============================================================================
# resolve_repository
# =============================================================================


def test_resolve_repository_from_subdirectory(participant: Repo) -> None:
    sub = Path(participant.working_dir) / "src" / "pkg"
    sub.mkdir(parents=True)
    repo = resolve_repository(sub)
    assert Path(repo.working_dir) == Path(participant.working_dir)


def test_resolve_repository_single_child(tmp_path: Path, make_clone) -> None:
    make_clone("workspace/only")
    repo = resolve_repository(tmp_path / "workspace")
    assert Path(repo.working_dir).name == "only"


def test_resolve_repository_multiple_children_is_ambiguous(tmp_path: Path, make_clone) -> None:
    make_clone("workspace/one")
    make_clone("workspace/two")
    with pytest.raises(NoRepositoryError, match="Multiple git repositories"):
        resolve_repository(tmp_path / "workspace")


def test_resolve_repository_missing_path(tmp_path: Path) -> None:
    with pytest.raises(NoRepositoryError, match="does not exist"):
        resolve_repository(tmp_path / "nope")


def test_resolve_repository_plain_directory(tmp_path: Path) -> None:
    plain = tmp_path / "plain"
    plain.mkdir()
    with pytest.raises(NoRepositoryError):
        resolve_repository(plain)


def test_resolve_repository_bare_is_rejected(remote_repo: Path) -> None:
    with pytest.raises(NoRepositoryError, match="bare"):
        resolve_repository(remote_repo)


# =============================================================================
# inspect
# =============================================================================


def test_inspect_fresh_clone(participant: Repo, mob_config: MobConfig) -> None:
    snapshot = inspect(participant, mob_config)
    assert snapshot.has_local_wip is False
    assert snapshot.has_remote_wip is False
    assert snapshot.is_mob_programming is False
    assert snapshot.current_branch == "main"


def test_inspect_local_and_remote_wip(participant: Repo, mob_config: MobConfig) -> None:
    participant.git.checkout("-b", mob_config.wip_branch)
    participant.git.push("origin", mob_config.wip_branch)

    snapshot = inspect(participant, mob_config)
    assert snapshot.has_local_wip is True
    assert snapshot.has_remote_wip is True
    assert snapshot.is_mob_programming is True


def test_inspect_does_not_fetch(participant: Repo, make_clone, mob_config: MobConfig) -> None:
    other = make_clone("bob")
    other.git.checkout("-b", mob_config.wip_branch)
    other.git.push("origin", mob_config.wip_branch)

    # Remote refs are only as fresh as the last fetch
    assert inspect(participant, mob_config).has_remote_wip is False
    participant.git.fetch("origin")
    assert inspect(participant, mob_config).has_remote_wip is True


def test_inspect_missing_git_dir(participant: Repo, mob_config: MobConfig) -> None:
    shutil.rmtree(participant.git_dir)
    with pytest.raises(InspectError):
        inspect(participant, mob_config)


def test_branch_helpers(participant: Repo) -> None:
    assert get_branch_name(participant) == "main"
    assert has_local_branch(participant, "main") is True
    assert has_local_branch(participant, "missing") is False
    assert has_remote_branch(participant, "origin", "main") is True
    assert has_remote_branch(participant, "origin", "missing") is False

    participant.git.checkout(participant.head.commit.hexsha)
    assert get_branch_name(participant) is None


# =============================================================================
# validate_for_start
# =============================================================================


def test_validate_for_start_clean(participant: Repo, mob_config: MobConfig) -> None:
    validate_for_start(participant, mob_config)


def test_validate_for_start_untracked_files_allowed(participant: Repo, mob_config: MobConfig) -> None:
    (Path(participant.working_dir) / "notes.txt").write_text("scratch\n")
    validate_for_start(participant, mob_config)


def test_validate_for_start_dirty_tree(participant: Repo, mob_config: MobConfig) -> None:
    (Path(participant.working_dir) / "README.md").write_text("changed\n")
    with pytest.raises(InvalidRepositoryStateError, match="uncommitted changes"):
        validate_for_start(participant, mob_config)


def test_validate_for_start_without_git_on_path(
    participant: Repo, mob_config: MobConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PATH", "")
    with pytest.raises(InvalidRepositoryStateError, match="Cannot read repository state"):
        validate_for_start(participant, mob_config)


def test_validate_for_start_detached_head(participant: Repo, mob_config: MobConfig) -> None:
    participant.git.checkout(participant.head.commit.hexsha)
    with pytest.raises(InvalidRepositoryStateError, match="detached"):
        validate_for_start(participant, mob_config)


def test_validate_for_start_unknown_remote(participant: Repo) -> None:
    config = MobConfig(remote_name="upstream")
    with pytest.raises(InvalidRepositoryStateError) as exc_info:
        validate_for_start(participant, config)
    assert "upstream" in exc_info.value.reason
    assert "origin" in exc_info.value.reason


def test_validate_for_start_no_commits(tmp_path: Path, mob_config: MobConfig) -> None:
    repo = Repo.init(tmp_path / "empty")
    with pytest.raises(InvalidRepositoryStateError, match="no commits"):
        validate_for_start(repo, mob_config)


def test_validate_for_start_merge_in_progress(participant: Repo, mob_config: MobConfig) -> None:
    (Path(participant.git_dir) / "MERGE_HEAD").write_text(participant.head.commit.hexsha + "\n")
    with pytest.raises(InvalidRepositoryStateError, match="in progress"):
        validate_for_start(participant, mob_config)


# =============================================================================
# status_line
# =============================================================================


def test_status_line_up_to_date(participant: Repo, mob_config: MobConfig) -> None:
    assert status_line(participant, mob_config) == "On branch main, tracking origin/main (up to date)"


def test_status_line_ahead(participant: Repo, mob_config: MobConfig) -> None:
    commit_file(participant, "a.txt", "a\n", "Local change")
    assert ahead_behind(participant, "main", "origin/main") == (1, 0)
    assert status_line(participant, mob_config).endswith("(ahead 1, behind 0)")


def test_status_line_no_upstream(participant: Repo, mob_config: MobConfig) -> None:
    participant.git.checkout("-b", "feature")
    assert status_line(participant, mob_config) == "On branch feature (no upstream)"
