"""Tests for the git operation adapter against real repositories."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from git import Repo

from mobsession.git_ops import ExecutionLog, GitOperations, Outcome
from mobsession.errors import GitOperationError
from mobsession.observability import LOGGER_NAME

from conftest import commit_file


@pytest.fixture
def log() -> ExecutionLog:
    return ExecutionLog()


# =============================================================================
# ExecutionLog
# =============================================================================


def test_execution_log_formats_and_order() -> None:
    log = ExecutionLog()
    assert log.notify("Fetched origin") == "Fetched origin"
    assert log.warning("timer: busy") == "Warning: timer: busy"
    assert log.failure("push failed: rejected") == "Failure: push failed: rejected"
    assert log.messages == ("Fetched origin", "Warning: timer: busy", "Failure: push failed: rejected")
    assert len(log) == 3
    assert list(log) == list(log.messages)


def test_execution_log_empty() -> None:
    log = ExecutionLog()
    assert log.messages == ()


# =============================================================================
# Operations
# =============================================================================


def test_fetch_success(participant: Repo, log: ExecutionLog) -> None:
    outcome = GitOperations(participant).fetch("origin", log)
    assert outcome == Outcome("fetch", True, "Fetched origin")
    assert log.messages == ("Fetched origin",)


def test_fetch_unknown_remote_fails(participant: Repo, log: ExecutionLog) -> None:
    outcome = GitOperations(participant).fetch("nowhere", log)
    assert outcome.success is False
    assert isinstance(outcome.error, GitOperationError)
    assert outcome.error.operation == "fetch"
    assert outcome.message.startswith("Failure: fetch failed:")
    assert log.messages == (outcome.message,)


def test_fetch_invalid_remote_name_never_reaches_git(participant: Repo, log: ExecutionLog) -> None:
    outcome = GitOperations(participant).fetch("--upload-pack=evil", log)
    assert outcome.success is False
    assert "Remote name" in outcome.message


def test_fetch_without_git_on_path_returns_failure(
    participant: Repo, log: ExecutionLog, monkeypatch: pytest.MonkeyPatch, caplog
) -> None:
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    monkeypatch.setenv("PATH", "")

    outcome = GitOperations(participant).fetch("origin", log)

    assert outcome.success is False
    assert outcome.error.operation == "fetch"
    assert log.messages == (outcome.message,)
    assert outcome.message.startswith("Failure: fetch failed:")
    actions = [json.loads(r.message) for r in caplog.records if r.message.startswith("{")]
    assert {"action": "git.fetch", "outcome": "error"}.items() <= actions[-1].items()


def test_pull_fast_forwards(participant: Repo, make_clone, log: ExecutionLog) -> None:
    other = make_clone("bob")
    sha = commit_file(other, "b.txt", "b\n", "Bob's change")
    other.git.push("origin", "main")
    participant.git.fetch("origin")

    outcome = GitOperations(participant).pull("origin", log)
    assert outcome.success is True
    assert outcome.message == "Pulled"
    assert participant.head.commit.hexsha == sha


def test_pull_skipped_without_upstream(participant: Repo, log: ExecutionLog) -> None:
    participant.git.checkout("-b", "feature")
    outcome = GitOperations(participant).pull("origin", log)
    assert outcome.success is True
    assert outcome.message == "Pull skipped (feature has no upstream on origin)"


def test_pull_skipped_when_upstream_gone(participant: Repo, log: ExecutionLog) -> None:
    participant.git.checkout("-b", "feature")
    participant.git.push("--set-upstream", "origin", "feature")
    participant.git.push("origin", "--delete", "feature")

    outcome = GitOperations(participant).pull("origin", log)
    assert outcome.success is True
    assert "no longer exists" in outcome.message


def test_pull_diverged_fails(participant: Repo, make_clone, log: ExecutionLog) -> None:
    other = make_clone("bob")
    commit_file(other, "b.txt", "b\n", "Bob's change")
    other.git.push("origin", "main")
    commit_file(participant, "a.txt", "a\n", "Alice's change")
    participant.git.fetch("origin")

    outcome = GitOperations(participant).pull("origin", log)
    assert outcome.success is False
    assert outcome.message.startswith("Failure: pull failed:")


def test_checkout_existing_branch(participant: Repo, log: ExecutionLog) -> None:
    participant.git.branch("feature")
    outcome = GitOperations(participant).checkout_branch("feature", log)
    assert outcome.message == "Checked out feature"
    assert participant.active_branch.name == "feature"


def test_checkout_creates_tracking_branch_from_remote(participant: Repo, make_clone, log: ExecutionLog) -> None:
    other = make_clone("bob")
    other.git.checkout("-b", "mob-session")
    other.git.push("origin", "mob-session")
    participant.git.fetch("origin")

    outcome = GitOperations(participant).checkout_branch("mob-session", log, remote="origin")
    assert outcome.success is True
    assert participant.active_branch.name == "mob-session"
    assert participant.active_branch.tracking_branch().name == "origin/mob-session"


def test_checkout_missing_branch_fails(participant: Repo, log: ExecutionLog) -> None:
    outcome = GitOperations(participant).checkout_branch("missing", log, remote="origin")
    assert outcome.success is False
    assert outcome.error.operation == "checkout"


def test_create_branch_does_not_switch(participant: Repo, log: ExecutionLog) -> None:
    outcome = GitOperations(participant).create_branch("mob-session", log)
    assert outcome.message == "Created branch mob-session"
    assert "mob-session" in [head.name for head in participant.heads]
    assert participant.active_branch.name == "main"


def test_create_branch_twice_fails(participant: Repo, log: ExecutionLog) -> None:
    ops = GitOperations(participant)
    ops.create_branch("mob-session", log)
    outcome = ops.create_branch("mob-session", log)
    assert outcome.success is False
    assert len(log) == 2


def test_create_branch_rejects_invalid_name(participant: Repo, log: ExecutionLog) -> None:
    outcome = GitOperations(participant).create_branch("bad..name", log)
    assert outcome.success is False
    assert "consecutive dots" in outcome.message


def test_delete_branch_unchecked_by_default(participant: Repo, log: ExecutionLog) -> None:
    participant.git.checkout("-b", "mob-session")
    commit_file(participant, "wip.txt", "wip\n", "Unpushed WIP")
    participant.git.checkout("main")

    outcome = GitOperations(participant).delete_branch("mob-session", log, keep_ref="origin/main")
    assert outcome.message == "Deleted branch mob-session"
    assert "mob-session" not in [head.name for head in participant.heads]


def test_delete_branch_protected_refuses_unmerged(participant: Repo, log: ExecutionLog) -> None:
    participant.git.checkout("-b", "mob-session")
    commit_file(participant, "wip.txt", "wip\n", "Unpushed WIP")
    participant.git.checkout("main")

    outcome = GitOperations(participant, protect_unmerged=True).delete_branch(
        "mob-session", log, keep_ref="origin/main"
    )
    assert outcome.success is False
    assert "1 commit(s) not in origin/main" in outcome.message
    assert "mob-session" in [head.name for head in participant.heads]


def test_delete_branch_protected_allows_merged(participant: Repo, log: ExecutionLog) -> None:
    participant.git.branch("mob-session")

    outcome = GitOperations(participant, protect_unmerged=True).delete_branch(
        "mob-session", log, keep_ref="origin/main"
    )
    assert outcome.success is True


def test_delete_current_branch_fails(participant: Repo, log: ExecutionLog) -> None:
    outcome = GitOperations(participant).delete_branch("main", log)
    assert outcome.success is False
    assert outcome.error.operation == "delete_branch"


def test_merge_fast_forward(participant: Repo, make_clone, log: ExecutionLog) -> None:
    other = make_clone("bob")
    sha = commit_file(other, "b.txt", "b\n", "Bob's change")
    other.git.push("origin", "main")
    participant.git.fetch("origin")

    outcome = GitOperations(participant).merge_fast_forward("origin", "main", log)
    assert outcome.message == "Fast-forwarded to origin/main"
    assert participant.head.commit.hexsha == sha


def test_merge_fast_forward_refuses_merge_commit(participant: Repo, make_clone, log: ExecutionLog) -> None:
    other = make_clone("bob")
    commit_file(other, "b.txt", "b\n", "Bob's change")
    other.git.push("origin", "main")
    commit_file(participant, "a.txt", "a\n", "Alice's change")
    participant.git.fetch("origin")

    outcome = GitOperations(participant).merge_fast_forward("origin", "main", log)
    assert outcome.success is False
    assert len(participant.head.commit.parents) == 1


def test_push_sets_upstream(participant: Repo, remote_repo: Path, log: ExecutionLog) -> None:
    participant.git.checkout("-b", "mob-session")
    outcome = GitOperations(participant).push("origin", "mob-session", log)
    assert outcome.message == "Pushed mob-session to origin"
    assert participant.active_branch.tracking_branch().name == "origin/mob-session"
    assert "mob-session" in [head.name for head in Repo(remote_repo).heads]


def test_set_upstream(participant: Repo, log: ExecutionLog) -> None:
    participant.git.checkout("-b", "mob-session")
    participant.git.push("origin", "mob-session")

    outcome = GitOperations(participant).set_upstream("origin", "mob-session", log)
    assert outcome.message == "Set upstream of mob-session to origin/mob-session"
    assert participant.active_branch.tracking_branch().name == "origin/mob-session"


def test_set_upstream_missing_remote_branch_fails(participant: Repo, log: ExecutionLog) -> None:
    participant.git.checkout("-b", "mob-session")
    outcome = GitOperations(participant).set_upstream("origin", "mob-session", log)
    assert outcome.success is False
    assert log.messages[-1].startswith("Failure: set_upstream failed:")
