"""Git operations used by the session start, one call per git command.

Every operation appends exactly one line to the caller's ``ExecutionLog`` and
returns an ``Outcome``. Git failures never propagate: git command errors
(including git missing from PATH), OS errors and invalid names are turned
into ``Outcome(success=False)``. There is no rollback; after a failure the
repository is left as git left it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

from git import Repo
from git.exc import CommandError, GitCommandError

from .errors import GitOperationError
from .observability import log_action, log_debug
from .refnames import validate_branch_name, validate_remote_name

NOTIFY_FORMAT = "{}"
WARNING_FORMAT = "Warning: {}"
FAILURE_FORMAT = "Failure: {}"


class ExecutionLog:
    """Append-only, ordered list of status lines for one run."""

    def __init__(self) -> None:
        self._lines: List[str] = []

    def append(self, line: str) -> str:
        self._lines.append(line)
        return line

    def notify(self, message: str) -> str:
        return self.append(NOTIFY_FORMAT.format(message))

    def warning(self, message: str) -> str:
        return self.append(WARNING_FORMAT.format(message))

    def failure(self, message: str) -> str:
        return self.append(FAILURE_FORMAT.format(message))

    @property
    def messages(self) -> Tuple[str, ...]:
        return tuple(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._lines))

    def __len__(self) -> int:
        return len(self._lines)


@dataclass(frozen=True)
class Outcome:
    """Result of one git operation. ``message`` is the line appended to the log."""

    operation: str
    success: bool
    message: str
    error: Optional[GitOperationError] = None


def _diagnostic(error: GitCommandError) -> str:
    text = (error.stderr or "").strip()
    if text.startswith("stderr:"):
        text = text[len("stderr:"):].strip()
    text = text.strip("'").strip()
    return text or str(error)


class GitOperations:
    """Git operation adapter bound to one repository."""

    def __init__(self, repo: Repo, protect_unmerged: bool = False):
        self.repo = repo
        self.protect_unmerged = protect_unmerged

    def _run(
        self,
        operation: str,
        log: ExecutionLog,
        command: Callable[[], Optional[str]],
        success_message: str,
    ) -> Outcome:
        """Run one git command. A command may return its own success line."""
        start = time.perf_counter()
        try:
            override = command()
        except (CommandError, GitOperationError, OSError, ValueError) as e:
            # CommandError also covers git missing from PATH (GitCommandNotFound)
            if isinstance(e, GitCommandError):
                error = GitOperationError(operation, _diagnostic(e))
            elif isinstance(e, GitOperationError):
                error = e
            else:
                error = GitOperationError(operation, str(e).strip() or type(e).__name__)
            duration_ms = (time.perf_counter() - start) * 1000.0
            log_action(f"git.{operation}", outcome="error", duration_ms=duration_ms, error=error.diagnostic)
            line = log.failure(str(error))
            return Outcome(operation=operation, success=False, message=line, error=error)

        duration_ms = (time.perf_counter() - start) * 1000.0
        log_action(f"git.{operation}", outcome="skipped" if override else "ok", duration_ms=duration_ms)
        line = log.notify(override or success_message)
        return Outcome(operation=operation, success=True, message=line)

    def fetch(self, remote: str, log: ExecutionLog) -> Outcome:
        """Fetch the remote, pruning remote-tracking refs that are gone."""

        def command() -> None:
            validate_remote_name(remote)
            self.repo.git.fetch("--prune", remote)

        return self._run("fetch", log, command, f"Fetched {remote}")

    def pull(self, remote: str, log: ExecutionLog) -> Outcome:
        """Fast-forward the current branch from its upstream.

        Skipped (successfully) when the branch has no upstream on ``remote``
        or the upstream no longer exists there.
        """

        def command() -> Optional[str]:
            validate_remote_name(remote)
            if self.repo.head.is_detached:
                raise GitOperationError("pull", "HEAD is detached")
            branch = self.repo.active_branch
            tracking = branch.tracking_branch()
            if tracking is None or tracking.remote_name != remote:
                reason = f"{branch.name} has no upstream on {remote}"
            elif not tracking.is_valid():
                reason = f"upstream {tracking.name} no longer exists"
            else:
                self.repo.git.pull("--ff-only")
                return None
            log_debug(f"[GIT] Pull skipped: {reason}")
            return f"Pull skipped ({reason})"

        return self._run("pull", log, command, "Pulled")

    def checkout_branch(self, name: str, log: ExecutionLog, remote: Optional[str] = None) -> Outcome:
        """Check out a local branch, creating it from ``remote/name`` when only that exists."""

        def command() -> None:
            validate_branch_name(name)
            local = [head.name for head in self.repo.heads]
            if name not in local and remote:
                remote_ref = f"{remote}/{name}"
                if remote_ref in [ref.name for ref in self.repo.remote(remote).refs]:
                    self.repo.git.checkout("-b", name, "--track", remote_ref)
                    return
            self.repo.git.checkout(name)

        return self._run("checkout", log, command, f"Checked out {name}")

    def create_branch(self, name: str, log: ExecutionLog) -> Outcome:
        """Create a branch at HEAD without switching to it."""

        def command() -> None:
            validate_branch_name(name)
            self.repo.git.branch(name)

        return self._run("create_branch", log, command, f"Created branch {name}")

    def delete_branch(self, name: str, log: ExecutionLog, keep_ref: Optional[str] = None) -> Outcome:
        """Force-delete a local branch.

        With ``protect_unmerged`` set, refuses when ``name`` has commits that
        ``keep_ref`` does not contain (or any commits at all when ``keep_ref``
        is None or missing).
        """

        def command() -> None:
            validate_branch_name(name)
            if self.protect_unmerged:
                unmerged = self._count_unmerged(name, keep_ref)
                if unmerged:
                    raise GitOperationError(
                        "delete_branch",
                        f"{name} has {unmerged} commit(s) not in {keep_ref or 'any remote branch'}; "
                        "push or merge them before starting",
                    )
            self.repo.git.branch("-D", name)

        return self._run("delete_branch", log, command, f"Deleted branch {name}")

    def _count_unmerged(self, name: str, keep_ref: Optional[str]) -> int:
        if keep_ref:
            try:
                self.repo.git.rev_parse("--verify", "--quiet", keep_ref)
                return int(self.repo.git.rev_list("--count", f"{keep_ref}..{name}"))
            except GitCommandError:
                pass
        return int(self.repo.git.rev_list("--count", name, "--not", "--remotes"))

    def merge_fast_forward(self, remote: str, branch: str, log: ExecutionLog) -> Outcome:
        """Fast-forward the current branch to ``remote/branch``; fails if a merge commit is needed."""

        def command() -> None:
            validate_remote_name(remote)
            validate_branch_name(branch)
            self.repo.git.merge("--ff-only", f"{remote}/{branch}")

        return self._run("merge_fast_forward", log, command, f"Fast-forwarded to {remote}/{branch}")

    def push(self, remote: str, branch: str, log: ExecutionLog) -> Outcome:
        """Push ``branch`` to ``remote`` and make it the upstream."""

        def command() -> None:
            validate_remote_name(remote)
            validate_branch_name(branch)
            self.repo.git.push("--set-upstream", remote, branch)

        return self._run("push", log, command, f"Pushed {branch} to {remote}")

    def set_upstream(self, remote: str, branch: str, log: ExecutionLog) -> Outcome:
        """Make ``remote/branch`` the upstream of the local ``branch``."""

        def command() -> None:
            validate_remote_name(remote)
            validate_branch_name(branch)
            self.repo.git.branch(f"--set-upstream-to={remote}/{branch}", branch)

        return self._run("set_upstream", log, command, f"Set upstream of {branch} to {remote}/{branch}")
