"""Repository resolution and branch topology inspection.

Everything in this module is read-only: it opens repositories, reads refs
and HEAD, and checks working-tree state. Mutating git calls live in
``mobsession.git_ops``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from git import Repo
from git.exc import CommandError, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .config_schema import MobConfig
from .errors import InspectError, InvalidRepositoryStateError, NoRepositoryError
from .observability import log_debug


@dataclass(frozen=True)
class TopologySnapshot:
    """Branch facts computed once per start attempt. Never cached."""

    has_local_wip: bool
    has_remote_wip: bool
    is_mob_programming: bool
    current_branch: Optional[str] = None


def _open(path: Path) -> Repo:
    repo = Repo(path, search_parent_directories=True)
    if repo.bare:
        raise NoRepositoryError(f"Repository at {path} is bare (no working tree)")
    return repo


def _child_repositories(path: Path) -> List[Path]:
    """Direct children of path that are git working trees."""
    return sorted(child for child in path.iterdir() if child.is_dir() and (child / ".git").exists())


def resolve_repository(path: Optional[Path] = None) -> Repo:
    """Resolve the git repository for a project directory.

    The repository containing ``path`` wins. When ``path`` is not inside a
    repository but holds exactly one repository as a direct child, that one
    is used; several children make the choice ambiguous.

    Raises:
        NoRepositoryError: If no repository is found, or more than one could apply
    """
    path = (path or Path.cwd()).expanduser()
    if not path.exists():
        raise NoRepositoryError(f"Project path does not exist: {path}")

    try:
        repo = _open(path)
        log_debug("[REPO] Resolved repository", path=str(repo.working_dir))
        return repo
    except (InvalidGitRepositoryError, NoSuchPathError):
        pass

    children = _child_repositories(path) if path.is_dir() else []
    if len(children) == 1:
        try:
            return _open(children[0])
        except (InvalidGitRepositoryError, NoSuchPathError):
            pass
    elif len(children) > 1:
        names = ", ".join(child.name for child in children)
        raise NoRepositoryError(f"Multiple git repositories under {path} ({names}); choose one")

    raise NoRepositoryError(f"No git repository found at {path}")


def get_branch_name(repo: Repo) -> Optional[str]:
    """Get active branch name, or None if detached HEAD."""
    try:
        if repo.head.is_detached:
            return None
        return repo.active_branch.name
    except TypeError:
        return None


def _ref_exists(repo: Repo, ref: str) -> bool:
    """True if the fully qualified ref exists.

    ``git show-ref --verify --quiet`` exits 1 for a missing ref; any other
    failure means the repository itself could not be read.
    """
    try:
        repo.git.show_ref("--verify", "--quiet", ref)
        return True
    except GitCommandError as e:
        if e.status == 1:
            return False
        raise InspectError(f"Cannot read {ref} in {repo.working_dir}: {e.stderr.strip() or e}") from e
    except CommandError as e:
        raise InspectError(f"Cannot run git in {repo.working_dir}: {e}") from e


def has_local_branch(repo: Repo, branch: str) -> bool:
    return _ref_exists(repo, f"refs/heads/{branch}")


def has_remote_branch(repo: Repo, remote: str, branch: str) -> bool:
    return _ref_exists(repo, f"refs/remotes/{remote}/{branch}")


def is_rebase_in_progress(repo: Repo) -> bool:
    """Check if a rebase or merge is in progress."""
    git_dir = Path(repo.git_dir)
    return (
        (git_dir / "rebase-merge").exists()
        or (git_dir / "rebase-apply").exists()
        or (git_dir / "MERGE_HEAD").exists()
    )


def has_conflicts(repo: Repo) -> bool:
    """Check if repo has unresolved merge/rebase conflicts."""
    status = repo.git.status("--porcelain")
    for line in status.split("\n"):
        if len(line) >= 2:
            xy = line[:2]
            if "U" in xy or xy == "AA" or xy == "DD":
                return True
    return False


def inspect(repo: Repo, config: MobConfig) -> TopologySnapshot:
    """Read local/remote WIP branch existence and whether we are on the WIP branch.

    Raises:
        InspectError: If the repository handle can no longer be read
    """
    if not Path(repo.git_dir).is_dir():
        raise InspectError(f"Not a git repository (missing {repo.git_dir})")

    try:
        current = get_branch_name(repo)
    except (ValueError, OSError) as e:
        raise InspectError(f"Cannot read HEAD in {repo.working_dir}: {e}") from e

    snapshot = TopologySnapshot(
        has_local_wip=has_local_branch(repo, config.wip_branch),
        has_remote_wip=has_remote_branch(repo, config.remote_name, config.wip_branch),
        is_mob_programming=current == config.wip_branch,
        current_branch=current,
    )
    log_debug(
        "[REPO] Topology",
        has_local_wip=snapshot.has_local_wip,
        has_remote_wip=snapshot.has_remote_wip,
        is_mob_programming=snapshot.is_mob_programming,
        current_branch=current,
    )
    return snapshot


def validate_for_start(repo: Repo, config: MobConfig) -> None:
    """Repository-specific preconditions for a session start.

    Raises:
        InvalidRepositoryStateError: With the first problem found
    """
    try:
        if not repo.head.is_valid():
            raise InvalidRepositoryStateError("Repository has no commits yet")

        if get_branch_name(repo) is None:
            raise InvalidRepositoryStateError("HEAD is detached; check out a branch first")

        if has_conflicts(repo):
            raise InvalidRepositoryStateError(
                "Repository has unresolved merge conflicts; resolve and commit them first"
            )

        if is_rebase_in_progress(repo):
            raise InvalidRepositoryStateError("A rebase or merge is in progress; finish or abort it first")

        remote_names = [remote.name for remote in repo.remotes]
        if config.remote_name not in remote_names:
            known = ", ".join(remote_names) or "none"
            raise InvalidRepositoryStateError(
                f"Remote '{config.remote_name}' is not configured (known remotes: {known})"
            )

        if repo.is_dirty(index=True, working_tree=True, untracked_files=False):
            raise InvalidRepositoryStateError(
                "Working tree has uncommitted changes; commit or stash them first"
            )
    except CommandError as e:
        raise InvalidRepositoryStateError(f"Cannot read repository state: {e}") from e


def ahead_behind(repo: Repo, branch: str, upstream: str) -> Tuple[int, int]:
    """Commits (ahead, behind) of branch relative to upstream."""
    counts = repo.git.rev_list("--left-right", "--count", f"{branch}...{upstream}")
    ahead, behind = (int(part) for part in counts.split())
    return ahead, behind


def status_line(repo: Repo, config: MobConfig) -> str:
    """One human-readable line describing the current branch and its tracking state."""
    branch = get_branch_name(repo)
    if branch is None:
        return "HEAD is detached"

    tracking = repo.active_branch.tracking_branch()
    if tracking is None or not tracking.is_valid():
        return f"On branch {branch} (no upstream)"

    try:
        ahead, behind = ahead_behind(repo, branch, tracking.name)
    except GitCommandError as e:
        log_debug(f"[REPO] Could not count commits against {tracking.name}: {e}")
        return f"On branch {branch}, tracking {tracking.name}"

    if ahead == 0 and behind == 0:
        sync = "up to date"
    else:
        sync = f"ahead {ahead}, behind {behind}"
    return f"On branch {branch}, tracking {tracking.name} ({sync})"
