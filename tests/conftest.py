from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable

import pytest
from git import Actor, Repo

AUTHOR = Actor("Test", "test@example.com")


def pytest_sessionstart(session):  # type: ignore[override]
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))
    # Ensure console scripts load in editable style as well
    os.environ.setdefault("PYTHONPATH", str(src))
    # Logger is created once per process; keep test runs out of ~/.mobsession/logs
    os.environ.setdefault("MOB_LOG_DISABLE_FILE", "1")


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME at an empty directory and drop MOB_* settings from the environment."""
    from mobsession.config_loader import ENV_MAPPING

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for var in ENV_MAPPING:
        if var != "MOB_LOG_DISABLE_FILE":
            monkeypatch.delenv(var, raising=False)
    return home


def _configure(repo: Repo) -> None:
    with repo.config_writer() as config:
        config.set_value("user", "name", AUTHOR.name)
        config.set_value("user", "email", AUTHOR.email)
        config.set_value("pull", "rebase", "false")


def commit_file(repo: Repo, name: str, content: str, message: str) -> str:
    """Write a file in the working tree, commit it, and return the commit sha."""
    path = Path(repo.working_dir) / name
    path.write_text(content)
    repo.index.add([name])
    return repo.index.commit(message, author=AUTHOR, committer=AUTHOR).hexsha


@pytest.fixture
def remote_repo(tmp_path: Path) -> Path:
    """Bare remote holding a single commit on main."""
    bare_path = tmp_path / "remote.git"
    bare = Repo.init(bare_path, bare=True)
    bare.git.symbolic_ref("HEAD", "refs/heads/main")

    seed_path = tmp_path / "seed"
    seed = Repo.clone_from(str(bare_path), str(seed_path))
    _configure(seed)
    seed.git.symbolic_ref("HEAD", "refs/heads/main")
    commit_file(seed, "README.md", "# Project\n", "Initial commit")
    seed.git.push("origin", "main")
    seed.close()
    return bare_path


@pytest.fixture
def make_clone(tmp_path: Path, remote_repo: Path) -> Callable[[str], Repo]:
    """Factory: clone the remote into tmp_path/<name>, on main, tracking origin/main."""
    clones = []

    def _clone(name: str) -> Repo:
        repo = Repo.clone_from(str(remote_repo), str(tmp_path / name))
        _configure(repo)
        repo.git.checkout("main")
        clones.append(repo)
        return repo

    yield _clone
    for repo in clones:
        repo.close()


@pytest.fixture
def participant(make_clone: Callable[[str], Repo]) -> Repo:
    """Working clone for the participant running `mob start`."""
    return make_clone("alice")


@pytest.fixture
def mob_config():
    from mobsession.config_schema import MobConfig

    return MobConfig()
