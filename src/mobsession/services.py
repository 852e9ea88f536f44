"""Turn timer and screen-share collaborators.

The start task only needs the small protocols below. ``FileTimer`` keeps the
timer as a JSON state file so separate ``mob`` invocations can see it;
``CommandShare`` launches a configured command and does not wait for it.
"""

from __future__ import annotations

import json
import os
import shlex
import subprocess
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

from .errors import NonFatalServiceWarning
from .observability import log_action, log_debug

TIMER_FILE_NAME = "timer.json"
TIMER_DIR_NAME = ".mobsession"


class TimerService(Protocol):
    def is_running(self) -> bool: ...

    def start(self, minutes: int, sound: bool) -> None: ...


class ShareService(Protocol):
    def trigger(self, context: Mapping[str, Any]) -> None: ...


@dataclass
class TimerState:
    """Timer state persisted to timer.json."""

    started_at: str
    minutes: int
    sound: bool = False

    def ends_at(self) -> datetime:
        return datetime.fromisoformat(self.started_at) + timedelta(minutes=self.minutes)

    @classmethod
    def from_dict(cls, data: dict) -> "TimerState":
        return cls(
            started_at=data["started_at"],
            minutes=int(data["minutes"]),
            sound=bool(data.get("sound", False)),
        )


class FileTimer:
    """Mob turn timer backed by a state file."""

    def __init__(self, state_file: Optional[Path] = None, clock=None):
        if state_file:
            self.state_file = Path(state_file).expanduser()
        else:
            self.state_file = Path.home() / TIMER_DIR_NAME / TIMER_FILE_NAME
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def read_state(self) -> Optional[TimerState]:
        """Read timer state; a missing or corrupted file means no timer."""
        try:
            if not self.state_file.exists():
                return None
            data = json.loads(self.state_file.read_text(encoding="utf-8"))
            return TimerState.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log_debug(f"[TIMER] Ignoring unreadable state file {self.state_file}: {e}")
            return None

    def remaining(self) -> Optional[timedelta]:
        """Time left on the running timer, or None when no timer runs."""
        state = self.read_state()
        if state is None:
            return None
        try:
            left = state.ends_at() - self._clock()
        except (TypeError, ValueError) as e:
            log_debug(f"[TIMER] Invalid timer state: {e}")
            return None
        return left if left > timedelta(0) else None

    def is_running(self) -> bool:
        return self.remaining() is not None

    def start(self, minutes: int, sound: bool) -> None:
        if minutes < 1:
            raise NonFatalServiceWarning("timer", f"cannot start a {minutes} minute timer")
        state = TimerState(started_at=self._clock().isoformat(), minutes=minutes, sound=sound)
        try:
            self._write(state)
        except OSError as e:
            raise NonFatalServiceWarning("timer", f"cannot write {self.state_file}: {e}") from e
        log_action("timer.start", minutes=minutes, sound=sound)

    def stop(self) -> bool:
        """Remove the timer. Returns True if a timer file existed."""
        try:
            self.state_file.unlink()
            return True
        except FileNotFoundError:
            return False

    def _write(self, state: TimerState) -> None:
        """Write state atomically (temp + rename)."""
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=self.state_file.parent, prefix=".timer_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(asdict(state), f, indent=2)
            os.replace(temp_path, self.state_file)
        except OSError:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise


class CommandShare:
    """Starts screen sharing by launching a command. Fire-and-forget."""

    def __init__(self, command: str):
        self.command = command

    def trigger(self, context: Mapping[str, Any]) -> None:
        if not self.command:
            raise NonFatalServiceWarning("share", "no share command configured")
        try:
            argv = shlex.split(self.command)
        except ValueError as e:
            raise NonFatalServiceWarning("share", f"invalid share command: {e}") from e
        if not argv:
            raise NonFatalServiceWarning("share", "no share command configured")

        env: Dict[str, str] = dict(os.environ)
        for key, value in context.items():
            env[f"MOB_{key.upper()}"] = str(value)

        try:
            subprocess.Popen(
                argv,
                cwd=str(context["repo_root"]) if "repo_root" in context else None,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise NonFatalServiceWarning("share", f"cannot launch '{argv[0]}': {e}") from e
        log_action("share.trigger", command=argv[0])
