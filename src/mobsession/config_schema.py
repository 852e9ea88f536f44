"""Configuration schema for mobsession.

Defines all configuration options with types, defaults, and validation.
Uses Pydantic for schema enforcement and clear error messages.

Structural problems (wrong types, unknown log levels) fail at load time.
Rules that only matter when a session is started (branch names, distinct
WIP/base branches, remote name) are checked by ``MobConfig.validate_for_start``
so that ``mob config show`` still works on a half-finished config file.
"""

from __future__ import annotations

import shlex
import warnings
from pathlib import Path
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .refnames import validate_branch_name, validate_remote_name


class MobConfig(BaseModel):
    """Settings for one mob session. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    wip_branch: str = Field(
        default="mob-session",
        description="Shared work-in-progress branch all participants use",
    )
    base_branch: str = Field(
        default="main",
        description="Long-lived branch the WIP branch forks from",
    )
    remote_name: str = Field(
        default="origin",
        description="Remote that hosts the WIP and base branches",
    )
    timer_minutes: int = Field(
        default=10,
        description="Length of one mob turn in minutes",
    )
    timer_sound: bool = Field(
        default=False,
        description="Play a sound when the turn timer expires",
    )
    start_with_share: bool = Field(
        default=False,
        description="Trigger screen share after a successful start",
    )
    share_command: str = Field(
        default="",
        description="Command launched to start screen sharing (empty = none)",
    )
    protect_unmerged_wip: bool = Field(
        default=False,
        description="Refuse to delete a local WIP branch holding unpushed commits",
    )

    @field_validator("wip_branch", "base_branch", "remote_name", mode="before")
    @classmethod
    def strip_names(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("share_command")
    @classmethod
    def validate_share_command(cls, v: str) -> str:
        """Warn if the share command cannot be tokenized."""
        if v:
            try:
                shlex.split(v)
            except ValueError as e:
                warnings.warn(f"Share command is not valid shell syntax: {e}", UserWarning)
        return v

    def validate_for_start(self) -> Tuple[bool, Optional[str]]:
        """Check the rules a session start depends on.

        Returns:
            (True, None) when valid, otherwise (False, <first violated rule>)
        """
        try:
            validate_branch_name(self.wip_branch)
        except ValueError as e:
            return False, f"WIP branch: {e}"
        try:
            validate_branch_name(self.base_branch)
        except ValueError as e:
            return False, f"Base branch: {e}"
        if self.wip_branch == self.base_branch:
            return False, f"WIP branch and base branch must differ (both '{self.wip_branch}')"
        try:
            validate_remote_name(self.remote_name)
        except ValueError as e:
            return False, str(e)
        if self.timer_minutes < 1:
            return False, f"Timer minutes must be at least 1 (got {self.timer_minutes})"
        if self.start_with_share and self.share_command:
            try:
                shlex.split(self.share_command)
            except ValueError as e:
                return False, f"Share command is not valid shell syntax: {e}"
        return True, None


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    dir: str = Field(
        default="",
        description="Log directory (empty = ~/.mobsession/logs)",
    )
    max_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=0,
        description="Maximum log file size in bytes",
    )
    backup_count: int = Field(
        default=3,
        ge=0,
        description="Number of backup log files to keep",
    )
    disable_file: bool = Field(
        default=False,
        description="Disable file logging (stderr only)",
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("dir")
    @classmethod
    def validate_log_dir(cls, v: str) -> str:
        """Warn if log directory path is a file."""
        if v:
            path = Path(v).expanduser()
            if path.exists() and not path.is_dir():
                warnings.warn(
                    f"Log path exists but is not a directory: {v}",
                    UserWarning,
                )
        return v


class TimerConfig(BaseModel):
    """Where the turn timer keeps its state."""

    state_file: str = Field(
        default="",
        description="Timer state file (empty = ~/.mobsession/timer.json)",
    )


class MobSessionConfig(BaseModel):
    """Root configuration model."""

    version: int = Field(
        default=1,
        ge=1,
        description="Config schema version",
    )

    mob: MobConfig = Field(default_factory=MobConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    timer: TimerConfig = Field(default_factory=TimerConfig)

    @classmethod
    def default(cls) -> "MobSessionConfig":
        """Create config with all defaults."""
        return cls()
