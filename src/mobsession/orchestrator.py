"""Session start: bring the repository onto the shared WIP branch.

A run walks through fixed states::

    INIT -> PRECONDITION_CHECK -> FETCHING -> PULLING
         -> SCENARIO_EXECUTION -> POST_ACTIONS -> COMPLETED | ABORTED

The first failure moves straight to ABORTED. Nothing after the failing
step runs and nothing is undone. The execution log and the progress value
belong to one run and are passed down explicitly, so two runs never share
state.

Which scenario runs depends only on whether the WIP branch exists locally
and on the remote (see ``mobsession.classifier``):

- rejoining: local + remote. Re-create the local branch from the remote one
  unless we are already on it.
- create from base: neither. Fork a new WIP branch from the fresh base
  branch and publish it.
- joining: remote only. Check it out and track it.
- purge and recreate: local only, a leftover from a finished session. Drop
  it and start over from base.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from git import Repo

from .classifier import Scenario, classify_snapshot
from .config_schema import MobConfig
from .errors import (
    GitOperationError,
    InvalidConfigError,
    InvalidRepositoryStateError,
    MobSessionError,
    NoRepositoryError,
    NonFatalServiceWarning,
    SessionCancelledError,
)
from .git_ops import ExecutionLog, GitOperations, Outcome
from .observability import log_action, log_debug, log_error, log_warning, timeit
from .progress import LoggingProgressSink, ProgressSink
from .repository import TopologySnapshot, inspect, resolve_repository, status_line, validate_for_start
from .services import ShareService, TimerService

TITLE_SUCCESS = "Mob session started"
TITLE_FAILURE = "Mob session start failed"

# Precondition, fetch, pull, scenario, completion
PROGRESS_SECTIONS = 5
FRACTION_PER_SECTION = 1.0 / PROGRESS_SECTIONS

AdapterFactory = Callable[[Repo, MobConfig], GitOperations]


class StartState(str, Enum):
    INIT = "init"
    PRECONDITION_CHECK = "precondition_check"
    FETCHING = "fetching"
    PULLING = "pulling"
    SCENARIO_EXECUTION = "scenario_execution"
    POST_ACTIONS = "post_actions"
    COMPLETED = "completed"
    ABORTED = "aborted"


class SessionStatus(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class SessionResult:
    """Terminal value of one start run."""

    status: SessionStatus
    messages: Tuple[str, ...]
    state: StartState
    scenario: Optional[Scenario] = None
    snapshot: Optional[TopologySnapshot] = None
    error: Optional[BaseException] = None
    warnings: Tuple[NonFatalServiceWarning, ...] = ()

    @property
    def success(self) -> bool:
        return self.status is SessionStatus.COMPLETED

    @property
    def title(self) -> str:
        return TITLE_SUCCESS if self.success else TITLE_FAILURE


@dataclass
class _Run:
    """Mutable bookkeeping for a single run."""

    log: ExecutionLog
    sink: ProgressSink
    state: StartState = StartState.INIT
    fraction: float = 0.0
    scenario: Optional[Scenario] = None
    snapshot: Optional[TopologySnapshot] = None
    warnings: List[NonFatalServiceWarning] = field(default_factory=list)

    def advance(self, amount: float = FRACTION_PER_SECTION) -> None:
        self.fraction = min(1.0, self.fraction + amount)
        self.sink.report_progress(self.fraction)

    def finish(self) -> None:
        self.fraction = 1.0
        self.sink.report_progress(self.fraction)


def _default_adapter(repo: Repo, config: MobConfig) -> GitOperations:
    return GitOperations(repo, protect_unmerged=config.protect_unmerged_wip)


def _require(outcome: Outcome) -> Outcome:
    """Turn a failed outcome into the run-ending error."""
    if not outcome.success:
        raise outcome.error or GitOperationError(outcome.operation, outcome.message)
    return outcome


# ----------------------------------------------------------------------
# Scenario bodies
# ----------------------------------------------------------------------


def _rejoining(ops: GitOperations, config: MobConfig, snapshot: TopologySnapshot, log: ExecutionLog) -> None:
    log.notify("Rejoining mob session")
    if snapshot.is_mob_programming:
        log_debug("[START] Already on the WIP branch, nothing to do")
        return
    wip, remote = config.wip_branch, config.remote_name
    _require(ops.delete_branch(wip, log, keep_ref=f"{remote}/{wip}"))
    _require(ops.checkout_branch(wip, log, remote=remote))
    _require(ops.set_upstream(remote, wip, log))


def _create_from_base(ops: GitOperations, config: MobConfig, snapshot: TopologySnapshot, log: ExecutionLog) -> None:
    log.notify(f"Create {config.wip_branch} from {config.base_branch}")
    _fork_wip_from_base(ops, config, log)


def _joining(ops: GitOperations, config: MobConfig, snapshot: TopologySnapshot, log: ExecutionLog) -> None:
    log.notify("Joining mob session")
    _require(ops.checkout_branch(config.wip_branch, log, remote=config.remote_name))
    _require(ops.set_upstream(config.remote_name, config.wip_branch, log))


def _purge_and_recreate(ops: GitOperations, config: MobConfig, snapshot: TopologySnapshot, log: ExecutionLog) -> None:
    log.notify(
        f"Purging local branch {config.wip_branch} and starting a new one from {config.base_branch}"
    )
    _require(
        ops.delete_branch(
            config.wip_branch, log, keep_ref=f"{config.remote_name}/{config.base_branch}"
        )
    )
    _fork_wip_from_base(ops, config, log)


def _fork_wip_from_base(ops: GitOperations, config: MobConfig, log: ExecutionLog) -> None:
    # Base is brought up to date before the WIP branch forks from it
    _require(ops.checkout_branch(config.base_branch, log, remote=config.remote_name))
    _require(ops.merge_fast_forward(config.remote_name, config.base_branch, log))
    _require(ops.create_branch(config.wip_branch, log))
    _require(ops.checkout_branch(config.wip_branch, log))
    _require(ops.push(config.remote_name, config.wip_branch, log))


SCENARIO_BODIES: Dict[Scenario, Callable[[GitOperations, MobConfig, TopologySnapshot, ExecutionLog], None]] = {
    Scenario.REJOINING: _rejoining,
    Scenario.CREATE_FROM_BASE: _create_from_base,
    Scenario.JOINING: _joining,
    Scenario.PURGE_AND_RECREATE: _purge_and_recreate,
}


# ----------------------------------------------------------------------
# Start task
# ----------------------------------------------------------------------


class StartTask:
    """One session start against one repository.

    Args:
        config: Mob settings; validated before any git call
        project_path: Directory used to resolve the repository (default: cwd)
        repo: Already opened repository; wins over ``project_path``. The task
            borrows it and never closes it.
        sink: Receives progress and the single final result
        timer: Turn timer collaborator (None = unavailable, logged as warning)
        share: Screen-share collaborator used when ``start_with_share`` is set
        adapter_factory: Builds the git operation adapter for the repository
        cancel_event: Checked between states; once set the run aborts
    """

    def __init__(
        self,
        config: MobConfig,
        project_path: Optional[Path] = None,
        *,
        repo: Optional[Repo] = None,
        sink: Optional[ProgressSink] = None,
        timer: Optional[TimerService] = None,
        share: Optional[ShareService] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self.project_path = project_path
        self.repo = repo
        self.sink = sink or LoggingProgressSink()
        self.timer = timer
        self.share = share
        self.adapter_factory = adapter_factory or _default_adapter
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        """Ask the run to stop at the next state boundary."""
        self.cancel_event.set()

    def run(self) -> SessionResult:
        """Run the start synchronously and report the result to the sink once."""
        run = _Run(log=ExecutionLog(), sink=self.sink)
        self.sink.report_progress(run.fraction)
        log_debug("[START] Begin", wip_branch=self.config.wip_branch, remote=self.config.remote_name)

        with timeit("session.start") as info:
            result = self._execute(run)
            info["outcome"] = result.status.value
            info["scenario"] = result.scenario.value if result.scenario else None

        self.sink.report_result(result.success, result.title, result.messages)
        return result

    def run_in_background(self) -> "StartHandle":
        """Run on a daemon thread. Progress and result still go to the sink."""
        handle = StartHandle(self)
        handle.start()
        return handle

    # ------------------------------------------------------------------

    def _enter(self, run: _Run, state: StartState) -> None:
        if self.cancel_event.is_set():
            raise SessionCancelledError(f"Cancelled before {state.value.replace('_', ' ')}")
        run.state = state
        log_debug(f"[START] State -> {state.value}")

    def _execute(self, run: _Run) -> SessionResult:
        log = run.log
        try:
            self._enter(run, StartState.PRECONDITION_CHECK)
            repo = self.repo if self.repo is not None else resolve_repository(self.project_path)
            valid, reason = self.config.validate_for_start()
            if not valid:
                raise InvalidConfigError(reason or "invalid configuration")
            validate_for_start(repo, self.config)
            run.advance()

            ops = self.adapter_factory(repo, self.config)

            self._enter(run, StartState.FETCHING)
            _require(ops.fetch(self.config.remote_name, log))
            run.advance()

            self._enter(run, StartState.PULLING)
            _require(ops.pull(self.config.remote_name, log))
            run.advance()

            self._enter(run, StartState.SCENARIO_EXECUTION)
            run.snapshot = inspect(repo, self.config)
            run.scenario = classify_snapshot(run.snapshot)
            log_action("session.scenario", scenario=run.scenario.value)
            SCENARIO_BODIES[run.scenario](ops, self.config, run.snapshot, log)
            run.advance()

            self._enter(run, StartState.POST_ACTIONS)
            self._post_actions(run, repo)
            run.state = StartState.COMPLETED
            run.finish()
            return self._result(run, SessionStatus.COMPLETED)

        except (InvalidConfigError, InvalidRepositoryStateError) as e:
            log.failure(f"Precondition error: {e.reason}")
            return self._abort(run, e)
        except NoRepositoryError as e:
            log.failure(f"Precondition error: {e}")
            return self._abort(run, e)
        except GitOperationError as e:
            # The adapter already logged the failing step
            return self._abort(run, e)
        except MobSessionError as e:
            log.failure(str(e))
            return self._abort(run, e)
        except Exception as e:
            log_error(f"[START] Unexpected error during {run.state.value}: {e}")
            log.failure(f"Unexpected error: {e}")
            return self._abort(run, e)

    def _abort(self, run: _Run, error: BaseException) -> SessionResult:
        failed_in = run.state
        log_warning(f"[START] Aborted during {failed_in.value}: {error}")
        run.state = StartState.ABORTED
        return self._result(run, SessionStatus.ABORTED, error=error, failed_in=failed_in)

    def _result(
        self,
        run: _Run,
        status: SessionStatus,
        error: Optional[BaseException] = None,
        failed_in: Optional[StartState] = None,
    ) -> SessionResult:
        return SessionResult(
            status=status,
            messages=run.log.messages,
            state=failed_in or run.state,
            scenario=run.scenario,
            snapshot=run.snapshot,
            error=error,
            warnings=tuple(run.warnings),
        )

    def _post_actions(self, run: _Run, repo: Repo) -> None:
        """Timer, share, and the closing status line. Nothing here can abort the run."""
        self._start_timer(run)
        self._start_share(run, repo)
        try:
            run.log.notify(status_line(repo, self.config))
        except Exception as e:
            self._warn(run, NonFatalServiceWarning("status", str(e)))

    def _warn(self, run: _Run, warning: NonFatalServiceWarning) -> None:
        log_warning(f"[START] {warning}")
        run.warnings.append(warning)
        run.log.warning(str(warning))

    def _start_timer(self, run: _Run) -> None:
        timer = self.timer
        if timer is None:
            self._warn(run, NonFatalServiceWarning("timer", "timer service is unavailable"))
            return
        try:
            if timer.is_running():
                self._warn(run, NonFatalServiceWarning("timer", "a timer is already running"))
                return
            timer.start(self.config.timer_minutes, self.config.timer_sound)
        except NonFatalServiceWarning as w:
            self._warn(run, w)
            return
        except Exception as e:
            self._warn(run, NonFatalServiceWarning("timer", str(e)))
            return
        run.log.notify(f"Timer started ({self.config.timer_minutes} min)")

    def _start_share(self, run: _Run, repo: Repo) -> None:
        if not self.config.start_with_share:
            return
        if self.share is None:
            self._warn(run, NonFatalServiceWarning("share", "screen share is unavailable"))
            return
        context: Dict[str, Any] = {
            "repo_root": repo.working_dir,
            "wip_branch": self.config.wip_branch,
            "scenario": run.scenario.value if run.scenario else "",
        }
        try:
            self.share.trigger(context)
        except NonFatalServiceWarning as w:
            self._warn(run, w)
            return
        except Exception as e:
            self._warn(run, NonFatalServiceWarning("share", str(e)))
            return
        run.log.notify("Screen share started")


class StartHandle:
    """Background run of a ``StartTask``."""

    def __init__(self, task: StartTask):
        self.task = task
        self._result: Optional[SessionResult] = None
        self._thread = threading.Thread(target=self._target, name="mobsession-start", daemon=True)

    def _target(self) -> None:
        self._result = self.task.run()

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self.task.cancel()

    def done(self) -> bool:
        return self._result is not None

    def result(self, timeout: Optional[float] = None) -> Optional[SessionResult]:
        """Wait for the run; None if it is still going after ``timeout`` seconds."""
        self._thread.join(timeout)
        return self._result


def start_session(
    config: MobConfig,
    project_path: Optional[Path] = None,
    **kwargs: Any,
) -> SessionResult:
    """Convenience wrapper: build a ``StartTask`` and run it."""
    return StartTask(config, project_path, **kwargs).run()
