#!/usr/bin/env python3
"""mob CLI - start and inspect mob programming sessions."""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Fail fast on unsupported interpreter version
if sys.version_info < (3, 9):
    print(f"mob requires Python 3.9+; found {sys.version.split()[0]}", file=sys.stderr)
    sys.exit(1)


def _project_path(args) -> Path | None:
    value = getattr(args, "project_path", None)
    return Path(value) if value else None


def _start_overrides(args) -> dict:
    """Map `mob start` flags onto the [mob] config table."""
    mob: dict = {}
    if args.wip_branch:
        mob["wip_branch"] = args.wip_branch
    if args.base_branch:
        mob["base_branch"] = args.base_branch
    if args.remote:
        mob["remote_name"] = args.remote
    if args.timer_minutes is not None:
        mob["timer_minutes"] = args.timer_minutes
    if args.timer_sound is not None:
        mob["timer_sound"] = args.timer_sound
    if args.share is not None:
        mob["start_with_share"] = args.share
    if args.share_command:
        mob["share_command"] = args.share_command
    return {"mob": mob} if mob else {}


def _apply_logging_env(config) -> None:
    """Expose [logging] settings to the logger; explicit env vars still win."""
    logging_cfg = config.logging
    os.environ.setdefault("MOB_LOG_LEVEL", logging_cfg.level)
    if logging_cfg.dir:
        os.environ.setdefault("MOB_LOG_DIR", str(Path(logging_cfg.dir).expanduser()))
    os.environ.setdefault("MOB_LOG_MAX_BYTES", str(logging_cfg.max_bytes))
    os.environ.setdefault("MOB_LOG_BACKUP_COUNT", str(logging_cfg.backup_count))
    if logging_cfg.disable_file:
        os.environ.setdefault("MOB_LOG_DISABLE_FILE", "1")


def _load(project_path: Path | None, overrides: dict | None = None):
    from .config_loader import ConfigError, load_config

    try:
        config = load_config(project_path, overrides=overrides)
    except ConfigError as e:
        print(f"❌ Config error: {e}", file=sys.stderr)
        sys.exit(1)
    _apply_logging_env(config)
    return config


def _timer_for(config):
    from .services import FileTimer

    return FileTimer(Path(config.timer.state_file) if config.timer.state_file else None)


def _format_remaining(remaining) -> str:
    total = int(remaining.total_seconds())
    minutes, seconds = divmod(total, 60)
    return f"{minutes}:{seconds:02d}"


def _config_document(config, title: str):
    """Render a config model as a commented tomlkit document."""
    import tomlkit

    doc = tomlkit.document()
    doc.add(tomlkit.comment(f" {title}"))
    doc.add(tomlkit.nl())

    for section, values in config.model_dump().items():
        if not isinstance(values, dict):
            doc.add(section, values)
            continue
        model = getattr(config, section)
        table = tomlkit.table()
        for key, val in values.items():
            description = type(model).model_fields[key].description
            if description:
                table.add(tomlkit.comment(description))
            table.add(key, val)
        doc.add(section, table)
    return doc


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(
        prog="mob",
        description="Join or start a shared mob programming session on a WIP branch",
    )

    sub = ap.add_subparsers(dest="cmd")

    p_start = sub.add_parser("start", help="Start or join the mob session")
    p_start.add_argument("--project-path", help="Project directory (default: current directory)")
    p_start.add_argument("--wip-branch", help="WIP branch override")
    p_start.add_argument("--base-branch", help="Base branch override")
    p_start.add_argument("--remote", help="Remote name override")
    p_start.add_argument("--timer-minutes", type=int, help="Turn length in minutes")
    p_start.add_argument(
        "--timer-sound",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Play a sound when the turn ends (overrides config)",
    )
    p_start.add_argument(
        "--share",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Start screen share after a successful start (overrides config)",
    )
    p_start.add_argument("--share-command", help="Command that starts screen sharing")
    p_start.add_argument("--progress", action="store_true", help="Print progress while starting")

    p_status = sub.add_parser("status", help="Show branch topology and the scenario a start would run")
    p_status.add_argument("--project-path", help="Project directory (default: current directory)")

    p_timer = sub.add_parser("timer", help="Turn timer")
    timer_sub = p_timer.add_subparsers(dest="timer_cmd")
    p_timer_show = timer_sub.add_parser("show", help="Show remaining time (default)")
    p_timer_show.add_argument("--project-path", help="Project directory (default: current directory)")
    p_timer_stop = timer_sub.add_parser("stop", help="Stop the running timer")
    p_timer_stop.add_argument("--project-path", help="Project directory (default: current directory)")

    p_config = sub.add_parser("config", help="Configuration management")
    config_sub = p_config.add_subparsers(dest="config_cmd")

    p_config_init = config_sub.add_parser("init", help="Write a config file with default values")
    p_config_init.add_argument("--project", action="store_true", help="Create project config instead of user config")
    p_config_init.add_argument("--force", action="store_true", help="Overwrite existing config")

    p_config_show = config_sub.add_parser("show", help="Show resolved configuration")
    p_config_show.add_argument("--project-path", help="Project directory for config resolution")
    p_config_show.add_argument("--json", dest="as_json", action="store_true", help="Output as JSON")
    p_config_show.add_argument("--sources", action="store_true", help="Show config file sources")

    p_config_validate = config_sub.add_parser("validate", help="Validate configuration files")
    p_config_validate.add_argument("--project-path", help="Project directory for config resolution")

    args = ap.parse_args(argv)

    if not args.cmd:
        ap.print_help()
        sys.exit(0)

    if args.cmd == "start":
        from .orchestrator import StartTask
        from .progress import ConsoleProgressSink
        from .services import CommandShare

        project_path = _project_path(args)
        config = _load(project_path, _start_overrides(args))
        share = CommandShare(config.mob.share_command) if config.mob.share_command else None

        task = StartTask(
            config.mob,
            project_path,
            sink=ConsoleProgressSink(show_progress=args.progress),
            timer=_timer_for(config),
            share=share,
        )
        try:
            result = task.run()
        except KeyboardInterrupt:
            print("❌ Interrupted", file=sys.stderr)
            sys.exit(130)
        sys.exit(0 if result.success else 1)

    if args.cmd == "status":
        from .classifier import classify_snapshot
        from .errors import MobSessionError
        from .repository import inspect, resolve_repository, status_line

        project_path = _project_path(args)
        config = _load(project_path)
        try:
            repo = resolve_repository(project_path)
            snapshot = inspect(repo, config.mob)
            line = status_line(repo, config.mob)
        except MobSessionError as e:
            print(f"❌ {e}", file=sys.stderr)
            sys.exit(1)

        wip, remote = config.mob.wip_branch, config.mob.remote_name
        print(line)
        print(f"- WIP branch {wip} local: {'yes' if snapshot.has_local_wip else 'no'}")
        print(f"- WIP branch {remote}/{wip}: {'yes' if snapshot.has_remote_wip else 'no'}")
        print(f"- Mob programming: {'yes' if snapshot.is_mob_programming else 'no'}")
        print(f"- Next start: {classify_snapshot(snapshot).value.replace('_', ' ')}")
        print("  (remote refs as of the last fetch)")
        sys.exit(0)

    if args.cmd == "timer":
        config = _load(_project_path(args))
        timer = _timer_for(config)

        if args.timer_cmd == "stop":
            if timer.stop():
                print("✅ Timer stopped.")
            else:
                print("No timer running.")
            sys.exit(0)

        remaining = timer.remaining()
        if remaining is None:
            print("No timer running.")
        else:
            print(f"Timer: {_format_remaining(remaining)} remaining")
        sys.exit(0)

    if args.cmd == "config":
        import json as json_module

        if not args.config_cmd:
            print("Usage: mob config {init|show|validate}")
            sys.exit(0)

        if args.config_cmd == "init":
            import tomlkit

            from .config_loader import CONFIG_FILENAME, ensure_config_dir
            from .config_schema import MobSessionConfig

            if args.project:
                config_dir = ensure_config_dir(user=False, project_path=Path.cwd())
                location = "project"
            else:
                config_dir = ensure_config_dir(user=True)
                location = "user"
            target_path = config_dir / CONFIG_FILENAME

            if target_path.exists() and not args.force:
                print(f"❌ Config already exists: {target_path}", file=sys.stderr)
                print("Use --force to overwrite.", file=sys.stderr)
                sys.exit(1)

            doc = _config_document(MobSessionConfig.default(), "mob session configuration")
            target_path.write_text(tomlkit.dumps(doc), encoding="utf-8")
            print(f"✅ Created {location} config: {target_path}")
            sys.exit(0)

        if args.config_cmd == "show":
            import tomlkit

            from .config_loader import get_config_paths

            project_path = _project_path(args)

            if args.sources:
                paths = get_config_paths(project_path)
                print("Config sources (in priority order):")
                print()
                for name, path in paths.items():
                    if path and path.exists():
                        print(f"  ✓ {name}: {path}")
                    elif path:
                        print(f"  ✗ {name}: {path} (not found)")
                    else:
                        print(f"  - {name}: (not applicable)")
                print()
                print("Environment variables override all file configs.")
                sys.exit(0)

            config = _load(project_path)
            if args.as_json:
                print(json_module.dumps(config.model_dump(), indent=2))
            else:
                print(tomlkit.dumps(_config_document(config, "mob session configuration (resolved)")))
            sys.exit(0)

        if args.config_cmd == "validate":
            import warnings

            from .config_loader import ConfigError, get_config_paths, load_config

            project_path = _project_path(args)
            paths = get_config_paths(project_path)

            found_any = False
            for name, path in paths.items():
                if path and path.exists():
                    found_any = True
                    print(f"  ✓ Found: {path}")
            if not found_any:
                print("  ⚠ No config files found. Using defaults.")

            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always")
                try:
                    config = load_config(project_path)
                except ConfigError as e:
                    print(f"❌ {e}", file=sys.stderr)
                    sys.exit(1)
            for warning in caught:
                print(f"  ⚠ {warning.message}")

            valid, reason = config.mob.validate_for_start()
            if not valid:
                print(f"❌ Invalid mob settings: {reason}", file=sys.stderr)
                sys.exit(1)
            print("✅ Configuration is valid.")
            sys.exit(0)

    ap.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
