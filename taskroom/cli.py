from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import yaml

from . import __version__
from .config import TaskroomConfig, get_token, load_config
from .events import TaskCreatedEvent, TaskDeletedEvent, TaskUpdatedEvent, UserJoinedEvent, UserLeftEvent
from .models import Task, TaskValidationError
from .notifications import describe_user
from .services.api_client import ApiError
from .services.session_coordinator import SessionCoordinator


def eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(args: argparse.Namespace) -> TaskroomConfig:
    return load_config(Path(args.config) if args.config else None)


def _require_token(args: argparse.Namespace) -> Optional[str]:
    token = get_token(args.token)
    if not token:
        eprint("Error: no token given (use --token or set TASKROOM_TOKEN)")
    return token


def format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    due = f"  (due {task.due_date.isoformat()})" if task.due_date else ""
    return f"[{mark}] {task.id:>5}  {task.title}{due}"


# =============================================================================
# watch
# =============================================================================


def _print_event(line: str) -> None:
    print(line, flush=True)


def _register_printers(session: SessionCoordinator) -> None:
    def created(event: TaskCreatedEvent) -> None:
        _print_event(f"+ {format_task(event.task)}  by {describe_user(event.created_by.username)}")

    def updated(event: TaskUpdatedEvent) -> None:
        _print_event(f"~ {format_task(event.task)}  by {describe_user(event.updated_by.username)}")

    def deleted(event: TaskDeletedEvent) -> None:
        _print_event(
            f"- [{event.task_id}] {event.task_title}  by {describe_user(event.deleted_by.username)}"
        )

    def joined(event: UserJoinedEvent) -> None:
        _print_event(f"> {describe_user(event.user.username)} joined")

    def left(event: UserLeftEvent) -> None:
        _print_event(f"< {describe_user(event.user.username)} left")

    session.on_task_created(created)
    session.on_task_updated(updated)
    session.on_task_deleted(deleted)
    session.on_user_joined(joined)
    session.on_user_left(left)


async def _watch(config: TaskroomConfig, token: str, project_id: int) -> int:
    async with SessionCoordinator(config) as session:
        _register_printers(session)

        if not await session.set_token(token):
            eprint(f"Error: could not connect: {session.last_error or 'unknown error'}")
            return 1

        try:
            project = await session.load_project(project_id)
        except ApiError as e:
            eprint(f"Error: {e.message}")
            return 1

        print(f"Watching project {project.id} ({project.name}), {len(project.tasks)} tasks. Ctrl-C to stop.")
        for task in session.tasks:
            print(f"  {format_task(task)}")

        await session.join_project(project.id)
        await asyncio.Event().wait()
    return 0


def command_watch(args: argparse.Namespace) -> int:
    """Print push events of a project room until interrupted."""
    token = _require_token(args)
    if not token:
        return 2
    try:
        config = _load_config(args)
    except FileNotFoundError as e:
        eprint(str(e))
        return 2
    except ValueError as e:
        eprint(f"Error: {e}")
        return 1

    try:
        return asyncio.run(_watch(config, token, args.project))
    except KeyboardInterrupt:
        print("Stopped")
        return 0


# =============================================================================
# serve
# =============================================================================


def command_serve(args: argparse.Namespace) -> int:
    """Run the status API for one session."""
    import uvicorn

    from status_server.api import create_app

    token = _require_token(args)
    if not token:
        return 2
    try:
        config = _load_config(args)
    except FileNotFoundError as e:
        eprint(str(e))
        return 2
    except ValueError as e:
        eprint(f"Error: {e}")
        return 1

    app = create_app(SessionCoordinator(config), token=token, project_id=args.project)
    print(f"Serving status API on http://{args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_level="info" if args.verbose else "warning")
    return 0


# =============================================================================
# tasks
# =============================================================================


async def _tasks(args: argparse.Namespace, config: TaskroomConfig, token: str) -> int:
    async with SessionCoordinator(config) as session:
        session.api.set_token(token)

        if args.tasks_cmd == "list":
            await session.load_project(args.project)
            if args.view == "incomplete":
                tasks = session.tasks.incomplete
            elif args.view == "completed":
                tasks = session.tasks.completed
            else:
                tasks = session.tasks.tasks
            for task in tasks:
                print(format_task(task))
            stats = session.tasks.stats()
            print(f"{stats.completed}/{stats.total} completed ({stats.completion_rate}%)")
            return 0

        if args.tasks_cmd == "add":
            task = await session.create_task(
                args.title, args.description, args.due, project_id=args.project
            )
            print(f"✓ Created {format_task(task)}")
            return 0

        if args.tasks_cmd == "toggle":
            session.tasks.replace_all([await session.api.get_task(args.task_id)])
            task = await session.toggle_task(args.task_id)
            print(f"✓ {format_task(task)}")
            return 0

        if args.tasks_cmd == "delete":
            await session.delete_task(args.task_id)
            print(f"✓ Deleted task {args.task_id}")
            return 0

    eprint(f"Unknown tasks command: {args.tasks_cmd}")
    return 2


def command_tasks(args: argparse.Namespace) -> int:
    """List and mutate tasks through the REST API."""
    token = _require_token(args)
    if not token:
        return 2
    try:
        config = _load_config(args)
    except FileNotFoundError as e:
        eprint(str(e))
        return 2
    except ValueError as e:
        eprint(f"Error: {e}")
        return 1

    try:
        return asyncio.run(_tasks(args, config, token))
    except TaskValidationError as e:
        for field_name, message in e.errors.items():
            eprint(f"{field_name}: {message}")
        return 1
    except ApiError as e:
        eprint(f"Error: {e.message}")
        return 1


# =============================================================================
# config
# =============================================================================


def command_config(args: argparse.Namespace) -> int:
    """Show or validate the effective configuration."""
    try:
        config = _load_config(args)
    except FileNotFoundError as e:
        eprint(str(e))
        return 2
    except ValueError as e:
        eprint(str(e))
        return 1

    source = str(config.path) if config.path else "defaults"

    if args.config_cmd == "validate":
        print(f"✓ Configuration valid ({source})")
        return 0

    data: Any = config.to_dict()
    if args.json:
        print(json.dumps(data, indent=2))
    else:
        print(f"# {source}")
        print(yaml.safe_dump(data, sort_keys=False).rstrip())
    return 0


# =============================================================================
# Parser
# =============================================================================


def _positive_id(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid id: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"id must be positive: {value!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="taskroom", description="Taskroom real-time project client")
    p.add_argument("-V", "--version", action="version", version=f"taskroom {__version__}")
    p.add_argument("-c", "--config", default=None, help="Path to .taskroom/taskroom.yml")
    p.add_argument("-t", "--token", default=None, help="Credential token (default: $TASKROOM_TOKEN)")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("watch", help="Join a project room and print its events")
    sp.add_argument("-p", "--project", type=_positive_id, required=True, help="Project id")
    sp.set_defaults(func=command_watch)

    sp = sub.add_parser("serve", help="Run the status API for a session")
    sp.add_argument("-p", "--project", type=_positive_id, default=None, help="Project to load and join")
    sp.add_argument("--host", default="127.0.0.1")
    sp.add_argument("--port", type=int, default=8765)
    sp.set_defaults(func=command_serve)

    sp = sub.add_parser("tasks", help="List and edit tasks")
    tasks_sub = sp.add_subparsers(dest="tasks_cmd", required=True)

    tp = tasks_sub.add_parser("list", help="List a project's tasks")
    tp.add_argument("-p", "--project", type=_positive_id, required=True)
    tp.add_argument("--view", default="all", choices=["all", "incomplete", "completed"])
    tp.set_defaults(func=command_tasks)

    tp = tasks_sub.add_parser("add", help="Create a task")
    tp.add_argument("-p", "--project", type=_positive_id, required=True)
    tp.add_argument("--title", required=True)
    tp.add_argument("--description", required=True)
    tp.add_argument("--due", required=True, help="Due date (YYYY-MM-DD)")
    tp.set_defaults(func=command_tasks)

    tp = tasks_sub.add_parser("toggle", help="Flip a task's completion")
    tp.add_argument("task_id", type=_positive_id)
    tp.set_defaults(func=command_tasks)

    tp = tasks_sub.add_parser("delete", help="Delete a task")
    tp.add_argument("task_id", type=_positive_id)
    tp.set_defaults(func=command_tasks)

    sp = sub.add_parser("config", help="Show or validate configuration")
    config_sub = sp.add_subparsers(dest="config_cmd", required=True)

    cp = config_sub.add_parser("show", help="Print the effective configuration")
    cp.add_argument("--json", action="store_true")
    cp.set_defaults(func=command_config)

    cp = config_sub.add_parser("validate", help="Validate taskroom.yml against the schema")
    cp.set_defaults(func=command_config)

    return p


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    rc = int(args.func(args))
    raise SystemExit(rc)
