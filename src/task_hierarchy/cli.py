from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.tree import Tree

from .engine.model import Task, TaskOrigin
from .engine.tree import TaskTree
from .server import create_app
from .service import TaskService


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _service(args: argparse.Namespace) -> TaskService:
    return TaskService.for_project(
        _resolve_project_dir(args.project_dir),
        user_id=args.user,
        white_label_id=args.white_label,
    )


def _emit(result: dict[str, Any]) -> int:
    sys.stdout.write(json.dumps(result, indent=2) + '\n')
    return 0 if result.get('success', True) else 1


def _split(raw: Optional[str]) -> Optional[list[str]]:
    if raw is None:
        return None
    return [item.strip() for item in raw.split(',') if item.strip()]


def _task_create(args: argparse.Namespace) -> int:
    fields: dict[str, Any] = {
        'title': args.title,
        'description': args.description,
        'purpose': args.purpose,
        'parent_task_id': args.parent,
        'origin': TaskOrigin.TEMPLATE.value if args.template else None,
    }
    if args.duration is not None:
        fields['default_duration'] = args.duration
        fields['duration_days'] = args.duration
    if args.start_date:
        fields['start_date'] = args.start_date
    for name, raw in (('actions', args.actions), ('resources', args.resources)):
        values = _split(raw)
        if values is not None:
            fields[name] = values
    fields = {k: v for k, v in fields.items() if v is not None}
    return _emit(_service(args).create_task(fields, license_id=args.license, index=args.index))


def _task_list(args: argparse.Namespace) -> int:
    origin = TaskOrigin(args.origin) if args.origin else None
    tasks = _service(args).list_tasks(origin, args.parent)
    sys.stdout.write(json.dumps({'tasks': [task.to_dict() for task in tasks]}, indent=2) + '\n')
    return 0


def _label(task: Task) -> str:
    dates = ''
    if task.start_date and task.due_date:
        dates = f' [dim]{task.start_date[:10]} → {task.due_date[:10]}[/dim]'
    done = ' [green]✓[/green]' if task.is_complete else ''
    return f'[bold]{task.title}[/bold] ({task.duration_days}d){dates} [dim]{task.id}[/dim]{done}'


def render_tree(tree: TaskTree, root_ids: list[str]) -> Tree:
    """Build a rich tree for the given roots (iteratively, children in order)."""
    top = Tree('[bold]tasks[/bold]')
    stack: list[tuple[Tree, str]] = [(top, rid) for rid in reversed(root_ids)]
    seen: set[str] = set()
    while stack:
        branch, task_id = stack.pop()
        task = tree.get(task_id)
        if task is None or task_id in seen:
            continue
        seen.add(task_id)
        node = branch.add(_label(task))
        for child_id in reversed(tree.child_ids(task_id)):
            stack.append((node, child_id))
    return top


def _task_tree(args: argparse.Namespace) -> int:
    tree = _service(args).tree
    if args.task_id:
        if args.task_id not in tree:
            sys.stderr.write(f'Task {args.task_id} not found\n')
            return 1
        root_ids = [args.task_id]
    else:
        origin = TaskOrigin(args.origin) if args.origin else None
        root_ids = [t.id for t in tree.roots(origin)]
    Console().print(render_tree(tree, root_ids))
    return 0


def _task_update(args: argparse.Namespace) -> int:
    changes: dict[str, Any] = {}
    for name in ('title', 'description', 'purpose'):
        value = getattr(args, name)
        if value is not None:
            changes[name] = value
    if args.duration is not None:
        changes['duration_days'] = args.duration
    if args.default_duration is not None:
        changes['default_duration'] = args.default_duration
    if args.complete is not None:
        changes['is_complete'] = args.complete
    for name, raw in (('actions', args.actions), ('resources', args.resources)):
        values = _split(raw)
        if values is not None:
            changes[name] = values
    return _emit(_service(args).update_task(args.task_id, changes))


def _task_delete(args: argparse.Namespace) -> int:
    return _emit(_service(args).delete_task(args.task_id))


def _task_move(args: argparse.Namespace) -> int:
    return _emit(_service(args).move_task(args.task_id, args.parent, args.index))


def _task_reschedule(args: argparse.Namespace) -> int:
    return _emit(_service(args).set_start_date(args.task_id, args.start_date))


def _template_clone(args: argparse.Namespace) -> int:
    result = _service(args).clone_template(
        args.template_id,
        args.start_date,
        title=args.title,
        license_id=args.license,
    )
    return _emit(result)


def _check(args: argparse.Namespace) -> int:
    problems = _service(args).check()
    sys.stdout.write(json.dumps({'ok': not problems, 'problems': problems}, indent=2) + '\n')
    return 0 if not problems else 1


def _server(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'task-hierarchy[server]'\n")
        return 1

    app = create_app(
        project_dir=_resolve_project_dir(args.project_dir),
        user_id=args.user,
        white_label_id=args.white_label,
    )
    uvicorn.run(app, host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Task hierarchy CLI: templates, projects and sequential schedules')
    parser.add_argument('--project-dir', default=None, help='Target project directory (default: current working directory)')
    parser.add_argument('--user', default=os.environ.get('TASK_HIERARCHY_USER', 'local'), help='Identity stamped on created tasks')
    parser.add_argument('--white-label', default=None, help='Organization scope')
    subparsers = parser.add_subparsers(dest='command', required=True)

    server = subparsers.add_parser('server', help='Start the web server')
    server.add_argument('--host', default='127.0.0.1')
    server.add_argument('--port', default=8000, type=int)
    server.add_argument('--reload', action='store_true')
    server.set_defaults(func=_server)

    task = subparsers.add_parser('task', help='Manage tasks')
    task_sub = task.add_subparsers(dest='task_cmd', required=True)
    tcreate = task_sub.add_parser('create', help='Create a task')
    tcreate.add_argument('title')
    tcreate.add_argument('--parent', default=None, help='Parent task ID (omit for a root)')
    tcreate.add_argument('--template', action='store_true', help='Create a template root')
    tcreate.add_argument('--description', default='')
    tcreate.add_argument('--purpose', default='')
    tcreate.add_argument('--actions', default=None, help='Comma-separated actions')
    tcreate.add_argument('--resources', default=None, help='Comma-separated resources')
    tcreate.add_argument('--duration', default=None, type=int)
    tcreate.add_argument('--start-date', default=None)
    tcreate.add_argument('--index', default=None, type=int, help='Insert at this sibling index')
    tcreate.add_argument('--license', default=None)
    tcreate.set_defaults(func=_task_create)
    tlist = task_sub.add_parser('list', help='List tasks')
    tlist.add_argument('--origin', default=None, choices=[o.value for o in TaskOrigin])
    tlist.add_argument('--parent', default=None)
    tlist.set_defaults(func=_task_list)
    ttree = task_sub.add_parser('tree', help='Show the hierarchy')
    ttree.add_argument('task_id', nargs='?', default=None)
    ttree.add_argument('--origin', default=None, choices=[o.value for o in TaskOrigin])
    ttree.set_defaults(func=_task_tree)
    tupdate = task_sub.add_parser('update', help='Edit a task')
    tupdate.add_argument('task_id')
    tupdate.add_argument('--title', default=None)
    tupdate.add_argument('--description', default=None)
    tupdate.add_argument('--purpose', default=None)
    tupdate.add_argument('--actions', default=None)
    tupdate.add_argument('--resources', default=None)
    tupdate.add_argument('--duration', default=None, type=int)
    tupdate.add_argument('--default-duration', default=None, type=int)
    tupdate.add_argument('--complete', dest='complete', action='store_true', default=None)
    tupdate.add_argument('--incomplete', dest='complete', action='store_false')
    tupdate.set_defaults(func=_task_update, complete=None)
    tdelete = task_sub.add_parser('delete', help='Delete a task and its subtree')
    tdelete.add_argument('task_id')
    tdelete.set_defaults(func=_task_delete)
    tmove = task_sub.add_parser('move', help='Move a task to a new parent/index')
    tmove.add_argument('task_id')
    tmove.add_argument('--parent', default=None, help='New parent ID (omit for root level)')
    tmove.add_argument('--index', default=None, type=int)
    tmove.set_defaults(func=_task_move)
    treschedule = task_sub.add_parser('reschedule', help='Re-anchor a project at a new start date')
    treschedule.add_argument('task_id')
    treschedule.add_argument('start_date')
    treschedule.set_defaults(func=_task_reschedule)

    template = subparsers.add_parser('template', help='Work with templates')
    template_sub = template.add_subparsers(dest='template_cmd', required=True)
    tclone = template_sub.add_parser('clone', help='Create a project from a template')
    tclone.add_argument('template_id')
    tclone.add_argument('--start-date', default=None)
    tclone.add_argument('--title', default=None)
    tclone.add_argument('--license', default=None)
    tclone.set_defaults(func=_template_clone)

    check = subparsers.add_parser('check', help='Validate the stored hierarchy')
    check.set_defaults(func=_check)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, 'func', None)
    if handler is None:
        parser.print_help()
        return 1
    return int(handler(args) or 0)


if __name__ == '__main__':
    raise SystemExit(main())
