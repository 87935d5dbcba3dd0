"""Command line interface driving multi-branch projects on disk."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .errors import ErrorCode, MultiBranchError
from .models import UnitConfig
from .project import MultiBranchProject
from .runtime import RuntimeDefaults, configure_logging, get_runtime_defaults, parse_csv_values
from .sources import BranchSource, GitBranchSource, StaticBranchSource


def _key_value_pairs(values: list[str]) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise MultiBranchError(
                ErrorCode.INVALID_INPUT,
                f"Expected KEY=VALUE, got '{item}'",
                "Pass parameters as --param NAME=DEFAULT.",
            )
        pairs[key.strip()] = value
    return pairs


def _print_payload(payload: dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2))
        return

    status = str(payload.get("status", "unknown")).upper()
    message = payload.get("message", "")
    print(f"[{status}] {message}")

    if payload.get("status") == "error":
        error_code = payload.get("error_code", "")
        suggestion = payload.get("suggestion", "")
        if error_code:
            print(f"error_code: {error_code}")
        if suggestion:
            print(f"suggestion: {suggestion}")
        return

    for key in (
        "project_name",
        "color",
        "sync_cron_spec",
        "next_sync",
        "scm_source",
        "outcome",
    ):
        if key in payload and payload[key] not in ("", None):
            print(f"{key}: {payload[key]}")

    for key in ("created", "deleted", "synced", "builds_scheduled"):
        if payload.get(key):
            print(f"{key}: {', '.join(payload[key])}")

    for failure in payload.get("failures", []):
        print(
            f"! {failure.get('stage')} {failure.get('branch') or '<all>'}: "
            f"{failure.get('message')}"
        )

    for report in payload.get("health", []):
        print(f"health {report.get('score')}%: {report.get('description')}")

    for branch in payload.get("branches", []):
        print(
            f"- {branch.get('name')} [{branch.get('color')}] "
            f"builds={branch.get('builds')} last={branch.get('last_result') or '-'}"
        )


def _error_payload(exc: Exception) -> dict[str, Any]:
    if isinstance(exc, MultiBranchError):
        return exc.to_payload()
    if isinstance(exc, ValidationError):
        return {
            "status": "error",
            "error_code": ErrorCode.INVALID_INPUT.value,
            "message": "Input validation failed",
            "suggestion": "Check command arguments and constraints.",
            "details": {"errors": exc.errors(include_context=False, include_input=False)},
        }
    return {
        "status": "error",
        "error_code": ErrorCode.INTERNAL_ERROR.value,
        "message": str(exc),
        "suggestion": "Retry with --json for diagnostics and inspect logs.",
        "details": {},
    }


def _outcome_payload(outcome: Any) -> dict[str, Any]:
    data = outcome.model_dump(mode="json")
    status = "error" if outcome.status == "aborted" else "success"
    return {
        "status": status,
        "message": outcome.message,
        "error_code": ErrorCode.DISCOVERY_FAILED.value if status == "error" else "",
        "outcome": outcome.status,
        **{key: data[key] for key in ("created", "deleted", "synced", "builds_scheduled", "failures")},
    }


def _source_from_args(args: argparse.Namespace, runtime: RuntimeDefaults) -> BranchSource | None:
    if getattr(args, "git_url", ""):
        return GitBranchSource(args.git_url, runtime.discovery_timeout_seconds)
    if getattr(args, "branches", None) is not None:
        return StaticBranchSource(
            list(parse_csv_values(args.branches)),
            repository_url=args.repository_url,
        )
    return None


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-d", "--directory", default=".", help="Project directory")
    parser.add_argument("--json", action="store_true", help="Output machine-readable JSON")


def _add_source_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--branches", default=None, help="Comma-separated static branch list")
    group.add_argument("--git-url", default="", help="Git repository to discover branches from")
    parser.add_argument("--repository-url", default="", help="Repository URL for static branches")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multibranch-cli",
        description="Keep per-branch build configurations in sync with a template",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init = subparsers.add_parser("init", help="Create a multi-branch project")
    _add_common(init)
    init.add_argument("--name", required=True, help="Project name")
    init.add_argument("--description", default="", help="Project description")
    init.add_argument("--sync-spec", default="", help="Cron spec for branch sync")
    _add_source_options(init)

    sync = subparsers.add_parser("sync", help="Run one branch sync pass")
    _add_common(sync)

    status = subparsers.add_parser("status", help="Show aggregated status and health")
    _add_common(status)

    list_cmd = subparsers.add_parser("list", help="List branch units")
    _add_common(list_cmd)
    list_cmd.add_argument("--view", default="", help="Only branches shown by this view")

    schedule = subparsers.add_parser("schedule", help="Show or replace the sync schedule")
    _add_common(schedule)
    schedule.add_argument("spec", nargs="?", help="New cron spec")

    scm = subparsers.add_parser("scm", help="Replace the branch source and sync")
    _add_common(scm)
    _add_source_options(scm)
    scm.add_argument("--none", action="store_true", help="Remove the branch source")

    for name, help_text in (("disable", "Disable the project"), ("enable", "Enable the project")):
        toggle = subparsers.add_parser(name, help=help_text)
        _add_common(toggle)

    template = subparsers.add_parser("template", help="Show or update the template config")
    _add_common(template)
    template.add_argument("--description", default=None, help="Template description")
    template.add_argument("--param", action="append", default=[], help="NAME=DEFAULT parameter")
    template.add_argument("--step", action="append", default=[], help="Build step command")
    template.add_argument("--publisher", action="append", default=[], help="Publisher")
    template.add_argument("--node", default=None, help="Assigned node label")
    template.add_argument("--quiet-period", type=int, default=None, help="Quiet period seconds")
    template.add_argument("--replace", action="store_true", help="Replace instead of merge lists")

    delete = subparsers.add_parser("delete", help="Delete the project and all branch units")
    _add_common(delete)
    delete.add_argument("--force", action="store_true", help="Required to delete")

    return parser


def _load(directory: str, runtime: RuntimeDefaults) -> MultiBranchProject:
    return MultiBranchProject.load(
        Path(directory),
        default_sync_spec=runtime.default_sync_spec,
        discovery_timeout_seconds=runtime.discovery_timeout_seconds,
        run_timers=False,
    )


def _update_template(project: MultiBranchProject, args: argparse.Namespace) -> UnitConfig:
    current = project.template.config
    update: dict[str, Any] = {}
    if args.description is not None:
        update["description"] = args.description
    if args.param:
        params = {} if args.replace else dict(current.parameters)
        params.update(_key_value_pairs(args.param))
        update["parameters"] = params
    if args.step:
        update["build_steps"] = list(args.step) if args.replace else [*current.build_steps, *args.step]
    if args.publisher:
        update["publishers"] = (
            list(args.publisher) if args.replace else [*current.publishers, *args.publisher]
        )
    if args.node is not None:
        update["assigned_node"] = args.node or None
    if args.quiet_period is not None:
        update["quiet_period"] = args.quiet_period
    config = UnitConfig.model_validate({**current.model_dump(), **update})
    if update:
        project.update_template(config)
    return config


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    as_json = bool(getattr(args, "json", False))

    try:
        runtime = get_runtime_defaults()
        configure_logging(runtime.log_level)

        if args.command == "init":
            project = MultiBranchProject.create(
                Path(args.directory),
                args.name,
                scm_source=_source_from_args(args, runtime),
                sync_cron_spec=args.sync_spec or runtime.default_sync_spec,
                description=args.description,
                default_sync_spec=runtime.default_sync_spec,
                discovery_timeout_seconds=runtime.discovery_timeout_seconds,
                run_timers=False,
            )
            response = {
                "status": "success",
                "message": f"Project '{project.name}' created in {project.root_dir}",
                **project.status(),
            }
        elif args.command == "sync":
            response = _outcome_payload(_load(args.directory, runtime).sync_branches())
        elif args.command == "status":
            response = {
                "status": "success",
                "message": "Status retrieved",
                **_load(args.directory, runtime).status(),
            }
        elif args.command == "list":
            project = _load(args.directory, runtime)
            units = project.branches
            if args.view:
                view = project.views.get_view(args.view)
                if view is None:
                    raise MultiBranchError(
                        ErrorCode.VIEW_NOT_FOUND,
                        f"View '{args.view}' not found",
                        "Check the view name.",
                    )
                units = view.filter(units)
            response = {
                "status": "success",
                "message": "Branches listed",
                "count": len(units),
                "branches": [unit.summary() for unit in units],
            }
        elif args.command == "schedule":
            project = _load(args.directory, runtime)
            if args.spec:
                project.restart_schedule(args.spec)
                message = "Schedule updated"
            else:
                message = "Schedule retrieved"
            response = {
                "status": "success",
                "message": message,
                "sync_cron_spec": project.sync_cron_spec,
            }
        elif args.command == "scm":
            project = _load(args.directory, runtime)
            source = None if args.none else _source_from_args(args, runtime)
            if source is None and not args.none:
                raise MultiBranchError(
                    ErrorCode.INVALID_INPUT,
                    "scm requires --branches, --git-url or --none",
                    "Pick exactly one branch source option.",
                )
            response = _outcome_payload(project.set_scm_source(source))
        elif args.command in {"disable", "enable"}:
            project = _load(args.directory, runtime)
            project.make_disabled(args.command == "disable")
            response = {
                "status": "success",
                "message": f"Project '{project.name}' {args.command}d",
                "color": project.icon_color().icon_name,
            }
        elif args.command == "template":
            project = _load(args.directory, runtime)
            before = project.template.config.model_dump()
            config = _update_template(project, args)
            response = {
                "status": "success",
                "message": "Template retrieved" if config.model_dump() == before else "Template updated",
                "template": config.model_dump(mode="json"),
            }
        else:
            if not args.force:
                raise MultiBranchError(
                    ErrorCode.INVALID_INPUT,
                    "Project was not deleted",
                    "Pass --force to delete the project and all branch units.",
                )
            project = _load(args.directory, runtime)
            project.delete()
            response = {"status": "success", "message": f"Project '{project.name}' deleted"}

        _print_payload(response, as_json=as_json)
        return 0 if response.get("status") == "success" else 1
    except Exception as exc:  # noqa: BLE001
        payload = _error_payload(exc)
        _print_payload(payload, as_json=as_json)
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
