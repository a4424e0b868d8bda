"""Command-line interface for MCP Doctor.

Every subcommand builds a :class:`DoctorEngine`, runs one verb and renders
the result either through :class:`ConsoleRenderer` or, with ``--json``, as
a JSON document on stdout.  The process exit code is the result's
``exit_code`` (``0`` healthy / succeeded, ``1`` otherwise).

Entry point
-----------
``main()`` is registered as a console script in ``pyproject.toml``::

    [project.scripts]
    mcp-doctor = "mcp_doctor.cli:main"

Usage examples::

    mcp-doctor status
    mcp-doctor diagnose --client cursor --json
    mcp-doctor repair --dry-run
    mcp-doctor repair --client claude_desktop --auto-confirm
    mcp-doctor backups list
    mcp-doctor backups restore 3f2a9c1e
    mcp-doctor isolate filesystem
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from mcp_doctor.domain.enums import ClientKind
from mcp_doctor.domain.exceptions import DoctorError

logger = logging.getLogger(__name__)

_CLIENT_CHOICES = [k.value for k in ClientKind]


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="mcp-doctor",
        description="Diagnose and repair the MCP servers configured in desktop AI clients.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        default=False,
        help="Show version and exit.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON settings file.",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Directory for backups and repair history. (default: ~/.mcp-doctor)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print machine-readable JSON instead of tables.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Log debug output to stderr.",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write a rotating debug log to this file.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available subcommands")

    # -- status ------------------------------------------------------------
    subparsers.add_parser(
        "status",
        help="Show overall and per-client health.",
        description="Run one health check over every detected client.",
    )

    # -- diagnose ----------------------------------------------------------
    diagnose_parser = subparsers.add_parser(
        "diagnose",
        help="Classify server errors and isolate root causes.",
        description="Read server logs, probe silent servers and report every error found.",
    )
    diagnose_parser.add_argument(
        "--client",
        type=str,
        default=None,
        choices=_CLIENT_CHOICES,
        help="Only diagnose this client kind.",
    )

    # -- repair ------------------------------------------------------------
    repair_parser = subparsers.add_parser(
        "repair",
        help="Back up, fix and verify client configurations.",
        description=(
            "Plan fixes for every diagnosed error and apply them. A failed "
            "verification restores the configuration from its backup."
        ),
    )
    repair_parser.add_argument(
        "--client",
        type=str,
        default=None,
        choices=_CLIENT_CHOICES,
        help="Only repair this client kind.",
    )
    repair_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Show what would change without touching any file.",
    )
    repair_parser.add_argument(
        "--auto-confirm",
        action="store_true",
        default=False,
        help="Apply fixes that would otherwise need confirmation.",
    )
    repair_parser.add_argument(
        "--wait",
        action="store_true",
        default=False,
        help="Wait for a running repair of the same client instead of failing.",
    )
    repair_parser.add_argument(
        "--no-advisor",
        action="store_true",
        default=False,
        help="Do not consult the AI advisor even if one is configured.",
    )

    # -- backups -----------------------------------------------------------
    backups_parser = subparsers.add_parser(
        "backups",
        help="List, restore or delete configuration backups.",
    )
    backup_actions = backups_parser.add_subparsers(dest="action")
    list_parser = backup_actions.add_parser("list", help="List backups, newest first.")
    list_parser.add_argument("--client", type=str, default=None, choices=_CLIENT_CHOICES)
    restore_parser = backup_actions.add_parser("restore", help="Restore a backup by id.")
    restore_parser.add_argument("backup_id", type=str)
    delete_parser = backup_actions.add_parser("delete", help="Delete a backup by id.")
    delete_parser.add_argument("backup_id", type=str)

    # -- isolate -----------------------------------------------------------
    isolate_parser = subparsers.add_parser(
        "isolate",
        help="Run the root-cause decision tree for one server.",
    )
    isolate_parser.add_argument("server", type=str, help="Server name from mcpServers.")
    isolate_parser.add_argument("--client", type=str, default=None, choices=_CLIENT_CHOICES)

    # -- history -----------------------------------------------------------
    history_parser = subparsers.add_parser("history", help="Show recent repair attempts.")
    history_parser.add_argument("--client", type=str, default=None, choices=_CLIENT_CHOICES)
    history_parser.add_argument("--limit", type=int, default=20)

    # -- self-test ---------------------------------------------------------
    subparsers.add_parser("self-test", help="Check that MCP Doctor works on this machine.")

    return parser


# =========================================================================
# Helpers
# =========================================================================

def _make_engine(args: argparse.Namespace) -> Any:
    from mcp_doctor.infrastructure.config import load_config_file
    from mcp_doctor.services.engine import DoctorEngine

    config = load_config_file(args.config)
    if args.data_dir:
        config = config.with_data_dir(args.data_dir)
    return DoctorEngine.create_default(config)


def _renderer() -> Any:
    from mcp_doctor.presentation.console import ConsoleRenderer

    return ConsoleRenderer()


def _client_kind(value: str | None) -> ClientKind | None:
    return ClientKind(value) if value else None


def _emit_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


# =========================================================================
# Subcommand handlers
# =========================================================================

def _cmd_status(args: argparse.Namespace) -> int:
    result = _make_engine(args).status()
    if args.json:
        _emit_json(result.to_dict())
    else:
        _renderer().print_status(result.status)
    return result.exit_code


def _cmd_diagnose(args: argparse.Namespace) -> int:
    result = _make_engine(args).diagnose(_client_kind(args.client))
    if args.json:
        _emit_json(result.to_dict())
    else:
        _renderer().print_diagnosis(result)
    return result.exit_code


def _cmd_repair(args: argparse.Namespace) -> int:
    engine = _make_engine(args)
    result = engine.repair(
        dry_run=args.dry_run,
        client_kind=_client_kind(args.client),
        auto_confirm=args.auto_confirm,
        use_advisor=not args.no_advisor,
        wait=args.wait,
    )
    if args.json:
        _emit_json(result.to_dict())
    else:
        _renderer().print_repair(result)
    return result.exit_code


def _cmd_backups(args: argparse.Namespace) -> int:
    from mcp_doctor.infrastructure.serialization import backup_record_to_dict

    engine = _make_engine(args)
    action = args.action or "list"

    if action == "list":
        kind = _client_kind(getattr(args, "client", None))
        records = engine.backups.all()
        if kind is not None:
            records = [r for r in records if r.client_kind is kind]
        records.sort(key=lambda r: r.created_at, reverse=True)
        if args.json:
            _emit_json({"backups": [backup_record_to_dict(r) for r in records]})
        else:
            _renderer().print_backups(records)
        return 0

    if action == "restore":
        engine.backups.restore(args.backup_id)
        message = f"Restored backup {args.backup_id}"
    else:
        engine.backups.delete(args.backup_id)
        message = f"Deleted backup {args.backup_id}"

    if args.json:
        _emit_json({"ok": True, "backup_id": args.backup_id, "action": action})
    else:
        print(message)
    return 0


def _cmd_isolate(args: argparse.Namespace) -> int:
    from mcp_doctor.domain.enums import ErrorKind
    from mcp_doctor.infrastructure.serialization import isolation_report_to_dict

    engine = _make_engine(args)
    candidates = [
        c for c in engine.clients(_client_kind(args.client)) if c.helper(args.server) is not None
    ]
    if not candidates:
        print(f"Error: no detected client configures server {args.server!r}", file=sys.stderr)
        return 1

    code = 0
    reports = {}
    for client in candidates:
        report = engine.isolate(client, args.server)
        reports[client.display_name] = report
        if report.result.error_kind is not ErrorKind.UNKNOWN:
            code = 1

    if args.json:
        _emit_json({
            "exit_code": code,
            "server": args.server,
            "clients": {name: isolation_report_to_dict(r) for name, r in reports.items()},
        })
    else:
        renderer = _renderer()
        for name, report in reports.items():
            renderer.line(f"[{name}]" if not renderer.uses_rich else f"[bold]{name}[/bold]")
            renderer.print_isolation(args.server, report)
    return code


def _cmd_history(args: argparse.Namespace) -> int:
    from mcp_doctor.infrastructure.serialization import history_entry_to_dict

    engine = _make_engine(args)
    entries = engine.history.query(client_kind=_client_kind(args.client), limit=args.limit)
    if args.json:
        _emit_json({"entries": [history_entry_to_dict(e) for e in entries]})
    else:
        _renderer().print_history(entries)
    return 0


def _cmd_self_test(args: argparse.Namespace) -> int:
    from mcp_doctor.infrastructure.serialization import self_test_to_dict

    result = _make_engine(args).self_test()
    if args.json:
        _emit_json(self_test_to_dict(result))
    else:
        _renderer().print_self_test(result)
    return 0 if result.all_passed else 1


# =========================================================================
# Entry point
# =========================================================================

def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Parameters
    ----------
    argv:
        Command-line arguments.  Defaults to ``sys.argv[1:]``.

    Returns
    -------
    int
        Process exit code.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from mcp_doctor import __version__
        print(f"mcp-doctor {__version__}")
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    from mcp_doctor.infrastructure.logging import configure_logging

    configure_logging(verbose=args.verbose, log_file=args.log_file)

    handlers: dict[str, Any] = {
        "status": _cmd_status,
        "diagnose": _cmd_diagnose,
        "repair": _cmd_repair,
        "backups": _cmd_backups,
        "isolate": _cmd_isolate,
        "history": _cmd_history,
        "self-test": _cmd_self_test,
    }

    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    except DoctorError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        logger.exception("Unhandled error in %s", args.command)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
