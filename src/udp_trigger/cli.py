"""Command-line interface for the UDP Trigger automation engine."""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console
from rich.table import Table

from . import __version__
from .automation import (
    AutomationEngine,
    AutomationError,
    AutomationRegistry,
    ButtonEvent,
    ExecutionResult,
    GestureEvent,
    PacketEvent,
    TriggerEvent,
)
from .automation.persistence import dump_automations, load_automations
from .core import EngineConfig, get_logger, setup_logging

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Returns:
        ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="udp-trigger",
        description="UDP Trigger - event driven automations for packets, buttons and schedules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List automations stored in automations.json
  udp-trigger --store automations.json list

  # Simulate an inbound packet
  udp-trigger --store automations.json packet "PING" --source 192.168.1.20 --port 4000

  # Listen for packets and fire schedules until interrupted
  udp-trigger -c config.yaml serve --port 5000
        """,
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s v{__version__}",
        help="Show program's version number and exit",
    )
    parser.add_argument("-c", "--config", help="Path to a YAML or JSON configuration file")
    parser.add_argument(
        "-s", "--store", help="Automation JSON file (overrides storage.automations_path)"
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("list", help="List automations")

    show_parser = subparsers.add_parser("show", help="Show one automation as JSON")
    show_parser.add_argument("automation_id")

    run_parser = subparsers.add_parser("run", help="Run an automation now")
    run_parser.add_argument("automation_id")

    packet_parser = subparsers.add_parser("packet", help="Deliver a simulated packet")
    packet_parser.add_argument("content", help="Packet payload text")
    packet_parser.add_argument("--source", default="127.0.0.1", help="Sender address")
    packet_parser.add_argument("--port", type=int, default=0, help="Sender port")

    button_parser = subparsers.add_parser("button", help="Deliver a button press")
    button_parser.add_argument("button_id", nargs="?", default="main")

    gesture_parser = subparsers.add_parser("gesture", help="Deliver a gesture")
    gesture_parser.add_argument("gesture_type")

    for name, help_text in (
        ("enable", "Enable an automation"),
        ("disable", "Disable an automation"),
        ("delete", "Delete an automation"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("automation_id")

    import_parser = subparsers.add_parser("import", help="Import automations from JSON/YAML")
    import_parser.add_argument("import_file")
    import_parser.add_argument(
        "--overwrite", action="store_true", help="Replace automations whose id already exists"
    )

    export_parser = subparsers.add_parser("export", help="Export automations to JSON/YAML")
    export_parser.add_argument("export_file")

    serve_parser = subparsers.add_parser("serve", help="Run the UDP listener and scheduler")
    serve_parser.add_argument("--host", help="Listener bind host")
    serve_parser.add_argument("-p", "--port", type=int, help="Listener bind port")

    return parser


# ----------------------------------------------------------------------
# Setup helpers
# ----------------------------------------------------------------------


def _load_config(args: argparse.Namespace) -> EngineConfig:
    config = EngineConfig.load(args.config)
    if args.store:
        config.storage.automations_path = args.store
    if args.debug:
        config.logging.level = "DEBUG"
    return config


def _build_engine(config: EngineConfig) -> AutomationEngine:
    engine = AutomationEngine.from_config(config)
    engine.load()
    return engine


def _render_results(console: Console, results: list[ExecutionResult], names: list[str]) -> bool:
    table = Table(title="Execution Results")
    table.add_column("Automation", style="cyan")
    table.add_column("Status")
    table.add_column("Actions", style="green")
    table.add_column("Message")
    for name, result in zip(names, results, strict=True):
        status = "[green]OK[/]" if result.success else "[red]FAILED[/]"
        table.add_row(name, status, str(result.actions_executed), result.message)
    console.print(table)
    return all(result.success for result in results)


def _read_document(path: Path) -> Any:
    with open(path, encoding="utf-8") as handle:
        if path.suffix.lower() in {".yaml", ".yml"}:
            return yaml.safe_load(handle)
        return json.load(handle)


# ----------------------------------------------------------------------
# Registry commands
# ----------------------------------------------------------------------


def cmd_list(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    automations = engine.registry.get_all()
    if not automations:
        console.print("[yellow]No automations configured.[/]")
        return 0

    table = Table(title="Automations")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Trigger", style="magenta")
    table.add_column("Status")
    table.add_column("Priority", justify="right")
    table.add_column("Actions", justify="right", style="green")
    table.add_column("Runs", justify="right")
    for automation in automations:
        status = "[green]Enabled[/]" if automation.enabled else "[red]Disabled[/]"
        table.add_row(
            automation.id,
            automation.name,
            automation.trigger_kind.value,
            status,
            str(automation.priority),
            str(len(automation.actions)),
            str(automation.execution_count),
        )
    console.print(table)
    return 0


def cmd_show(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    automation = engine.registry.get_by_id(args.automation_id)
    if automation is None:
        console.print(f"[red]Automation not found: {args.automation_id}[/]")
        return 1
    console.print_json(data=automation.model_dump(mode="json", by_alias=True))
    return 0


def cmd_enable(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    return _set_enabled(engine, args.automation_id, True, console)


def cmd_disable(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    return _set_enabled(engine, args.automation_id, False, console)


def _set_enabled(
    engine: AutomationEngine, automation_id: str, enabled: bool, console: Console
) -> int:
    if not engine.registry.toggle_enabled(automation_id, enabled):
        console.print(f"[red]Automation not found: {automation_id}[/]")
        return 1
    state = "enabled" if enabled else "disabled"
    console.print(f"[green]Automation {automation_id} {state}.[/]")
    return 0


def cmd_delete(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    if not engine.registry.delete(args.automation_id):
        console.print(f"[red]Automation not found: {args.automation_id}[/]")
        return 1
    console.print(f"[green]Automation {args.automation_id} deleted.[/]")
    return 0


def cmd_import(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    import_path = Path(args.import_file)
    if not import_path.exists():
        console.print(f"[red]Import file not found: {import_path}[/]")
        return 1

    data = _read_document(import_path)
    if isinstance(data, dict):
        data = data.get("automations", [data])
    automations = load_automations(data)

    registry: AutomationRegistry = engine.registry
    imported = 0
    skipped = 0
    for automation in automations:
        if automation.id in registry:
            if args.overwrite:
                registry.update(automation)
                imported += 1
            else:
                console.print(f"[yellow]Skipping existing automation: {automation.id}[/]")
                skipped += 1
            continue
        registry.add(automation)
        imported += 1

    console.print(f"[green]Imported {imported} automation(s), skipped {skipped}.[/]")
    return 0


def cmd_export(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    export_path = Path(args.export_file)
    data = dump_automations(engine.registry.get_all())
    with open(export_path, "w", encoding="utf-8") as handle:
        if export_path.suffix.lower() in {".yaml", ".yml"}:
            yaml.safe_dump(data, handle, sort_keys=False, allow_unicode=True)
        else:
            json.dump(data, handle, indent=2, ensure_ascii=False)
    console.print(f"[green]Exported {len(data)} automation(s) to {export_path}[/]")
    return 0


# ----------------------------------------------------------------------
# Execution commands
# ----------------------------------------------------------------------


async def _run_and_close(engine: AutomationEngine, coro: Any) -> Any:
    try:
        return await coro
    finally:
        await engine.shutdown()


def cmd_run(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    result = asyncio.run(_run_and_close(engine, engine.execute_automation(args.automation_id)))
    return 0 if _render_results(console, [result], [args.automation_id]) else 1


def _deliver(
    engine: AutomationEngine, console: Console, description: str, coro: Any, event_ids: list[str]
) -> int:
    results = asyncio.run(_run_and_close(engine, coro))
    if not results:
        console.print(f"[yellow]No automation matched {description}.[/]")
        return 0
    return 0 if _render_results(console, results, event_ids[: len(results)]) else 1


def _matched_ids(engine: AutomationEngine, event: TriggerEvent) -> list[str]:
    return [a.id for a in engine.matcher.match(event, engine.registry.get_all())]


def cmd_packet(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    event = PacketEvent(source_address=args.source, source_port=args.port, content=args.content)
    ids = _matched_ids(engine, event)
    return _deliver(engine, console, "the packet", engine.handle_event(event), ids)


def cmd_button(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    event = ButtonEvent(button_id=args.button_id)
    ids = _matched_ids(engine, event)
    return _deliver(engine, console, f"button {args.button_id}", engine.handle_event(event), ids)


def cmd_gesture(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    event = GestureEvent(gesture_type=args.gesture_type)
    ids = _matched_ids(engine, event)
    return _deliver(
        engine, console, f"gesture {args.gesture_type}", engine.handle_event(event), ids
    )


async def _serve(engine: AutomationEngine) -> None:
    await engine.start(listen=True)
    try:
        await asyncio.Event().wait()
    finally:
        await engine.shutdown()


def cmd_serve(engine: AutomationEngine, args: argparse.Namespace, console: Console) -> int:
    transport = engine.config.transport
    if args.host:
        transport.listen_host = args.host
    if args.port is not None:
        transport.listen_port = args.port
    console.print(
        f"[bold]UDP Trigger[/] [green]v{__version__}[/] listening on "
        f"[yellow]{transport.listen_host}:{transport.listen_port}[/] (Ctrl+C to stop)"
    )
    try:
        asyncio.run(_serve(engine))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/]")
    return 0


COMMANDS = {
    "list": cmd_list,
    "show": cmd_show,
    "run": cmd_run,
    "packet": cmd_packet,
    "button": cmd_button,
    "gesture": cmd_gesture,
    "enable": cmd_enable,
    "disable": cmd_disable,
    "delete": cmd_delete,
    "import": cmd_import,
    "export": cmd_export,
    "serve": cmd_serve,
}


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point.

    Args:
        argv: Optional sequence of CLI arguments (without the program name).

    Returns:
        Process exit code. 0 for success.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    console = Console()
    try:
        config = _load_config(args)
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Configuration error: {exc}[/]")
        return 1

    setup_logging(config.logging)
    if not config.storage.automations_path and args.command in {
        "enable",
        "disable",
        "delete",
        "import",
    }:
        console.print("[yellow]No --store given; changes will not be saved.[/]")

    try:
        engine = _build_engine(config)
        return COMMANDS[args.command](engine, args, console)
    except (AutomationError, ValueError, OSError, yaml.YAMLError) as exc:
        logger.error("Command %s failed: %s", args.command, exc, exc_info=True)
        console.print(f"[red]Error: {exc}[/]")
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
