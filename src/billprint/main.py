"""
Main entry point for billprint.

Commands:
    billprint print URL [URL ...]       Print receipt URLs through the pipeline
    billprint settings show             Show the persisted print settings
    billprint settings set KEY=VALUE    Update print settings
    billprint preview FILE --kind kot   Text preview of a JSON document
    billprint printers [--json]         List the printers CUPS knows about
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from billprint.config.settings import AppSettings, get_settings
from billprint.config.store import PrintSettingsStore
from billprint.core.events import Event, EventBus, EventType
from billprint.core.state import JobState
from billprint.errors import PrintPipelineError
from billprint.pipeline.error_log import ErrorLog
from billprint.pipeline.orchestrator import PrintJobOrchestrator, is_receipt_url
from billprint.printing.bridge import SpoolingBridge
from billprint.printing.delivery import Delivery, NativePrintDelivery, RawSpoolDelivery
from billprint.printing.document import parse_document
from billprint.printing.receipt import ReceiptEncoder
from billprint.sandbox.cups import list_printers
from billprint.sandbox.http import HttpSandbox
from billprint.sandbox.manager import SandboxManager

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )


def build_delivery(settings: AppSettings) -> Delivery:
    """Pick the delivery strategy configured for this host."""
    if settings.delivery_mode == "raw":
        return RawSpoolDelivery(
            bridge=SpoolingBridge(settings.resolve_bridge_path()),
            artifact_dir=settings.resolve_artifact_dir(),
        )
    return NativePrintDelivery()


def build_pipeline(
    settings: AppSettings,
    event_bus: EventBus,
) -> Tuple[PrintJobOrchestrator, PrintSettingsStore]:
    """Wire the orchestrator and its collaborators from app settings."""
    store = PrintSettingsStore(settings.settings_path)
    store.load()

    def sandbox_factory(bus: EventBus) -> HttpSandbox:
        return HttpSandbox(
            bus,
            strategy=settings.ready_strategy,
            poll_interval=settings.poll_interval,
            request_timeout=settings.request_timeout,
        )

    orchestrator = PrintJobOrchestrator(
        event_bus=event_bus,
        sandbox_manager=SandboxManager(event_bus, sandbox_factory),
        delivery=build_delivery(settings),
        settings_store=store,
        error_log=ErrorLog(settings.error_log_path),
        job_timeout=settings.job_timeout,
        cleanup_delay=settings.cleanup_delay,
        width_hint=settings.render_width_hint,
    )
    return orchestrator, store


async def run_print(urls: List[str], settings: AppSettings) -> int:
    """Run print jobs for the URLs and report their status."""
    event_bus = EventBus()
    orchestrator, _ = build_pipeline(settings, event_bus)

    def on_status(event: Event) -> None:
        print(event.data.get("message", ""))

    def on_timeout(event: Event) -> None:
        print(f"Print timed out: {event.data.get('url')}")

    event_bus.subscribe(EventType.PRINT_STATUS, on_status)
    event_bus.subscribe(EventType.PRINT_TIMEOUT, on_timeout)

    jobs = []
    failed = 0
    for url in urls:
        if not is_receipt_url(url):
            print(f"Not a receipt URL, not intercepted: {url}")
            continue
        job = orchestrator.start_job(url)
        if job is None:
            failed += 1
        else:
            jobs.append(job)

    try:
        await orchestrator.wait_idle()
    finally:
        await orchestrator.shutdown()

    failed += sum(1 for job in jobs if job.state is not JobState.COMPLETED)
    return 1 if failed else 0


def parse_assignments(pairs: List[str]) -> Dict[str, Any]:
    """Parse KEY=VALUE pairs; values are JSON when they parse as JSON."""
    values: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        try:
            values[key] = json.loads(raw)
        except ValueError:
            values[key] = raw
    return values


def run_settings(action: str, pairs: List[str], settings: AppSettings) -> int:
    store = PrintSettingsStore(settings.settings_path)
    current = store.load()

    if action == "show":
        print(json.dumps(current.to_record(), indent=2))
        return 0

    record = current.to_record()
    record.update(parse_assignments(pairs))
    saved = store.save(record)
    print(json.dumps(saved.to_record(), indent=2))
    return 0


def run_preview(path: Path, kind: str, output: Optional[Path]) -> int:
    document = parse_document(kind, path.read_text(encoding="utf-8"))
    receipt = ReceiptEncoder().encode(document)
    print(receipt.preview)
    if output is not None:
        output.write_bytes(receipt.raw_commands)
        print(f"Wrote {len(receipt.raw_commands)} bytes to {output}")
    return 0


async def run_printers(as_json: bool, command: str = "lpstat") -> int:
    """List printers so a deviceName can be picked; ``*`` marks the default."""
    printers = await list_printers(command)
    if as_json:
        print(json.dumps([p.as_dict() for p in printers], indent=2))
    elif not printers:
        print("No printers configured")
    else:
        for p in printers:
            mark = "*" if p.is_default else " "
            print(f"{mark} {p.name} ({p.status})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="billprint", description="Receipt print job pipeline")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    print_cmd = commands.add_parser("print", help="Print receipt URLs")
    print_cmd.add_argument("urls", nargs="+", metavar="URL")

    settings_cmd = commands.add_parser("settings", help="Show or change print settings")
    settings_cmd.add_argument("action", choices=["show", "set"])
    settings_cmd.add_argument("pairs", nargs="*", metavar="KEY=VALUE",
                              help="e.g. width=80 silentPrinting=false deviceName=POS-80")

    preview_cmd = commands.add_parser("preview", help="Preview a JSON order or bill")
    preview_cmd.add_argument("file", type=Path)
    preview_cmd.add_argument("--kind", choices=["kot", "bill"], required=True)
    preview_cmd.add_argument("--output", type=Path, help="Also write the ESC/POS bytes here")

    printers_cmd = commands.add_parser("printers", help="List available printers")
    printers_cmd.add_argument("--json", action="store_true", help="Print as JSON")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    from dotenv import load_dotenv

    # Load environment variables
    load_dotenv()

    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(args.debug or settings.debug)

    try:
        if args.command == "print":
            code = asyncio.run(run_print(args.urls, settings))
        elif args.command == "settings":
            code = run_settings(args.action, args.pairs, settings)
        elif args.command == "printers":
            code = asyncio.run(run_printers(args.json))
        else:
            code = run_preview(args.file, args.kind, args.output)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        code = 130
    except (PrintPipelineError, ValueError, OSError) as e:
        logger.error(str(e))
        code = 1
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
