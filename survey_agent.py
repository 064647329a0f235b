#!/usr/bin/env python3
"""
Network Survey - command line entry point.

Discovers devices on the local network, keeps their reachability up to
date in the background, and hands results to a synchronization sink.

Usage:
    network-survey scan [--json] [--quiet]
    network-survey daemon [--scan-interval N] [--health-interval N] [--upload-dir DIR]
    network-survey status
    network-survey capabilities
"""
import argparse
import asyncio
import ipaddress
import json
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from agent import JsonFileUploader, NullUploader, Scheduler
from config import STORAGE, get_logger, setup_logging
from config.exceptions import (
    ConfigurationError,
    NetworkNotAvailableError,
    PrivilegeRequiredError,
    ScanCancelledError,
    ScanError,
)
from discovery.cancellation import request_cancel
from discovery.capabilities import detect_capabilities, format_capabilities_message
from discovery.models import Device, ScanProgress
from storage import StateStore

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_SCAN_FAILED = 1
EXIT_USAGE = 2
EXIT_PRIVILEGE = 3
EXIT_NO_NETWORK = 4
EXIT_CANCELLED = 130


def _ip_sort_key(device: Device):
    try:
        return (0, int(ipaddress.IPv4Address(device.ip)))
    except ValueError:
        return (1, device.ip)


def format_device_table(devices: List[Device]) -> str:
    """Render devices as a fixed-width text table sorted by IP."""
    headers = ("IP", "MAC", "HOSTNAME", "VENDOR", "TYPE", "LATENCY")
    rows = []
    for d in sorted(devices, key=_ip_sort_key):
        if d.response_time_ms is None:
            latency = "-"
        elif d.response_time_ms == 0:
            latency = "up"
        else:
            latency = f"{d.response_time_ms:.1f}ms"
        rows.append((d.ip, d.mac or "-", d.hostname or "-", d.vendor or "-",
                     d.device_type or "-", latency))

    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]

    lines = ["  ".join(h.ljust(w) for h, w in zip(headers, widths))]
    lines.append("  ".join("-" * w for w in widths))
    for row in rows:
        lines.append("  ".join(cell.ljust(w) for cell, w in zip(row, widths)))
    return "\n".join(lines)


def _print_progress(progress: ScanProgress) -> None:
    percent = f"{progress.percent:3d}%" if progress.percent is not None else "    "
    print(f"[{percent}] {progress.message}", file=sys.stderr)


# ============================================================================
# Commands
# ============================================================================

async def _scan(args) -> int:
    store = StateStore(args.data_dir)
    callback = None if args.quiet or args.json else _print_progress
    scheduler = Scheduler(store=store, uploader=NullUploader(), progress_callback=callback)
    await scheduler.load_state()

    try:
        outcome = await scheduler.run_scan_and_upload()
    except PrivilegeRequiredError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        if e.instructions:
            print(f"\n{e.instructions}", file=sys.stderr)
        return EXIT_PRIVILEGE
    except NetworkNotAvailableError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_NO_NETWORK
    except ScanCancelledError:
        print("Scan cancelled", file=sys.stderr)
        return EXIT_CANCELLED
    except ScanError as e:
        print(f"Scan failed: {e}", file=sys.stderr)
        return EXIT_SCAN_FAILED

    result = outcome.result
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        info = result.network_info
        print(f"Network: {info.subnet} on {info.interface} "
              f"(gateway {info.gateway_ip or 'unknown'}, local {info.local_ip or 'unknown'})")
        if result.capabilities.warning and not args.quiet:
            print(format_capabilities_message(result.capabilities))
        print()
        print(format_device_table(result.devices))
        print(f"\n{len(result.devices)} devices")
    return EXIT_CANCELLED if result.cancelled else EXIT_OK


def cmd_scan(args) -> int:
    def on_sigint(signum, frame):
        # Stop at the next batch boundary and keep what was found
        request_cancel()

    previous = signal.signal(signal.SIGINT, on_sigint)
    try:
        return asyncio.run(_scan(args))
    finally:
        signal.signal(signal.SIGINT, previous)


async def _daemon(args) -> int:
    store = StateStore(args.data_dir)
    uploader = JsonFileUploader(Path(args.upload_dir)) if args.upload_dir else NullUploader()
    scheduler = Scheduler(store=store, uploader=uploader)
    await scheduler.load_state()

    try:
        if args.scan_interval is not None:
            await scheduler.set_scan_interval(args.scan_interval)
        if args.health_interval is not None:
            await scheduler.set_health_check_interval(args.health_interval)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_USAGE

    loop = asyncio.get_running_loop()

    def request_stop() -> None:
        logger.info("Shutdown requested")
        request_cancel()
        asyncio.ensure_future(scheduler.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_stop)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(request_stop))

    logger.info(
        f"Network Survey agent starting (scan every {scheduler.get_scan_interval()}s, "
        f"health check every {scheduler.get_health_check_interval()}s)"
    )
    await scheduler.start()
    await scheduler.wait()
    return EXIT_OK


def cmd_daemon(args) -> int:
    return asyncio.run(_daemon(args))


def cmd_status(args) -> int:
    state = StateStore(args.data_dir).load_state()
    if state.last_scan_time:
        last_scan = datetime.fromtimestamp(state.last_scan_time).strftime("%Y-%m-%d %H:%M:%S")
    else:
        last_scan = "never"
    print(f"Last scan:             {last_scan}")
    print(f"Scan interval:         {state.scan_interval_seconds}s")
    print(f"Health check interval: {state.health_check_interval_seconds}s")
    print(f"Known devices:         {len(state.known_devices)}")
    if state.known_devices:
        print()
        print(format_device_table(state.known_devices))
    return EXIT_OK


def cmd_capabilities(args) -> int:
    caps = asyncio.run(detect_capabilities())
    if args.json:
        print(json.dumps(caps.to_dict(), indent=2))
    else:
        print(format_capabilities_message(caps))
    return EXIT_OK


# ============================================================================
# Argument parsing
# ============================================================================

def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="network-survey",
        description="Discover devices on the local network and monitor their reachability.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--debug", action="store_true", help="Verbose logging to stderr.")
    p.add_argument("--data-dir", type=Path, default=Path.home() / STORAGE.DATA_DIR_NAME,
                   help="Directory for agent state and logs.")

    sub = p.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Run one discovery scan and print the devices.")
    scan.add_argument("--json", action="store_true", help="Print the scan result as JSON.")
    scan.add_argument("--quiet", action="store_true", help="Do not print progress.")
    scan.set_defaults(func=cmd_scan)

    daemon = sub.add_parser("daemon", help="Run scans and health checks in the background.")
    daemon.add_argument("--scan-interval", type=int, default=None,
                        help="Seconds between discovery scans (persisted).")
    daemon.add_argument("--health-interval", type=int, default=None,
                        help="Seconds between health checks (persisted).")
    daemon.add_argument("--upload-dir", type=str, default=None,
                        help="Write the latest scan/health payloads as JSON to this directory.")
    daemon.set_defaults(func=cmd_daemon)

    status = sub.add_parser("status", help="Show the persisted agent state.")
    status.set_defaults(func=cmd_status)

    caps = sub.add_parser("capabilities", help="Show what this process can scan with.")
    caps.add_argument("--json", action="store_true", help="Print the report as JSON.")
    caps.set_defaults(func=cmd_capabilities)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the application."""
    args = build_arg_parser().parse_args(argv)
    setup_logging(data_dir=args.data_dir, debug=args.debug, console_output=True)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
