#!/usr/bin/env python3
"""
RogueWatch command line.

    roguewatch.py serve                  run the web API
    roguewatch.py scan --duration 5      timed discovery session, results to a JSON file
    roguewatch.py export-log [output]    dump the discovery log
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import config
from utils.logging import get_logger

logger = get_logger('roguewatch.cli')


def cmd_serve(args: argparse.Namespace) -> int:
    from app import main as run_app

    run_app(host=args.host, port=args.port, debug=args.debug)
    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    from utils.rogue import create_monitor

    monitor = create_monitor()
    try:
        if not monitor.start_scan(args.duration):
            logger.error(f"Scan failed: {monitor.get_status()['scanner']['error']}")
            return 1
        monitor.wait_for_scan()
        monitor.stop_scan()
        if not monitor.pipeline.wait_idle(timeout=args.drain_timeout):
            logger.warning("Some classifications were still running when the scan ended")

        output = monitor.export(args.output_dir)
    except OSError as e:
        logger.error(f"Scan failed: {e}")
        return 1
    finally:
        monitor.shutdown()

    stats = monitor.statistics()
    print(f"Scan complete: {stats['total']} devices, {stats['critical']} critical. Results in {output}")
    return 0


def cmd_export_log(args: argparse.Namespace) -> int:
    from utils.rogue import export_discovery_logs

    logs = export_discovery_logs(args.log_dir)
    output = json.dumps(logs, indent=2)
    if not args.output:
        print(output)
        return 0

    try:
        Path(args.output).write_text(output, encoding='utf-8')
    except OSError as e:
        logger.error(f"Failed to export logs: {e}")
        return 1
    print(f"Exported {len(logs)} logs to {args.output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='RogueWatch BLE rogue device monitor')
    parser.add_argument('--version', action='version', version=f'%(prog)s {config.VERSION}')
    subparsers = parser.add_subparsers(dest='command')

    serve_parser = subparsers.add_parser('serve', help='Run the web API')
    serve_parser.add_argument('--host', default=config.HOST, help='Bind address')
    serve_parser.add_argument('--port', type=int, default=config.PORT, help='Listen port')
    serve_parser.add_argument('--debug', action='store_true', default=config.DEBUG, help='Flask debug mode')
    serve_parser.set_defaults(func=cmd_serve)

    scan_parser = subparsers.add_parser('scan', help='Run a timed discovery session')
    scan_parser.add_argument('--duration', type=float, default=config.SCAN_DURATION or 5.0,
                             help='Scan duration in seconds')
    scan_parser.add_argument('--output-dir', default=str(config.EXPORT_DIR),
                             help='Directory for the scan result file')
    scan_parser.add_argument('--drain-timeout', type=float, default=30.0,
                             help='Seconds to wait for pending lookups after the scan')
    scan_parser.set_defaults(func=cmd_scan)

    export_parser = subparsers.add_parser('export-log', help='Dump the discovery log as JSON')
    export_parser.add_argument('output', nargs='?', help='Output file (stdout when omitted)')
    export_parser.add_argument('--log-dir', default=str(config.DISCOVERY_LOG_DIR),
                               help='Discovery log directory')
    export_parser.set_defaults(func=cmd_export_log)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
