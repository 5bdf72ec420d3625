"""
homeops/cli.py
Command-line interface for homeops.

USAGE:
  homeops process batch.jsonl            # one delivery per line
  homeops purge                          # sweep expired ledger + counter rows
  homeops serve --port 8780              # query/batch API on localhost

BATCH FILE FORMAT:
  Each line is either a delivery {"delivery_id": "...", "body": {...}}
  or a bare message body {"chatId": ..., "messageId": ..., ...}; bare bodies
  get the line number as their delivery id.

Exit status of `process` is 1 if any delivery should be redelivered.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from homeops.config import load_config
from homeops.models.record import Delivery

logger = logging.getLogger(__name__)

GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog        = 'homeops',
        description = 'homeops — household activity ledger and silent-first responder',
    )
    parser.add_argument(
        '--db',
        type    = Path,
        default = None,
        help    = 'SQLite database path (default: db_path from homeops_config.json)',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )
    sub = parser.add_subparsers(dest='command', required=True)

    p_process = sub.add_parser('process', help='Process a JSON-lines delivery batch')
    p_process.add_argument('batch_file', type=Path)

    sub.add_parser('purge', help='Delete expired ledger and counter rows')

    p_serve = sub.add_parser('serve', help='Run the HTTP API with uvicorn')
    p_serve.add_argument('--host', default='127.0.0.1',
                         help='Host to bind (default: 127.0.0.1)')
    p_serve.add_argument('--port', type=int, default=8780,
                         help='Port to bind (default: 8780)')

    args = parser.parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    logging.basicConfig(
        level   = logging.DEBUG if args.verbose else logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    config  = load_config()
    db_path = args.db or Path(config['db_path'])

    if args.command == 'process':
        return _process(args.batch_file, config, db_path)
    if args.command == 'purge':
        return _purge(db_path)
    if args.command == 'serve':
        return _serve(db_path, args.host, args.port)
    return 2


# ── COMMANDS ─────────────────────────────────────────────────

def _read_deliveries(path: Path) -> List[Delivery]:
    deliveries: List[Delivery] = []
    for lineno, line in enumerate(path.read_text(encoding='utf-8').splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            # Keep it: the pipeline reports it as an undecodable delivery
            deliveries.append(Delivery(delivery_id=f"line-{lineno}", body=line))
            continue
        if isinstance(data, dict) and 'delivery_id' in data and 'body' in data:
            deliveries.append(Delivery(delivery_id=str(data['delivery_id']), body=data['body']))
        else:
            deliveries.append(Delivery(delivery_id=f"line-{lineno}", body=data))
    return deliveries


def _process(batch_file: Path, config: dict, db_path: Path) -> int:
    from homeops.pipeline import build_pipeline

    if not batch_file.exists():
        _print(f"{RED}Error: batch file not found: {batch_file}{RESET}")
        return 1

    deliveries = _read_deliveries(batch_file)
    _step(f"Processing {len(deliveries)} deliveries → {db_path}")

    pipeline = build_pipeline(config, db_path=db_path)
    try:
        report = pipeline.process_batch(deliveries)
    finally:
        pipeline.close()

    replies  = sum(1 for r in report.reports if r.reply_message_id is not None)
    failures = report.batch_item_failures
    _ok(f"{len(report.reports) - len(failures)} processed, {replies} replies sent")
    if failures:
        _print(f"  {YELLOW}⚠ {len(failures)} for redelivery: {', '.join(failures)}{RESET}")
        return 1
    return 0


def _purge(db_path: Path) -> int:
    from homeops.store.db import connect
    from homeops.store.ledger import Ledger
    from homeops.store.response_counter import ResponseCounter

    conn = connect(db_path)
    try:
        ledger_rows  = Ledger(conn).purge_expired()
        counter_rows = ResponseCounter(conn).purge_expired()
    finally:
        conn.close()
    _ok(f"Purged {ledger_rows} ledger and {counter_rows} counter rows")
    return 0


def _serve(db_path: Path, host: str, port: int) -> int:
    import uvicorn
    from homeops.api import _build_app

    _step(f"API on http://{host}:{port}  (db: {db_path})")
    uvicorn.run(_build_app(db_path=db_path), host=host, port=port, log_level='info')
    return 0


# ── PRINT HELPERS ────────────────────────────────────────────

def _step(msg):  _print(f"  {CYAN}→{RESET} {msg}")
def _ok(msg):    _print(f"  {GREEN}✓{RESET} {msg}")
def _print(msg): print(msg)


if __name__ == '__main__':
    sys.exit(main())
