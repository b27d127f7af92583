"""dalitool CLI entry point."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import BinaryIO, List, Optional, TextIO

from dalilink.client import CollectStatus
from dalilink.protocol import INFO_TYPES, DataLinkError
from dalilink.transport import parse_address

from . import __version__
from .commands import build_registry
from .context import ConsoleContext
from .history import HistoryStore
from .infofmt import InfoDocumentError, render_info
from .repl import ConsoleREPL
from .statefile import StateFileError, recover_state, save_state
from .summary import summarize_packet

LOG = logging.getLogger("dalitool.cli")

PROG = "dalitool"


def _configure_logging(level: Optional[str], verbose: int) -> None:
    if level:
        resolved = getattr(logging, level.upper(), logging.WARNING)
    elif verbose >= 2:
        resolved = logging.DEBUG
    elif verbose == 1:
        resolved = logging.INFO
    else:
        resolved = logging.WARNING
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="DataLink client for data stream inspection and server information",
    )
    parser.add_argument("address", nargs="?", help="DataLink server as [host][:][port] (default localhost:16000)")
    parser.add_argument("repeat", nargs="?", type=int, default=0, help="Repeat interval in seconds for INFO requests")
    parser.add_argument("-V", "--version", action="version", version=f"{PROG} version: {__version__}")
    parser.add_argument("-v", dest="verbose", action="count", default=0, help="Be more verbose, repeatable")
    parser.add_argument("-c", dest="console", action="store_true", help="Console mode, provide an interactive prompt")
    parser.add_argument("-p", dest="ppackets", action="count", default=0, help="Print details of data packets, repeatable")
    parser.add_argument("-d", dest="psamples", action="store_const", const=1, default=0, help="Print first 6 samples of each data packet")
    parser.add_argument("-D", dest="psamples", action="store_const", const=2, help="Print all samples of each data packet")
    parser.add_argument("-m", dest="match", metavar="match", help="Stream ID match pattern, @file reads a stream list")
    parser.add_argument("-r", dest="reject", metavar="reject", help="Stream ID reject pattern, @file reads a stream list")
    parser.add_argument("-k", dest="keepalive", metavar="interval", type=int, help="Send keepalive packets this often (seconds)")
    parser.add_argument("-x", dest="statefile", metavar="sfile", help="Save/restore stream position to this file")
    parser.add_argument("-o", dest="outfile", metavar="outfile", help="Append all received packet data to this file, '-' for stdout")
    parser.add_argument("-i", dest="infotype", metavar="type", type=str.upper, choices=INFO_TYPES, help="Send INFO request and print the raw XML")
    parser.add_argument("-I", dest="infoformat", action="store_const", const="STATUS", help="Print formatted server ID, version and status")
    parser.add_argument("-S", dest="infoformat", action="store_const", const="STREAMS", help="Print formatted stream list")
    parser.add_argument("-C", dest="infoformat", action="store_const", const="CONNECTIONS", help="Print formatted connection list")
    parser.add_argument("-f", dest="formatlevel", action="count", default=0, help="Increase detail of formatted INFO output")
    parser.add_argument("--log-level", default=os.environ.get("DALITOOL_LOG"), help="Logging level (default WARNING, raised by -v)")
    parser.add_argument(
        "--history",
        type=Path,
        default=Path(os.environ.get("DALITOOL_HISTORY", Path.home() / ".dalitool_history")),
        help="Path to console command history file",
    )
    return parser


def read_stream_list(path: str) -> str:
    """Join the stream patterns listed in *path* (one per line) with ``|``."""
    patterns: List[str] = []
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            text = line.strip()
            if text and not text.startswith("#"):
                patterns.append(text)
    if not patterns:
        raise ValueError(f"no stream patterns in {path}")
    return "|".join(patterns)


def _load_pattern(value: Optional[str], what: str) -> Optional[str]:
    if not value or not value.startswith("@"):
        return value
    try:
        return read_stream_list(value[1:])
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Cannot read {what} list file: {exc}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    if not args.address:
        parser.error("No DataLink server specified")
    _configure_logging(args.log_level, args.verbose)
    LOG.info("%s version: %s", PROG, __version__)

    try:
        host, port = parse_address(args.address)
    except ValueError as exc:
        parser.error(str(exc))
    infotype = args.infoformat or args.infotype
    match = _load_pattern(args.match, "matching")
    reject = _load_pattern(args.reject, "rejecting")
    client_pattern = None
    if match and infotype == "CONNECTIONS":
        client_pattern, match = match, None
    if args.psamples and not args.ppackets:
        args.ppackets = 1

    ctx = ConsoleContext(
        address=f"{host}:{port}",
        verbose=args.verbose,
        keepalive=float(args.keepalive) if args.keepalive and args.keepalive > 0 else 0.0,
        match_pattern=match,
        reject_pattern=reject,
    )
    if args.statefile:
        try:
            state = recover_state(args.statefile, ctx.address)
        except StateFileError as exc:
            LOG.error("Error reading state file: %s", exc)
            return 1
        if state:
            ctx.update_position(*state)

    dump, dump_close = _open_output(args.outfile)
    sink: TextIO = sys.stderr if args.outfile == "-" else sys.stdout
    try:
        if not _connect(ctx, required=not args.console):
            return 1
        if infotype:
            return _run_info(ctx, infotype, client_pattern, formatted=bool(args.infoformat),
                             level=args.formatlevel, repeat=args.repeat)
        if args.console:
            registry = build_registry()
            repl = ConsoleREPL(ctx, registry, history_store=HistoryStore(str(args.history)))
            return repl.run()
        return _run_collect(ctx, details=args.ppackets, samples=args.psamples, sink=sink, dump=dump)
    except KeyboardInterrupt:
        LOG.info("terminating on interrupt")
        return 0
    finally:
        ctx.disconnect()
        if dump is not None and dump_close:
            dump.close()
        if args.statefile and ctx.position and ctx.position > 0:
            try:
                save_state(args.statefile, ctx.address, ctx.position, ctx.position_time)
            except OSError as exc:
                LOG.error("Error writing state file: %s", exc)


def _open_output(outfile: Optional[str]):
    if not outfile:
        return None, False
    if outfile == "-":
        return sys.stdout.buffer, False
    try:
        return open(outfile, "ab", buffering=0), True
    except OSError as exc:
        raise SystemExit(f"cannot open output file: {outfile}: {exc}")


def _connect(ctx: ConsoleContext, *, required: bool) -> bool:
    try:
        client = ctx.connect()
    except DataLinkError as exc:
        if required:
            LOG.error("Error connecting to server: %s", exc)
            return False
        print(f"Not connected to {ctx.address}: {exc}")
        print("Use CONNECT to retry")
        return True
    try:
        ctx.apply_state(client, strict=required)
    except DataLinkError as exc:
        LOG.error("Error setting up stream selection: %s", exc)
        return False
    return True


def _run_info(
    ctx: ConsoleContext,
    infotype: str,
    client_pattern: Optional[str],
    *,
    formatted: bool,
    level: int,
    repeat: int,
) -> int:
    next_request = time.monotonic()
    while True:
        now = time.monotonic()
        if now < next_request:
            time.sleep(0.1)
            continue
        client = ctx.client
        if client is None:
            return 1
        try:
            raw = client.info(infotype, client_pattern)
        except DataLinkError as exc:
            LOG.error("Problem requesting INFO from server: %s", exc)
            return 1
        if formatted:
            try:
                sys.stdout.write(render_info(infotype, raw, level))
            except InfoDocumentError as exc:
                LOG.error("info formatting failed: %s", exc)
        else:
            sys.stdout.write(raw.decode("utf-8", errors="replace") + "\n")
        if not repeat:
            return 0
        print()
        sys.stdout.flush()
        next_request += repeat
        if next_request < now:
            next_request = now + repeat


def _run_collect(
    ctx: ConsoleContext,
    *,
    details: int,
    samples: int,
    sink: TextIO,
    dump: Optional[BinaryIO],
) -> int:
    client = ctx.client
    if client is None:
        return 1
    try:
        while True:
            status, packet = client.collect(block=True)
            if status is not CollectStatus.PACKET or packet is None:
                break
            summarize_packet(packet, details=details, samples=samples, sink=sink, dump=dump)
            ctx.update_position(packet.pktid, packet.pkttime)
    except DataLinkError as exc:
        LOG.error("collection stopped: %s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
