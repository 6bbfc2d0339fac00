"""Command line front-end for the Nimbus client core.

Navigation cursors survive between invocations through the state directory,
so a shell session can walk the tree one command at a time::

    nimbus ls
    nimbus open home 6650c1 Projects
    nimbus ls
    nimbus goto home -1
    nimbus move 6650c1 --type folder --to 6650d7
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable, Optional

from .config import NimbusConfig
from .errors import NimbusError
from .models import SECTIONS, FileRef, FolderRef, ItemType, Listing, MoveTarget, NavCursor
from .runtime import NimbusRuntime


_LOGGER = logging.getLogger("nimbus.cli")


def run_cli(argv: Optional[Iterable[str]] = None, runtime: Optional[NimbusRuntime] = None) -> int:
    parser = argparse.ArgumentParser(prog="nimbus", description="Nimbus cloud storage client")
    parser.add_argument("--api-url", help="Nimbus REST endpoint (defaults to NIMBUS_API_URL)")
    parser.add_argument("--state-dir", help="Directory holding navigation state and the session token")
    parser.add_argument("--log-level", help="Logging level (defaults to NIMBUS_LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    ls = sub.add_parser("ls", help="List the current folder of a section")
    ls.add_argument("--section", default="home", choices=SECTIONS)
    ls.set_defaults(handler=_cmd_ls)

    open_cmd = sub.add_parser("open", help="Open a child folder of the section's current folder")
    open_cmd.add_argument("section", choices=SECTIONS)
    open_cmd.add_argument("folder_id")
    open_cmd.add_argument("name")
    open_cmd.add_argument("--shared", action="store_true", help="Folder was reached through a share")
    open_cmd.set_defaults(handler=_cmd_open)

    goto = sub.add_parser("goto", help="Jump to a breadcrumb index (-1 for root)")
    goto.add_argument("section", choices=SECTIONS)
    goto.add_argument("index", type=int)
    goto.set_defaults(handler=_cmd_goto)

    move = sub.add_parser("move", help="Move a file or folder, refusing moves into its own subtree")
    move.add_argument("item_id")
    move.add_argument("--type", dest="item_type", choices=[t.value for t in ItemType], default=ItemType.FILE.value)
    move.add_argument("--to", dest="destination", default=None, help="Destination folder id (root when omitted)")
    move.set_defaults(handler=_cmd_move)

    upload = sub.add_parser("upload", help="Upload a local file into the section's current folder")
    upload.add_argument("path")
    upload.add_argument("--section", default="home", choices=SECTIONS)
    upload.set_defaults(handler=_cmd_upload)

    download = sub.add_parser("download", help="Download a file by id")
    download.add_argument("file_id")
    download.add_argument("destination", nargs="?", default=".")
    download.add_argument("--name", help="Local file name (defaults to the file id)")
    download.set_defaults(handler=_cmd_download)

    sandbox = sub.add_parser("sandbox", help="Serve the in-memory sandbox backend")
    sandbox.add_argument("--host", default="127.0.0.1")
    sandbox.add_argument("--port", type=int, default=8080)
    sandbox.set_defaults(handler=_cmd_sandbox)

    args = parser.parse_args(list(argv) if argv is not None else None)

    config = NimbusConfig.from_env()
    if args.api_url:
        config.api.base_url = args.api_url
    if args.state_dir:
        config.state.state_dir = args.state_dir
    if args.log_level:
        config.logging.level = args.log_level.upper()
    logging.basicConfig(level=getattr(logging, config.logging.level, logging.INFO), format=config.logging.format)

    if args.command == "sandbox":
        return args.handler(args)
    rt = runtime or NimbusRuntime.bootstrap(config)
    try:
        return args.handler(args, rt)
    except NimbusError as exc:
        _LOGGER.error("%s failed: %s", args.command, exc)
        return 1


def _cmd_ls(args: argparse.Namespace, rt: NimbusRuntime) -> int:
    cursor = rt.navigation.get(args.section)
    listing = rt.explorer.load_contents(args.section)
    print(_format_location(args.section, cursor))
    print(_format_listing(listing))
    return 0


def _cmd_open(args: argparse.Namespace, rt: NimbusRuntime) -> int:
    cursor = rt.navigation.open(args.section, FolderRef(id=args.folder_id, name=args.name, shared=args.shared))
    print(_format_location(args.section, cursor))
    return 0


def _cmd_goto(args: argparse.Namespace, rt: NimbusRuntime) -> int:
    cursor = rt.navigation.goto(args.section, args.index)
    print(_format_location(args.section, cursor))
    return 0


def _cmd_move(args: argparse.Namespace, rt: NimbusRuntime) -> int:
    target = MoveTarget(id=args.item_id, type=ItemType(args.item_type))
    rt.move_resolver.move_to(target, args.destination)
    print(f"moved {target.type.value} {target.id} -> {args.destination or '/'}")
    return 0


def _cmd_upload(args: argparse.Namespace, rt: NimbusRuntime) -> int:
    folder_id = rt.navigation.get(args.section).folder_id
    record = rt.uploader.upload(args.path, folder_id)
    created = record.get("file", record) if isinstance(record, dict) else record
    print(f"uploaded {Path(args.path).name} as {created.get('id', '?')}")
    return 0


def _cmd_download(args: argparse.Namespace, rt: NimbusRuntime) -> int:
    target = rt.explorer.download(FileRef(id=args.file_id, filename=args.name or args.file_id), args.destination)
    if target is None:
        return 1
    print(f"saved {target}")
    return 0


def _cmd_sandbox(args: argparse.Namespace) -> int:
    import uvicorn

    _LOGGER.info("Starting sandbox backend on %s:%d", args.host, args.port)
    uvicorn.run("nimbus.sandbox.server:app", host=args.host, port=args.port)
    return 0


def _format_location(section: str, cursor: NavCursor) -> str:
    trail = " / ".join(folder.name for folder in cursor.path)
    return f"[{section}] /{trail}"


def _format_listing(listing: Listing) -> str:
    lines = [f"  {folder.name}/  ({folder.id})" for folder in listing.folders]
    lines.extend(f"  {entry.filename}  {entry.size}B  ({entry.id})" for entry in listing.files)
    return "\n".join(lines) if lines else "  (empty)"


def main() -> None:  # pragma: no cover
    raise SystemExit(run_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
