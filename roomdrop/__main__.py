"""
Main entry point for RoomDrop.
Run with: python -m roomdrop serve | python -m roomdrop join ROOM [--send FILE]
"""
import argparse
import asyncio
import os
import sys

from roomdrop.client import RoomDropClient
from roomdrop.core.config import ClientConfig, ServerConfig
from roomdrop.core.exceptions import RoomDropError
from roomdrop.core.logging import setup_logging
from roomdrop.signaling.server import serve


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="roomdrop", description="Room-based peer-to-peer file transfer")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the signaling relay")
    serve_parser.add_argument("--host", help="Bind host (default: $ROOMDROP_HOST or 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port (default: $ROOMDROP_PORT or 3000)")
    serve_parser.add_argument("--scope-relay-to-room", action="store_true", default=None,
                              help="Only relay between peers that share a room")

    join_parser = subparsers.add_parser("join", help="Join a room and exchange files")
    join_parser.add_argument("room", help="Room identifier")
    join_parser.add_argument("--relay-url", help="Relay WebSocket URL")
    join_parser.add_argument("--send", metavar="FILE", help="Send FILE to every peer that connects")
    join_parser.add_argument("--download-dir", help="Where received files are written")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        config = ServerConfig(host=args.host, port=args.port, scope_relay_to_room=args.scope_relay_to_room)
        asyncio.run(serve(config))
        return 0

    if args.send and not os.path.isfile(args.send):
        print(f"File not found: {args.send}", file=sys.stderr)
        return 2

    config = ClientConfig(relay_url=args.relay_url, download_dir=args.download_dir)
    setup_logging(level=config.log_level, log_file="roomdrop_client.log")
    try:
        asyncio.run(RoomDropClient(config).run(args.room, send_path=args.send))
    except RoomDropError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
