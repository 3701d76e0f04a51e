from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .command_resolver import CommandResolver
from .config import CONFIG_PATH, load_config
from .platforms import resolve_platform
from .runtime import ToolBridge

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolbridge",
        description="Bridge MCP tool servers into a host action registry.",
    )
    parser.add_argument("--config", type=Path, default=CONFIG_PATH, help=f"Config file (default: {CONFIG_PATH})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    install_parser = subparsers.add_parser("install", help="Install the uv and bun helper binaries")
    install_parser.set_defaults(func=install_command)

    resolve_parser = subparsers.add_parser("resolve", help="Show how a server command would be rewritten")
    resolve_parser.add_argument("--no-transform", action="store_true", help="Disable uvx/npx rewriting")
    resolve_parser.add_argument("server_command", help="Command to resolve, e.g. uvx or npx")
    resolve_parser.add_argument("server_args", nargs=argparse.REMAINDER, help="Arguments passed to the command")
    resolve_parser.set_defaults(func=resolve_command)

    tools_parser = subparsers.add_parser("tools", help="Connect to all servers and list their tools")
    tools_parser.set_defaults(func=tools_command)

    serve_parser = subparsers.add_parser("serve", help="Run the bridge with its HTTP status API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=8765, help="Bind port (default: 8765)")
    serve_parser.set_defaults(func=serve_command)

    return parser


def install_command(args: argparse.Namespace) -> int:
    bridge = ToolBridge(load_config(args.config))
    installed = asyncio.run(bridge.install_binaries())
    for name in ("uv", "bun"):
        binary = installed.get(name)
        if binary is not None:
            print(f"{name} {binary.version}: {binary.path}")
        else:
            print(f"{name}: {bridge.installer.state(name).value}")
    return 0 if installed else 1


def resolve_command(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    resolver = CommandResolver(cfg)
    mapping = resolve_platform()
    if mapping is not None:
        # Pick up binaries left by an earlier `toolbridge install`.
        uv = cfg.bin_dir / mapping.executable_name("uv")
        bun = cfg.bin_dir / mapping.executable_name("bun")
        resolver.update_installed_paths(uv if uv.is_file() else None, bun if bun.is_file() else None)
    enable = cfg.enable_command_transform and not args.no_transform
    command, command_args, _ = resolver.resolve(args.server_command, list(args.server_args), enable)
    print(" ".join([command, *command_args]))
    return 0


def tools_command(args: argparse.Namespace) -> int:
    bridge = ToolBridge(load_config(args.config))

    async def _run() -> int:
        await bridge.start()
        try:
            print("available:")
            for name in bridge.manager.available_tools:
                print(f"  {name}")
            print("registered:")
            for name in bridge.manager.registered_tools:
                print(f"  {name}")
            return 0 if bridge.manager.connections or not bridge.config.servers else 1
        finally:
            await bridge.stop()

    return asyncio.run(_run())


def serve_command(args: argparse.Namespace) -> int:
    import uvicorn

    from .status_server import create_app

    app = create_app(ToolBridge(load_config(args.config)))
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
    )
    if hasattr(args, "func"):
        sys.exit(args.func(args))
    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
