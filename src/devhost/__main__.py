"""
=============================================================================
DEVHOST CLI
=============================================================================

    python -m devhost
    python -m devhost --port 3000 --project shop --project blog
    python -m devhost --template ./template.tar.gz --install-command "npm install"
    devhost --projects-dir ~/work/projects --log-level DEBUG

Settings come from DEVHOST_* environment variables first (see config.py);
any flag given on the command line overrides its variable.

=============================================================================
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from . import __version__
from .config import DevServerConfig
from .server import DevServer

logger = logging.getLogger("devhost")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devhost",
        description="Multi-project development server with live reload",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  devhost                                   # serve ./projects on :8080
  devhost --port 3000 --project shop        # mount projects/shop at startup
  devhost --template ./starter              # new projects copy ./starter

Admin endpoints:
  GET /add/<name>  GET /remove/<name>  GET /projects  GET /export/<name>
        """,
    )
    parser.add_argument("--host", "-H", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8080, 0 = any)")
    parser.add_argument(
        "--workers", "-w",
        type=int,
        help="Minimum worker threads; max is twice this (default: 4)",
    )
    parser.add_argument("--projects-dir", "-d", help="Directory holding one folder per project")
    parser.add_argument(
        "--template", "-t",
        help="Directory or .tar.gz copied for projects that do not exist yet",
    )
    parser.add_argument(
        "--install-command",
        help='Command run inside a project before it is built, e.g. "npm install"',
    )
    parser.add_argument(
        "--project",
        action="append",
        default=[],
        metavar="NAME",
        help="Project mounted at startup (repeatable)",
    )
    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--log-format", choices=["text", "json"], help="Access log format")
    parser.add_argument("--version", "-v", action="version", version=f"devhost {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> DevServerConfig:
    """Environment-based config with every given flag applied on top."""
    config = DevServerConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "projects_dir": args.projects_dir,
        "template_path": args.template,
        "install_command": args.install_command,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    if args.workers is not None:
        config.min_workers = args.workers
        config.max_workers = args.workers * 2
    if args.project:
        config.initial_projects = list(args.project)
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = config_from_args(args)

    try:
        server = DevServer(config)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
