"""
Worst Generation - Main entry point for the terminal client.

This is the single place that turns fatal results into exit codes:
0 on graceful quit or disconnect, 1 on connection failure, missing alias,
missing registration key, rejected login or failed registration.
"""

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.prompt import Prompt

from . import __version__
from .channel import SocketIOChannel
from .config import Config
from .constants import (
    DEFAULT_DATA_DIR,
    LOG_BACKUP_COUNT,
    LOG_DATE_FORMAT,
    LOG_FILENAME,
    LOG_FORMAT,
    LOG_MAX_BYTES,
    LOGS_DIR,
)
from .crypto import generate_identity
from .errors import (
    ConfigError,
    CryptoError,
    EmptyAliasInput,
    FatalError,
    RegistrationKeyMissing,
)
from .ui import ChatApp
from .utils import validate_alias, validate_server_url

logger = logging.getLogger(__name__)

console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="worstgen",
        description="Worst Generation - terminal client for the encrypted relay chat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  worstgen -a neo                       # Log in as neo
  worstgen -a neo -k REGKEY             # First run: register neo
  worstgen -s http://localhost:3000     # Use a local relay
        """,
    )

    parser.add_argument("--version", action="version", version=f"worstgen {__version__}")
    parser.add_argument("-s", "--server", type=str, default=None, help="Chat server URL")
    parser.add_argument("-a", "--alias", type=str, default=None, help="Your hacker alias")
    parser.add_argument(
        "-k",
        "--key",
        type=str,
        default=None,
        help="Server registration key (only needed for first-time setup)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help=f"Path to configuration file (default: {DEFAULT_DATA_DIR}/config.toml)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def setup_logging(config: Config, data_dir: Path, debug: bool = False) -> None:
    """
    Send log records to a rotating file under data_dir/logs.

    Nothing is logged to the console; the terminal belongs to the UI.
    """
    root = logging.getLogger()
    level_name = "DEBUG" if debug else str(config.get("logging", "level", "INFO")).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if not config.get("logging", "file_logging", True):
        root.addHandler(logging.NullHandler())
        return

    log_dir = data_dir / LOGS_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILENAME,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    root.addHandler(handler)


def resolve_alias(
    cli_alias: Optional[str], config: Config, prompt: Optional[Callable[[str], str]] = None
) -> str:
    """
    Alias from the command line, then config, then an interactive prompt.

    Raises:
        EmptyAliasInput: if the result is blank or not a valid alias
    """
    alias = cli_alias or config.get("auth", "alias", "")
    if not alias:
        prompt = prompt or Prompt.ask
        alias = (prompt("[cyan]Enter your alias[/]") or "").strip()
    if not validate_alias(alias):
        raise EmptyAliasInput()
    return alias


def report_failure(failure: FatalError) -> None:
    console.print(f"[red]Error:[/] {failure.message}")
    if isinstance(failure, RegistrationKeyMissing):
        console.print(
            "[yellow]Please run again with --key or -k flag to provide the registration key[/]"
        )


def run(argv: Optional[List[str]] = None) -> int:
    """Run the client and return the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = Config(Path(args.config).expanduser() if args.config else None)
    except ConfigError as e:
        console.print(f"[red]{e}[/]")
        return 1

    setup_logging(config, config.config_path.parent, args.debug)

    server_url = args.server or config.get("server", "url")
    if not validate_server_url(server_url):
        console.print(f"[red]Invalid server URL:[/] {server_url}")
        return 1

    registration_key = args.key or config.get("auth", "registration_key") or None

    try:
        alias = resolve_alias(args.alias, config)
        identity = generate_identity(alias)
    except FatalError as e:
        report_failure(e)
        return e.exit_code
    except CryptoError as e:
        # no session is possible without a keypair
        logger.critical(f"Key generation failed: {e}")
        console.print(f"[red]{e}[/]")
        return 1

    app = ChatApp(
        identity,
        SocketIOChannel(),
        server_url,
        registration_key=registration_key,
        auth_timeout=config.get("server", "auth_timeout"),
        show_history=config.get("ui", "show_history", True),
    )
    app.run()

    if app.failure is not None:
        report_failure(app.failure)
    elif app.exit_code != 0:
        console.print("[red]Error:[/] the client stopped unexpectedly, see the log for details")
    return app.exit_code


def main():
    """Console script entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
