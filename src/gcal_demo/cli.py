"""CLI for gcal-demo.

Usage:
    gcal-demo                      # Authorize if needed, then create/update/get/delete an event
    gcal-demo run [--manual]       # Same as above
    gcal-demo login                # Obtain or refresh the cached token only
    gcal-demo status               # Show cached token status
    gcal-demo revoke               # Revoke and delete the cached token
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from gcal_demo.auth import AuthorizationAgent
from gcal_demo.calendar import CalendarClient, CalendarOperationRunner
from gcal_demo.config import Settings, load_client_config, load_env_file
from gcal_demo.exceptions import CalendarDemoError

logger = logging.getLogger(__name__)


def _make_agent(settings: Settings, args: argparse.Namespace) -> AuthorizationAgent:
    config = load_client_config(settings.credentials_path, settings.scopes)
    return AuthorizationAgent(
        config,
        token_path=settings.token_path,
        host=settings.host,
        port=settings.resolve_port(config),
        open_browser=not getattr(args, "no_browser", True),
    )


def cmd_run(settings: Settings, args: argparse.Namespace) -> int:
    """Authorize, then run the demo event lifecycle."""
    agent = _make_agent(settings, args)
    agent.obtain_token(manual=args.manual, timeout=args.timeout)

    client = CalendarClient(agent.build_service("calendar", "v3"), calendar_id=settings.calendar_id)
    runner = CalendarOperationRunner(client, time_zone=settings.time_zone)
    runner.run(include_get=not args.skip_get)
    return 0


def cmd_login(settings: Settings, args: argparse.Namespace) -> int:
    """Obtain a token without touching the calendar."""
    agent = _make_agent(settings, args)
    agent.obtain_token(manual=args.manual, timeout=args.timeout)
    print("Authorized.")
    return cmd_status(settings, args, agent=agent)


def cmd_status(
    settings: Settings,
    args: argparse.Namespace,
    agent: AuthorizationAgent | None = None,
) -> int:
    """Show cached token status."""
    agent = agent or _make_agent(settings, args)
    info = agent.get_token_info()

    print(f"Token file: {info['path']}")
    if info["status"] == "no_token":
        print("Status:     not authorized")
        print("Run 'gcal-demo login' to authorize.")
        return 1

    print(f"Status:     {info['status']}")
    print(f"Expires in: {info['expires_in']}")
    print(f"Refresh:    {'yes' if info['has_refresh_token'] else 'no'}")
    print("Scopes:")
    for scope in info["scopes"]:
        print(f"  - {scope}")
    return 0


def cmd_revoke(settings: Settings, args: argparse.Namespace) -> int:
    """Revoke the cached token."""
    agent = _make_agent(settings, args)
    agent.revoke_token()
    print("Token revoked.")
    return 0


def _add_auth_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--manual",
        action="store_true",
        help="Paste the authorization code instead of running a local callback server",
    )
    parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Don't open browser automatically",
    )
    parser.add_argument("--host", type=str, help="Callback host (default: localhost)")
    parser.add_argument("--port", type=int, help="Callback port (default: 8080)")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for the OAuth callback (default: wait forever)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gcal-demo",
        description="Google Calendar API demonstration client",
    )
    parser.add_argument("--credentials", type=Path, help="OAuth client secret file")
    parser.add_argument("--token", type=Path, help="Token cache file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable info logging")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # run
    run_parser = subparsers.add_parser("run", help="Create, update, get and delete an event")
    _add_auth_arguments(run_parser)
    run_parser.add_argument("--skip-get", action="store_true", help="Skip the retrieval step")
    run_parser.add_argument("--time-zone", type=str, help="Event time zone (default: Asia/Kolkata)")
    run_parser.add_argument("--calendar", type=str, help="Calendar ID (default: primary)")

    # login
    login_parser = subparsers.add_parser("login", help="Obtain or refresh the OAuth token")
    _add_auth_arguments(login_parser)

    subparsers.add_parser("status", help="Show token status")
    subparsers.add_parser("revoke", help="Revoke token")

    return parser


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.credentials:
        settings.credentials_path = args.credentials
    if args.token:
        settings.token_path = args.token.expanduser()
    if getattr(args, "host", None):
        settings.host = args.host
    if getattr(args, "port", None) is not None:
        settings.port = args.port
    if getattr(args, "time_zone", None):
        settings.time_zone = args.time_zone
    if getattr(args, "calendar", None):
        settings.calendar_id = args.calendar
    return settings


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        args = parser.parse_args([*argv, "run"])

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "run": cmd_run,
        "login": cmd_login,
        "status": cmd_status,
        "revoke": cmd_revoke,
    }

    try:
        load_env_file()
        settings = _apply_overrides(Settings.from_env(), args)
        return commands[args.command](settings, args)
    except CalendarDemoError as e:
        logger.debug("Fatal error", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nAborted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
