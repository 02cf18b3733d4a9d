"""CLI entrypoints for signing in to the dashboard API from a terminal."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
from collections.abc import Sequence

from potencialize_sdk.client import get_authenticated_client
from potencialize_sdk.config import configure_structlog, get_settings
from potencialize_sdk.errors import normalize_error
from potencialize_sdk.exceptions import SDKError
from potencialize_sdk.session import SessionController, get_session_controller


def _print_json(payload: object) -> None:
    print(json.dumps(payload, ensure_ascii=False))


async def _run_login(controller: SessionController, email: str, password: str) -> int:
    session = await controller.login(email, password)
    _print_json({"role": session.role, "owner_id": session.owner_id})
    return 0


async def _run_whoami(controller: SessionController) -> int:
    session = await controller.boot()
    if session is None:
        _print_json({"authenticated": False})
        return 1
    _print_json({"authenticated": True, "role": session.role, "owner_id": session.owner_id})
    return 0


async def _run_logout(controller: SessionController) -> int:
    await controller.logout()
    _print_json({"authenticated": False})
    return 0


async def _run_get(controller: SessionController, path: str) -> int:
    if await controller.boot() is None:
        _print_json({"status": 401, "message": "Not authenticated."})
        return 1
    payload = await get_authenticated_client().request_json("GET", path)
    _print_json(payload)
    return 0


async def _dispatch(args: argparse.Namespace) -> int:
    """Run one command against the shared session and close the transport."""
    controller = get_session_controller()
    client = get_authenticated_client()
    try:
        if args.command == "login":
            password = args.password or getpass.getpass("Password: ")
            return await _run_login(controller, args.email, password)
        if args.command == "whoami":
            return await _run_whoami(controller)
        if args.command == "logout":
            return await _run_logout(controller)
        return await _run_get(controller, args.path)
    except SDKError as exc:
        _print_json(normalize_error(exc))
        return 1
    finally:
        await client.aclose()


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported session commands."""
    parser = argparse.ArgumentParser(prog="potencialize")
    subcommands = parser.add_subparsers(dest="command", required=True)

    login_parser = subcommands.add_parser("login")
    login_parser.add_argument("email")
    login_parser.add_argument(
        "--password",
        default=None,
        help="Password; prompted for when omitted.",
    )

    subcommands.add_parser("whoami")
    subcommands.add_parser("logout")

    get_parser = subcommands.add_parser("get")
    get_parser.add_argument("path", help="API path relative to the base URL, e.g. /classes/")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_structlog(get_settings())
    return asyncio.run(_dispatch(args))


if __name__ == "__main__":
    raise SystemExit(main())
