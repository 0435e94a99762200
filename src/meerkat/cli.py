"""Meerkat CLI interface."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from meerkat import __version__
from meerkat.core.config import Settings, get_settings
from meerkat.core.logging_config import setup_logging
from meerkat.models import DEFAULT_CURRENCY
from meerkat.output import (
    print_error,
    print_json,
    print_status,
    print_success,
    print_table,
)
from meerkat.services.api_client import ApiClient
from meerkat.services.auth import AuthRequiredError, TokenManager
from meerkat.services.credential_store import SETTABLE_KEYS, CredentialStore
from meerkat.services.login import LoginFlow
from meerkat.services.receipts import ReceiptService, format_currency
from meerkat.services.uploads import UploadService, validate_files

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_AUTH_REQUIRED = AuthRequiredError.exit_code
EXIT_INTERRUPTED = 130


@dataclass(frozen=True)
class GlobalOptions:
    """Options shared by every command, passed explicitly to each handler."""

    json: bool = False
    server: str | None = None
    verbose: bool = False

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> GlobalOptions:
        return cls(json=args.json, server=args.server, verbose=args.verbose)


def report_error(message: str, opts: GlobalOptions) -> None:
    """Render an error as JSON on stdout or as a line on stderr."""
    if opts.json:
        print_json({"error": message})
    else:
        print_error(message)


class MeerkatCLI:
    """Main CLI application class."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        prompt: Callable[[str], str] = input,
        password_prompt: Callable[[str], str] = getpass.getpass,
    ) -> None:
        """Initialize the CLI application.

        Args:
            settings: CLI settings, defaults to the environment
            transport: HTTP transport override, used by tests
            prompt: Reads a line of user input
            password_prompt: Reads a password without echo
        """
        self.settings = settings or get_settings()
        self.transport = transport
        self.prompt = prompt
        self.password_prompt = password_prompt
        self.store = CredentialStore.from_settings(self.settings)

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.http_timeout,
            transport=self.transport,
            follow_redirects=True,
        )

    def _api_client(self, http_client: httpx.AsyncClient, opts: GlobalOptions) -> ApiClient:
        token_manager = TokenManager(
            self.store,
            http_client,
            refresh_buffer=self.settings.token_refresh_buffer,
        )
        return ApiClient(
            self.store,
            token_manager,
            http_client,
            verbose=opts.verbose,
            server_url=opts.server,
        )

    async def login_command(self, args: argparse.Namespace, opts: GlobalOptions) -> None:
        """Handle the login command."""
        server_url = opts.server
        if not server_url:
            default = self.settings.default_server_url
            server_url = self.prompt(f"Server URL [{default}]: ").strip() or default
        email = args.email or self.prompt("Email: ").strip()
        password = args.password or self.password_prompt("Password: ")

        if not opts.json:
            print_status("Logging in…")

        async with self._http_client() as http_client:
            flow = LoginFlow(self.store, http_client, self.settings, verbose=opts.verbose)
            result = await flow.login(server_url, email, password)

        if opts.json:
            print_json({"email": result.email, "server": result.server_url})
        else:
            print_success(f"Logged in as {result.email}")

    async def logout_command(self, args: argparse.Namespace, opts: GlobalOptions) -> None:  # noqa: ARG002
        """Handle the logout command."""
        self.store.delete_credentials()
        if opts.json:
            print_json({"message": "Logged out"})
        else:
            print_success("Logged out successfully.")

    async def whoami_command(self, args: argparse.Namespace, opts: GlobalOptions) -> None:  # noqa: ARG002
        """Handle the whoami command."""
        credentials = self.store.load_credentials()
        if credentials is None:
            msg = "Not logged in. Run `meerkat login` first."
            raise AuthRequiredError(msg)

        config = self.store.load_config()
        server = config.server_url if config else "unknown"

        if opts.json:
            print_json(
                {
                    "email": credentials.email,
                    "server": server,
                    "expires_at": credentials.expires_at,
                }
            )
            return

        expires = datetime.fromtimestamp(credentials.expires_at, UTC)
        print_success(f"Logged in as {credentials.email}")
        print(f"  Server: {server}")  # noqa: T201
        print(f"  Token expires: {expires:%Y-%m-%d %H:%M:%S} UTC")  # noqa: T201

    async def config_command(self, args: argparse.Namespace, opts: GlobalOptions) -> None:
        """Handle the config command."""
        if args.config_command == "set":
            self.store.update_config(args.key, args.value)
            if opts.json:
                print_json({"key": args.key, "value": args.value})
            else:
                print_success(f"Set {args.key} = {args.value}")
            return

        config = self.store.load_config()
        credentials = self.store.load_credentials()
        currency = config.display_currency if config else DEFAULT_CURRENCY

        if opts.json:
            print_json(
                {
                    "server_url": config.server_url if config else None,
                    "currency": currency,
                    "email": credentials.email if credentials else None,
                    "config_path": str(self.store.config_path),
                    "credentials_path": str(self.store.credentials_path),
                }
            )
            return

        print_success("Current configuration")
        print(f"  Server: {config.server_url if config else 'not set'}")  # noqa: T201
        print(f"  Currency: {currency}")  # noqa: T201
        print(f"  Email: {credentials.email if credentials else 'not logged in'}")  # noqa: T201
        print(f"  Config file: {self.store.config_path}")  # noqa: T201
        print(f"  Credentials file: {self.store.credentials_path}")  # noqa: T201

    async def receipts_command(self, args: argparse.Namespace, opts: GlobalOptions) -> None:
        """Handle the receipts command."""
        if args.receipts_command == "show":
            await self._show_receipt(args.id, opts)
        else:
            await self._list_receipts(args.limit, args.offset, opts)

    async def _list_receipts(self, limit: int, offset: int, opts: GlobalOptions) -> None:
        if not opts.json:
            print_status("Fetching receipts…")

        async with self._http_client() as http_client:
            service = ReceiptService(self._api_client(http_client, opts), self.store)
            view = await service.list_receipts(limit, offset)

        if opts.json:
            print_json(view.raw)
            return

        if not view.data.items:
            print("No receipts found.")  # noqa: T201
            return

        print_table(
            ["ID", "Store", "Date", "Total", "Items"],
            [
                [
                    str(r.id),
                    view.store_name(r.supermarket_id),
                    r.date,
                    format_currency(r.total, view.currency),
                    str(len(r.products)) if r.products is not None else "-",
                ]
                for r in view.data.items
            ],
        )
        print_success(f"Showing {len(view.data.items)} of {view.data.total} receipts")

    async def _show_receipt(self, receipt_id: str, opts: GlobalOptions) -> None:
        if not opts.json:
            print_status("Fetching receipt…")

        async with self._http_client() as http_client:
            service = ReceiptService(self._api_client(http_client, opts), self.store)
            view = await service.get_receipt(receipt_id)

        receipt = view.receipt
        if opts.json:
            print_json(view.raw)
            return

        print_success(f"Receipt #{receipt.id}")
        print(f"  Store: {view.store_name}")  # noqa: T201
        print(f"  Date: {receipt.date}")  # noqa: T201
        print(f"  Total: {format_currency(receipt.total, view.currency)}")  # noqa: T201

        if receipt.products:
            print()  # noqa: T201
            print_table(
                ["Product", "Qty", "Unit Price", "Price"],
                [
                    [
                        p.name,
                        f"{p.quantity:g}",
                        format_currency(p.unit_price, view.currency),
                        format_currency(p.price, view.currency),
                    ]
                    for p in receipt.products
                ],
            )

    async def upload_command(self, args: argparse.Namespace, opts: GlobalOptions) -> None:
        """Handle the upload command."""
        files = validate_files(args.files)

        async with self._http_client() as http_client:
            service = UploadService(
                self._api_client(http_client, opts),
                poll_interval=self.settings.upload_poll_interval,
                poll_timeout=self.settings.upload_poll_timeout,
            )
            if not opts.json:
                print_status(f"Uploading {len(files)} file(s)…")
            result = await service.upload(files)
            uploaded = result.response.items

            if args.wait and uploaded:
                if not opts.json:
                    print_status("Waiting for processing…")
                completed = await service.wait_for_all(uploaded)

                if opts.json:
                    print_json([done.raw for done in completed])
                else:
                    print_table(
                        ["ID", "File", "Status", "Merchant", "Amount"],
                        [
                            [
                                item.id,
                                item.file_name,
                                item.status,
                                item.merchant_name or "-",
                                (
                                    f"{item.total_amount} {item.currency or ''}".rstrip()
                                    if item.total_amount is not None
                                    else "-"
                                ),
                            ]
                            for item in (done.item for done in completed)
                        ],
                    )
            elif opts.json:
                print_json(result.raw)
            else:
                print_table(
                    ["ID", "File", "Status"],
                    [[item.id, item.file_name, item.status] for item in uploaded],
                )

        if not opts.json:
            print_success(f"Uploaded {len(files)} file(s)")

    async def run(self, args: argparse.Namespace) -> int:
        """Dispatch a parsed command and map failures to an exit code."""
        opts = GlobalOptions.from_args(args)
        handlers = {
            "login": self.login_command,
            "logout": self.logout_command,
            "whoami": self.whoami_command,
            "config": self.config_command,
            "receipts": self.receipts_command,
            "upload": self.upload_command,
        }

        try:
            await handlers[args.command](args, opts)
        except AuthRequiredError as e:
            report_error(str(e), opts)
            return e.exit_code
        except Exception as e:
            logger.debug("Command %s failed", args.command, exc_info=True)
            report_error(str(e) or type(e).__name__, opts)
            return EXIT_ERROR
        return EXIT_SUCCESS


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="meerkat",
        description="Meerkat CLI - upload and manage receipts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  meerkat login
  meerkat upload receipt.jpg invoice.pdf --wait
  meerkat receipts list --limit 10
  meerkat --json receipts show 101
  meerkat config set currency USD

Supported formats: PNG, JPEG, WebP, PDF
Settable config keys: {", ".join(SETTABLE_KEYS)}
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"meerkat {__version__}",
    )
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument("--server", metavar="URL", help="Server URL override")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    subparsers.required = True

    # Login command
    login_parser = subparsers.add_parser(
        "login",
        help="Authenticate with Meerkat",
        description="Log in with email and password; prompts for missing values",
    )
    login_parser.add_argument("-e", "--email", help="Email address")
    login_parser.add_argument("-p", "--password", help="Password")

    subparsers.add_parser("logout", help="Clear stored credentials")
    subparsers.add_parser("whoami", help="Show current authentication status")

    # Config command
    config_parser = subparsers.add_parser(
        "config", help="View or edit CLI configuration"
    )
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Show current configuration")
    set_parser = config_sub.add_parser("set", help="Set a configuration value")
    set_parser.add_argument("key", help=f"One of: {', '.join(SETTABLE_KEYS)}")
    set_parser.add_argument("value", help="New value")

    # Receipts command
    receipts_parser = subparsers.add_parser("receipts", help="List and view receipts")
    receipts_parser.set_defaults(limit=50, offset=0)
    receipts_sub = receipts_parser.add_subparsers(dest="receipts_command")
    list_parser = receipts_sub.add_parser("list", help="List recent receipts")
    list_parser.add_argument(
        "-l", "--limit", type=int, default=50, help="Number of receipts to fetch"
    )
    list_parser.add_argument(
        "-o", "--offset", type=int, default=0, help="Offset for pagination"
    )
    show_parser = receipts_sub.add_parser("show", help="Show receipt detail")
    show_parser.add_argument("id", help="Receipt ID")

    # Upload command
    upload_parser = subparsers.add_parser(
        "upload",
        help="Upload receipt files",
        description="Upload receipt images or PDFs for processing",
    )
    upload_parser.add_argument("files", nargs="+", help="Files to upload")
    upload_parser.add_argument(
        "-w",
        "--wait",
        action="store_true",
        help="Wait for processing to complete",
    )

    return parser


async def async_main(argv: Sequence[str] | None = None) -> int:
    """Async main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        report_error(
            f"Invalid setting {field}: {error['msg']}", GlobalOptions.from_args(args)
        )
        return EXIT_ERROR
    setup_logging(settings.log_level, verbose=args.verbose)

    cli = MeerkatCLI(settings)
    return await cli.run(args)


def main() -> None:
    """Main entry point for the CLI."""
    try:
        exit_code = asyncio.run(async_main())
    except KeyboardInterrupt:
        print("\n\nOperation cancelled by user", file=sys.stderr)  # noqa: T201
        sys.exit(EXIT_INTERRUPTED)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
