# =============================================================================
# ectt Main Application
# =============================================================================
# The Textual application and the command line entry point.
#
# Textual is an async-native TUI framework. The app itself does no mail
# work: it owns a Session, polls it every 200 ms and routes what comes back
# to the screens:
#   - Screens: Inbox, Reading, Compose
#   - Bindings: per screen, plus ctrl+q to quit anywhere
#
# The CLI has two commands:
#   ectt login [gmail]      run the OAuth flow and print the auth table
#   ectt run [--config]     start the client (the default)
# =============================================================================

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from textual.app import App
from textual.binding import Binding

from ectt import __app_name__, __version__
from ectt.config import Config, ConfigError, dump_auth_toml, print_paths
from ectt.core.errors import EcttError
from ectt.core.message import PartialMessage
from ectt.logs import configure_logging
from ectt.oauth.flow import execute_authentication_flow
from ectt.oauth.providers import DEFAULT_REDIRECT_PORT, Provider
from ectt.session import (
    InboxLoaded,
    InboxLoadFailed,
    MailSent,
    SendFailed,
    Session,
    start_session,
)
from ectt.ui.screens.compose import ComposeScreen
from ectt.ui.screens.inbox import InboxScreen

logger = logging.getLogger(__name__)


class EcttApp(App):
    """
    The main ectt application.

    Attributes:
        session: Connection to the backend workers.
        fatal_error: The error that ended the session, if any.
        TICK_INTERVAL: Seconds between polls of the worker channels.
    """

    TITLE = "ectt"
    SUB_TITLE = "Terminal Email"

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", show=False),
    ]

    TICK_INTERVAL = 0.2

    def __init__(self, session: Session, config: Config | None = None) -> None:
        """
        Initialize the application.

        Args:
            session: A started session.
            config: The loaded configuration (for UI settings).
        """
        super().__init__()
        self.session = session
        self.config = config
        self.fatal_error: EcttError | None = None
        self.date_format = config.ui.date_format if config else "%Y-%m-%d %H:%M"
        self.inbox_screen: InboxScreen | None = None

    async def on_mount(self) -> None:
        """Called when the application is mounted and ready."""
        self.inbox_screen = InboxScreen(date_format=self.date_format)
        await self.push_screen(self.inbox_screen)

        if self.session.load():
            self.inbox_screen.set_loading(True)

        self.set_interval(self.TICK_INTERVAL, self.poll_backends)

    # -------------------------------------------------------------------------
    # Requests from screens
    # -------------------------------------------------------------------------

    def request_more(self, selected_index: int) -> bool:
        """Fetch the next page if the selected row is the last one."""
        return self._guard(lambda: self.session.load_more(selected_index))

    def send_mail(self, message: PartialMessage) -> bool:
        """Queue a message; False if another send is still running."""
        return self._guard(lambda: self.session.send_mail(message))

    def _guard(self, request) -> bool:
        try:
            return request()
        except EcttError as e:
            self._end(e)
            return False

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def poll_backends(self) -> None:
        """Drain worker responses and route them to the screens."""
        try:
            events = self.session.poll()
        except EcttError as e:
            self._end(e)
            return

        for event in events:
            if isinstance(event, InboxLoaded):
                self.inbox_screen.add_emails(event.emails)

            elif isinstance(event, InboxLoadFailed):
                self.inbox_screen.set_loading(False)
                self.notify(f"Failed to load messages: {event.error}", severity="error")

            elif isinstance(event, MailSent):
                self.notify("Message sent", timeout=3)
                if isinstance(self.screen, ComposeScreen):
                    self.screen.sent()

            elif isinstance(event, SendFailed):
                label = "Temporary failure" if event.transient else "Send failed"
                self.notify(f"{label}: {event.error}", severity="error", timeout=10)
                if isinstance(self.screen, ComposeScreen):
                    self.screen.send_failed(str(event.error))

    def _end(self, error: EcttError) -> None:
        logger.error(f"Ending session: {error}")
        self.fatal_error = error
        self.exit(return_code=1)


# =============================================================================
# CLI Entry Point
# =============================================================================

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="ectt: a terminal email client with OAuth2 support",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--paths",
        action="store_true",
        help="Print configuration paths and exit",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (verbose logging)",
    )

    subparsers = parser.add_subparsers(dest="command")

    login = subparsers.add_parser(
        "login",
        help="Authorize ectt with an OAuth provider and print the credentials",
    )
    login.add_argument(
        "provider",
        nargs="?",
        default=Provider.GMAIL.value,
        choices=[provider.value for provider in Provider],
        help="OAuth provider (default: gmail)",
    )
    login.add_argument(
        "--port",
        type=int,
        default=DEFAULT_REDIRECT_PORT,
        help=f"Local port for the OAuth redirect (default: {DEFAULT_REDIRECT_PORT})",
    )
    login.add_argument(
        "--open-browser",
        action="store_true",
        help="Open the authorization URL in a browser",
    )

    run = subparsers.add_parser("run", help="Start the email client (default)")
    run.add_argument(
        "--config",
        type=Path,
        help="Path to config file (default: XDG config location, then ./config.json)",
    )

    return parser.parse_args(argv)


def run_login(provider_name: str, port: int, open_browser: bool) -> int:
    """Run the OAuth flow and print the resulting auth table."""
    provider = Provider(provider_name)

    try:
        client_config = provider.client_config(port=port)
        tokens = asyncio.run(
            execute_authentication_flow(
                client_config,
                provider.scopes,
                port=port,
                open_browser=open_browser,
            )
        )
    except KeyboardInterrupt:
        print("Login cancelled", file=sys.stderr)
        return 130
    except EcttError as e:
        logger.error(f"Login failed: {e}")
        print(f"Login failed: {e}", file=sys.stderr)
        return 1

    print("Add this table as `auth` under [read] and [send] in your config:", file=sys.stderr)
    print(dump_auth_toml(tokens.to_auth(client_config)))
    return 0


def run_client(config_path: Path | None = None) -> int:
    """Load the config, start the workers and run the UI."""
    try:
        config = Config.load(config_path)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    logger.info(f"Loaded config from {config.path}")

    session = start_session(config)
    app = EcttApp(session, config)
    try:
        app.run()
    finally:
        session.shutdown()

    if app.fatal_error is not None:
        print(f"Error: {app.fatal_error}", file=sys.stderr)
        return 1
    return app.return_code or 0


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for ectt.

    This function:
        1. Parses command-line arguments
        2. Handles special commands (--paths, --version)
        3. Sets up file logging
        4. Runs `login` or the client

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = parse_args(argv)

    # Handle --paths flag
    if args.paths:
        print_paths()
        return 0

    log_path = configure_logging(debug=args.debug)
    logger.info(f"Starting {__app_name__} {__version__} (log: {log_path})")

    if args.command == "login":
        return run_login(args.provider, args.port, args.open_browser)

    return run_client(getattr(args, "config", None))


if __name__ == "__main__":
    sys.exit(main())
