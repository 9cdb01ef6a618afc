#!/usr/bin/env python3
"""
CLI for the Auth Handshake
==========================
Runs ONE sign-in attempt against the configured backend and prints the
outcome.

Password, registration and simulated attempts need no browser.  Widget and
popup attempts drive a real login page through Playwright (``--login-page``);
the browser is headed with ``--headed`` so a person can complete the
Telegram step.

All configuration flows through ``HandshakeRunConfig``: defaults, then
``HANDSHAKE_*`` variables (``.env`` honoured), then flags.

Run with: python -m handshake <strategy>
"""

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv
from playwright.async_api import async_playwright

# Load .env file before anything reads the environment
_env_path = Path(__file__).resolve().parent.parent / '.env'
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()  # tries CWD

from .errors import HandshakeError, ValidationError
from .models import AttemptOutcome, Environment, Intent, StrategyKind
from .orchestrator import HandshakeOrchestrator
from .run_config import HandshakeRunConfig
from .surface import PlaywrightSurface

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)

_STRATEGIES = ['password', 'register', 'telegram', 'widget', 'popup', 'simulated']


# ---------------------------------------------------------------------------
# Prompt helpers
# ---------------------------------------------------------------------------

def get_user_input(prompt: str, default: Optional[str] = None) -> str:
    """Get user input with optional default value."""
    if default:
        full_prompt = f"{prompt} [{default}]: "
    else:
        full_prompt = f"{prompt}: "
    response = input(full_prompt).strip()
    return response if response else (default or "")


def _needs_browser(strategy: str, cfg: HandshakeRunConfig) -> bool:
    if strategy in ('widget', 'popup'):
        return True
    if strategy == 'telegram':
        return cfg.resolve().environment is Environment.PRODUCTION
    return False


def print_outcome(outcome: AttemptOutcome) -> None:
    print("\n" + "=" * 65)
    print("  HANDSHAKE RESULT")
    print("=" * 65)
    print(f"  Attempt:   #{outcome.epoch} ({outcome.kind.value})")
    print(f"  Status:    {outcome.status.value}")
    if outcome.succeeded and outcome.session is not None:
        token = outcome.session.token
        print(f"  Token:     {token[:12]}…" if len(token) > 12 else f"  Token:     {token}")
        print(f"  User:      {outcome.session.user}")
    else:
        print(f"  Error:     [{outcome.slot}] {outcome.message}")
    print("=" * 65)


# ---------------------------------------------------------------------------
# Attempt runners
# ---------------------------------------------------------------------------

async def _run_attempt(orchestrator: HandshakeOrchestrator, args) -> AttemptOutcome:
    strategy = args.strategy
    if strategy == 'password':
        email = args.email or get_user_input("Email")
        password = args.password or getpass.getpass("Password: ")
        return await orchestrator.submit_password(email, password)
    if strategy == 'register':
        username = args.username or get_user_input("Username")
        email = args.email or get_user_input("Email")
        password = args.password or getpass.getpass("Password: ")
        confirm = args.confirm_password or getpass.getpass("Confirm password: ")
        return await orchestrator.register(username, email, password, confirm)

    intent = Intent.REGISTER if args.register else Intent.LOGIN
    if strategy == 'telegram':
        return await orchestrator.continue_with_telegram(intent)
    return await orchestrator.start(StrategyKind(strategy), intent=intent)


async def run_without_browser(cfg: HandshakeRunConfig, args) -> AttemptOutcome:
    orchestrator = HandshakeOrchestrator.from_config(cfg)
    cfg.log_summary(orchestrator.resolved)
    try:
        return await _run_attempt(orchestrator, args)
    finally:
        orchestrator.backend.close()


async def run_with_browser(cfg: HandshakeRunConfig, args) -> AttemptOutcome:
    """Open ``cfg.login_page_url`` and run the attempt against that page."""
    pw = await async_playwright().start()
    browser = None
    context = None
    orchestrator = None

    try:
        browser = await pw.chromium.launch(
            headless=cfg.headless,
            args=['--no-sandbox', '--disable-dev-shm-usage'],
        )
        context = await browser.new_context()
        page = await context.new_page()

        logger.info(f"[CLI] Navigating to: {cfg.login_page_url}")
        await page.goto(cfg.login_page_url, wait_until="load", timeout=60_000)

        callback_url = ""
        if cfg.serve_callback_page:
            resolved = cfg.resolve()
            callback_url = f"{resolved.external_origin}{cfg.callback_path}"

        surface = PlaywrightSurface(page, callback_url=callback_url)
        orchestrator = HandshakeOrchestrator.from_config(cfg, surface=surface)
        cfg.log_summary(orchestrator.resolved)
        return await _run_attempt(orchestrator, args)
    finally:
        if orchestrator is not None:
            orchestrator.backend.close()
        if context:
            try:
                await context.close()
            except Exception as e:
                logger.debug(f"[CLI] Context close error: {e}")
        if browser:
            try:
                await browser.close()
            except Exception as e:
                logger.debug(f"[CLI] Browser close error: {e}")
        await pw.stop()


# ---------------------------------------------------------------------------
# Flag-driven entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Auth Handshake - run one sign-in attempt and print the result',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m handshake password --email a@b.com
  python -m handshake register --username alice --email a@b.com
  python -m handshake simulated --simulated-delay 0
  python -m handshake popup --host one063development.onrender.com \\
      --login-page https://one063development.onrender.com/login --headed
        """
    )
    parser.add_argument('strategy', choices=_STRATEGIES, help='Sign-in strategy')
    parser.add_argument('--host', type=str,
                        help='Host name the login page is served from (default: localhost)')
    parser.add_argument('--backend-url', type=str,
                        help='Override the backend origin for every environment')
    parser.add_argument('--register', action='store_true',
                        help='Use the registration endpoint for Telegram strategies')

    form_group = parser.add_argument_group('Form',
        'Values for password/register. Missing values are prompted for.')
    form_group.add_argument('--email', type=str)
    form_group.add_argument('--password', type=str)
    form_group.add_argument('--username', type=str)
    form_group.add_argument('--confirm-password', type=str)

    browser_group = parser.add_argument_group('Browser',
        'Options for widget and popup strategies')
    browser_group.add_argument('--login-page', type=str, metavar='URL',
                               help='Login page that hosts the widget mount point')
    browser_group.add_argument('--headed', action='store_true',
                               help='Show the browser window')
    browser_group.add_argument('--serve-callback', action='store_true',
                               help='Serve the popup callback page from the browser context')
    browser_group.add_argument('--poll-interval', type=float,
                               help='Seconds between popup-closed checks (default: 1.0)')
    browser_group.add_argument('--timeout', type=float,
                               help='Upper bound on an open widget/popup in seconds (default: 300)')
    browser_group.add_argument('--simulated-delay', type=float,
                               help='Simulated Telegram latency in seconds (default: 1.2)')
    return parser


def run_cli_with_args(argv=None) -> int:
    """Parse argv, build HandshakeRunConfig, run.  Returns the exit code."""
    args = build_parser().parse_args(argv)
    cfg = HandshakeRunConfig.from_cli_args(args, base=HandshakeRunConfig.from_env())

    if args.host is None and cfg.login_page_url:
        cfg.hostname = urlparse(cfg.login_page_url).hostname or cfg.hostname

    use_browser = _needs_browser(args.strategy, cfg)
    if use_browser and not cfg.login_page_url:
        print(f"The {args.strategy} strategy requires --login-page "
              f"(or HANDSHAKE_LOGIN_PAGE_URL).")
        return 2

    runner = run_with_browser if use_browser else run_without_browser
    try:
        outcome = asyncio.run(runner(cfg, args))
    except ValidationError as e:
        print("\nForm is invalid:")
        for name, message in e.errors.items():
            print(f"  {name}: {message}")
        return 1
    except HandshakeError as e:
        print(f"\nSign-in not started: {e.message}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130

    print_outcome(outcome)
    return 0 if outcome.succeeded else 1


if __name__ == '__main__':
    sys.exit(run_cli_with_args())
