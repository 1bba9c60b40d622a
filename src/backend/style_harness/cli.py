"""
Command-line driver for a Style API session.

The session is kept in the JSON session file from settings, so each command
picks up where the previous one stopped.

Usage:
    # From src/backend directory:
    python -m style_harness.cli health
    python -m style_harness.cli login --access-id test_user_123 --gender women
    python -m style_harness.cli bootstrap
    python -m style_harness.cli next --feedback like
    python -m style_harness.cli run --feedback alternate
    python -m style_harness.cli profile
    python -m style_harness.cli logout
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from style_harness.config import settings
from style_harness.errors import IterationAdvanceError, StyleHarnessError
from style_harness.models.schemas import MAX_ITERATIONS, Feedback, IterationResult
from style_harness.services.session_store import JsonFileStore
from style_harness.services.status_monitor import StatusMonitor
from style_harness.services.style_api import StyleApiClient
from style_harness.session.manager import SessionIterationManager

logger = logging.getLogger(__name__)

FEEDBACK_POLICIES = ("like", "dislike", "alternate")


def policy_feedback(policy: str, iteration: int) -> Feedback:
    """Feedback to send for the given target iteration under a fixed policy."""
    if policy == "alternate":
        return Feedback.LIKE if iteration % 2 == 0 else Feedback.DISLIKE
    return Feedback(policy)


def _print_result(result: IterationResult) -> None:
    line = f"  [{result.iteration:2d}/{MAX_ITERATIONS}] "
    if result.completed:
        line += "completed"
    else:
        line += f"{result.style or '?':12s} {result.image_url or '(no image)'}"
    if result.drifted:
        line += f"   (requested {result.requested_iteration})"
    print(line)


async def run_sequence(
    manager: SessionIterationManager,
    policy: str,
    style: Optional[str] = None,
    image_key: Optional[str] = None,
) -> Optional[IterationResult]:
    """
    Drive the session to iteration 30 with a fixed feedback policy.

    style/image_key seed the terminal call when resuming a session whose
    previous result is not known (e.g. stopped at iteration 29).

    Raises IterationAdvanceError when the server reports an iteration that
    does not move past the previous one.
    """
    last: Optional[IterationResult] = None
    if manager.current_iteration == 0:
        last = await manager.bootstrap_first_image()
        _print_result(last)

    while not manager.current_status().complete:
        previous = manager.current_iteration
        target = previous + 1
        if last is not None:
            style, image_key = last.style or style, last.image_key or image_key
        last = await manager.advance(policy_feedback(policy, target), style, image_key)
        _print_result(last)
        if last.iteration <= previous:
            raise IterationAdvanceError(
                f"server reported iteration {last.iteration} after {previous}; stopping the run",
                target_iteration=target,
            )
    return last


async def _dispatch(args: argparse.Namespace, manager: SessionIterationManager, api: StyleApiClient) -> None:
    if args.command == "health":
        online, services = await StatusMonitor(api).check_status()
        print(f"API online: {'yes' if online else 'no'}")
        for s in services:
            code = s.status_code if s.status_code is not None else "-"
            print(f"  {s.name:14s} {s.state.value:12s} {code}  {s.url}")

    elif args.command == "status":
        status = manager.current_status()
        creds = manager.credentials
        print(json.dumps({**status.model_dump(), "preference_id": creds.preference_id if creds else None}, indent=2))

    elif args.command == "login":
        if manager.is_authenticated and 0 < manager.current_iteration < MAX_ITERATIONS:
            print(f"Replacing session in progress at iteration {manager.current_iteration}")
        creds = await manager.create_session(args.access_id, args.gender)
        print(f"preference_id: {creds.preference_id}")
        print(f"ai_id:         {creds.ai_id}")

    elif args.command == "bootstrap":
        _print_result(await manager.bootstrap_first_image())

    elif args.command == "next":
        _print_result(await manager.advance(args.feedback, args.style, args.image_key))

    elif args.command == "run":
        await run_sequence(manager, args.feedback, args.style, args.image_key)
        print(await manager.save_profile())
        print(json.dumps((await manager.get_profile()).model_dump(), indent=2))

    elif args.command == "profile":
        print(json.dumps((await manager.get_profile()).model_dump(), indent=2))

    elif args.command == "save":
        print(await manager.save_profile())

    elif args.command == "logout":
        await manager.end_session()
        print("Session cleared.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Style Preference API session driver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--base-url", default=settings.style_api_base_url, help="Remote API base URL")
    parser.add_argument("--session-file", default=settings.session_store_path, help="Session state file")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Check remote API status")
    sub.add_parser("status", help="Show local session status")

    login = sub.add_parser("login", help="Create a new preference session")
    login.add_argument("--access-id", required=True)
    login.add_argument("--gender", default="women", choices=["women", "men"])

    sub.add_parser("bootstrap", help="Fetch the first image (sends a placeholder dislike)")

    nxt = sub.add_parser("next", help="Submit feedback and get the next image")
    nxt.add_argument("--feedback", choices=["like", "dislike"], default=None)
    nxt.add_argument("--style", default=None, help="Required for iteration 30")
    nxt.add_argument("--image-key", default=None, help="Required for iteration 30")

    run = sub.add_parser("run", help="Run the remaining iterations with a fixed feedback policy")
    run.add_argument("--feedback", choices=FEEDBACK_POLICIES, default="alternate")
    run.add_argument("--style", default=None, help="Seed for the terminal call when resuming")
    run.add_argument("--image-key", default=None, help="Seed for the terminal call when resuming")

    sub.add_parser("profile", help="Show the preference profile")
    sub.add_parser("save", help="Save the preference profile")
    sub.add_parser("logout", help="Forget the local session")
    return parser


async def _main(args: argparse.Namespace) -> int:
    api = StyleApiClient(args.base_url, timeout=settings.request_timeout_seconds)
    manager = SessionIterationManager(
        api,
        JsonFileStore(Path(args.session_file)),
        busy_policy=settings.advance_busy_policy,
    )
    try:
        await _dispatch(args, manager, api)
    except StyleHarnessError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await api.aclose()
    return 0


def main(argv: Optional[list] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    return asyncio.run(_main(args))


if __name__ == "__main__":
    sys.exit(main())
