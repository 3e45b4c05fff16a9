"""Command-line client for a running Jar Stream server, plus local operator commands."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import Any, Dict, Optional

import httpx

DEFAULT_HOST = os.environ.get("JARSTREAM_HOST", "127.0.0.1")
DEFAULT_PORT = int(os.environ.get("JARSTREAM_PORT", "8080"))
DEFAULT_TIMEOUT = float(os.environ.get("JARSTREAM_TIMEOUT", "10.0"))


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        from .main import main as serve

        asyncio.run(serve())
        return 0

    if args.command == "register-streamer":
        return _register_streamer(args)

    if args.command == "overlay":
        return _run_overlay(args)

    base_url = _resolve_base_url(args.host, args.port)
    timeout = args.timeout
    headers = {"X-Admin-Token": args.admin_token} if args.admin_token else {}

    if args.command == "donate":
        params: Dict[str, Any] = {
            "nickname": args.nickname,
            "amount": args.amount,
            "message": " ".join(args.message).strip(),
            "streamer": args.streamer,
        }
        if args.youtube:
            params["youtube"] = args.youtube
        payload = _call("GET", f"{base_url}/api/donations/create", timeout, params=params)
        if payload is None:
            return 1
        print(f"Identifier: {payload.get('identifier')}")
        print(f"Pay here:   {payload.get('url')}")
        return 0

    scope = {"streamerId": args.streamer_id}

    if args.command == "queue":
        return _show_queue(base_url, timeout, scope)

    if args.command == "next":
        payload = _call("PATCH", f"{base_url}/api/youtube/queue", timeout, params=scope)
        if payload is None:
            return 1
        video = payload.get("nextVideo")
        print(f"Now playing: {video['identifier']} from {video['nickname']}" if video else payload.get("message"))
        return 0

    if args.command == "clear":
        payload = _call("DELETE", f"{base_url}/api/youtube/queue", timeout, params=scope)
        if payload is None:
            return 1
        print(f"Cleared {payload.get('clearedCount', 0)} finished videos.")
        return 0

    if args.command == "test-donation":
        payload = _call("POST", f"{base_url}/api/donations/test", timeout, params=scope, headers=headers)
        if payload is None:
            return 1
        donation = payload.get("donation") or {}
        print(f"Test donation {donation.get('identifier')} from {donation.get('nickname')} sent.")
        return 0

    if args.command == "purge-tests":
        payload = _call("DELETE", f"{base_url}/api/donations/test", timeout, params=scope, headers=headers)
        if payload is None:
            return 1
        print(f"Removed {payload.get('deletedEvents', 0)} events and {payload.get('deletedIntents', 0)} intents.")
        return 0

    if args.command in {"pause", "resume"}:
        payload = _call(
            "POST",
            f"{base_url}/api/donations/pause",
            timeout,
            params=scope,
            headers=headers,
            json={"paused": args.command == "pause"},
        )
        if payload is None:
            return 1
        print("Donations paused." if payload.get("paused") else "Donations resumed.")
        return 0

    parser.error("Unknown command")
    return 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jar-stream",
        description="Run and control the Jar Stream donation server from any terminal.",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help="Server host (default: %(default)s)")
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help="Server port (default: %(default)s)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="HTTP timeout in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--admin-token",
        default=os.environ.get("ADMIN_TOKEN"),
        help="Value sent as X-Admin-Token for streamer-only endpoints",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Start the donation server")

    donate_parser = subparsers.add_parser("donate", help="Create a donation intent and print the payment link")
    donate_parser.add_argument("streamer", help="Streamer slug")
    donate_parser.add_argument("nickname", help="Donor nickname")
    donate_parser.add_argument("amount", help="Amount in whole currency units")
    donate_parser.add_argument("message", nargs=argparse.REMAINDER, help="Donation message")
    donate_parser.add_argument("--youtube", help="YouTube clip to attach")

    for name, help_text in (
        ("queue", "Print the video queue"),
        ("next", "Finish the current clip and start the next one"),
        ("clear", "Hide completed and skipped clips"),
        ("test-donation", "Broadcast a random test donation"),
        ("purge-tests", "Delete test donations"),
        ("pause", "Pause donation notifications"),
        ("resume", "Resume donation notifications"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("streamer_id", type=int, help="Streamer id")

    register = subparsers.add_parser("register-streamer", help="Create a streamer and its webhook config")
    register.add_argument("slug", help="Donation page slug")
    register.add_argument("--name", help="Display name")
    register.add_argument("--jar-id", help="Monobank jar id")
    register.add_argument("--jar-title", help="Jar title shown in history")
    register.add_argument("--jar-goal", type=int, help="Jar goal")
    register.add_argument("--api-token", help="Monobank API token (stored encrypted)")

    overlay = subparsers.add_parser("overlay", help="Run a headless overlay widget against the server")
    overlay.add_argument("--token", help="Widget token (default: OVERLAY_WIDGET_TOKEN)")
    overlay.add_argument("--streamer-id", type=int, help="Streamer id (default: OVERLAY_STREAMER_ID)")

    return parser


def _resolve_base_url(host: str, port: int) -> str:
    if host.startswith("http://") or host.startswith("https://"):
        return host.rstrip("/")
    return f"http://{host}:{port}"


def _call(
    method: str,
    url: str,
    timeout: float,
    *,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    json: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    try:
        response = httpx.request(method, url, params=params, headers=headers, json=json, timeout=timeout)
        response.raise_for_status()
    except httpx.RequestError as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        return None
    except httpx.HTTPStatusError as exc:
        detail = exc.response.text
        print(f"Server responded with error {exc.response.status_code}: {detail}", file=sys.stderr)
        return None

    payload = response.json()
    if not isinstance(payload, dict):
        print("Unexpected response payload", file=sys.stderr)
        return None
    return payload


def _show_queue(base_url: str, timeout: float, scope: Dict[str, Any]) -> int:
    payload = _call("GET", f"{base_url}/api/youtube/queue", timeout, params=scope)
    if payload is None:
        return 1

    playing = payload.get("currentlyPlaying")
    print("Now playing:")
    if playing:
        print(f"  {playing.get('nickname')} - {playing.get('amount')}")
        print(f"  {playing.get('youtubeUrl')}")
    else:
        print("  None")

    print(
        f"\nTotal: {payload.get('totalVideos', 0)}  pending: {payload.get('pendingVideos', 0)}"
        f"  waiting for TTS: {payload.get('waitingVideos', 0)}  completed: {payload.get('completedVideos', 0)}"
    )
    queue = payload.get("queue", [])
    if queue:
        print("Queue:")
        for idx, item in enumerate(queue, start=1):
            print(f"  {idx}. [{item.get('status')}] {item.get('nickname')} - {item.get('amount')}")
            if item.get("message"):
                print(f"     {item.get('message')}")
    else:
        print("Queue: empty")

    return 0


def _register_streamer(args: argparse.Namespace) -> int:
    from .config import get_settings
    from .crypto import TokenCipher
    from .storage import Database, StreamerStore

    settings = get_settings()
    key = settings.encryption_key
    database = Database(settings.database_url)
    database.create_all()
    try:
        with database.session() as session:
            store = StreamerStore(session, TokenCipher(key.get_secret_value() if key else None))
            streamer_id = store.find_streamer_id_by_slug(args.slug)
            if streamer_id is None:
                streamer_id = store.create_streamer(args.slug, args.name)
            config = store.upsert_webhook_config(
                streamer_id,
                base_url=settings.base_url(),
                jar_id=args.jar_id,
                jar_title=args.jar_title,
                jar_goal=args.jar_goal,
                api_token=args.api_token,
            )
    finally:
        database.dispose()

    print(f"Streamer id:   {streamer_id}")
    print(f"Webhook URL:   {config.webhook_url}")
    print(f"Widget token:  {config.obs_widget_token}")
    return 0


def _run_overlay(args: argparse.Namespace) -> int:
    from .config import get_settings
    from .logging import configure_logging
    from .overlay.runner import run_headless_overlay

    settings = get_settings()
    configure_logging(settings.log_level)
    token = args.token or settings.overlay_widget_token
    streamer_id = args.streamer_id if args.streamer_id is not None else settings.overlay_streamer_id
    if not token and streamer_id is None:
        print("A widget token or streamer id is required", file=sys.stderr)
        return 2
    try:
        asyncio.run(run_headless_overlay(settings, token=token, streamer_id=streamer_id))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
