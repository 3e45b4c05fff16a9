"""Manual probe: create an intent on a running server and deliver a bank-style webhook for it."""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

import httpx

ROOT = Path(__file__).resolve().parents[2]
sys.path.append(str(ROOT / "src"))

from jar_stream.identifiers import extract_identifier


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--server", default="http://127.0.0.1:8080")
    parser.add_argument("--streamer", required=True, help="Streamer slug")
    parser.add_argument("--webhook-id", required=True, help="Per-streamer webhook id")
    parser.add_argument("--nickname", default="Manual probe")
    parser.add_argument("--amount", type=int, default=50)
    parser.add_argument("--message", default="Hello from the probe")
    parser.add_argument("--youtube", help="Attach a clip URL")
    parser.add_argument("--repeat", type=int, default=1, help="Deliver the same webhook N times")
    return parser


def main() -> int:
    args = build_parser().parse_args()
    with httpx.Client(base_url=args.server, timeout=10.0) as client:
        params = {
            "nickname": args.nickname,
            "amount": str(args.amount),
            "message": args.message,
            "streamer": args.streamer,
        }
        if args.youtube:
            params["youtube"] = args.youtube
        created = client.get("/api/donations/create", params=params)
        print(f"create -> {created.status_code} {created.text}")
        if created.status_code != 200:
            return 1

        identifier = created.json()["identifier"]
        comment = f"{args.message} ({identifier})"
        if extract_identifier(comment) != identifier:
            print(f"identifier {identifier} does not survive the comment round trip")
            return 1

        body = {
            "type": "StatementItem",
            "data": {
                "account": "manual",
                "statementItem": {
                    "id": f"manual-{int(time.time())}",
                    "time": int(time.time()),
                    "amount": args.amount * 100,
                    "comment": comment,
                },
            },
        }
        for attempt in range(1, args.repeat + 1):
            response = client.post(f"/api/monobank/webhook/{args.webhook_id}", content=json.dumps(body))
            print(f"webhook #{attempt} -> {response.status_code} {response.text}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
