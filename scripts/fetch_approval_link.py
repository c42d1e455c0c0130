from __future__ import annotations

import argparse
import json
import os

import requests


def main() -> None:
    parser = argparse.ArgumentParser(description="Ask the bridge for a session's approval link")
    parser.add_argument("session_id", help="Session id created by the bot")
    parser.add_argument("--base-url", default=os.getenv("BRIDGE_BASE_URL", "http://127.0.0.1:8000"))
    args = parser.parse_args()

    response = requests.get(
        f"{args.base_url.rstrip('/')}/api/send",
        params={"sessionid": args.session_id},
        timeout=20,
    )
    print(f"status={response.status_code}")
    payload = response.json()
    print(json.dumps(payload, indent=2))
    if response.ok:
        print(f"approval_url={payload['approvalUrl']}")


if __name__ == "__main__":
    main()
