"""Trigger one ledger derivation run over HTTP (cron / scheduler entrypoint)."""

import argparse
import json
import os

import httpx


def main() -> None:
    """CLI entrypoint for scheduled derivation runs."""

    parser = argparse.ArgumentParser(description="Call POST /ledger/derive and print the run counters.")
    parser.add_argument("--ledger-url", default="http://localhost:8001")
    parser.add_argument("--api-key", default=os.getenv("API_KEY", ""))
    parser.add_argument("--timeout", type=float, default=300.0)
    args = parser.parse_args()

    resp = httpx.post(
        f"{args.ledger_url}/ledger/derive",
        headers={"x-api-key": args.api_key},
        timeout=args.timeout,
    )
    if resp.status_code == 409:
        # Another run holds the lock; the next schedule tick will pick up the work.
        print(json.dumps(resp.json(), indent=2))
        return
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
