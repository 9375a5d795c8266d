#!/usr/bin/env python3
"""
List pending registrations and their verification codes.

The operator on duty runs this after a registrant's WhatsApp message comes
in, then reads the code back to them. Expired entries are marked; with
--purge they are deleted.

Usage:
    python scripts/pending-registrations.py [--gateway URL] [--purge]

Example:
    python scripts/pending-registrations.py --gateway http://localhost:8080
"""

import argparse
import sys
import time
from datetime import datetime

import httpx

from guardian import config, paths


def main():
    parser = argparse.ArgumentParser(description="List pending registrations")
    parser.add_argument("--gateway", default=config.GATEWAY_URL, help="Store gateway URL")
    parser.add_argument("--purge", action="store_true", help="Delete expired registrations")
    args = parser.parse_args()

    with httpx.Client(base_url=args.gateway, timeout=10.0) as client:
        try:
            response = client.get(f"/tree/{paths.PENDING_REGISTRATIONS}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            print(f"Failed to reach gateway at {args.gateway}: {e}")
            sys.exit(1)

        pending = response.json().get("value") or {}
        if not pending:
            print("No pending registrations.")
            return

        now = int(time.time() * 1000)
        print(f"{'USERNAME':<24} {'CHILD':<20} {'CODE':<8} {'CREATED':<20} STATE")
        for key, record in sorted(pending.items(), key=lambda item: item[1].get("createdAt", 0)):
            created_at = record.get("createdAt", 0)
            expired = now - created_at >= config.REGISTRATION_TTL_MS
            created = datetime.fromtimestamp(created_at / 1000).strftime("%Y-%m-%d %H:%M:%S")
            state = "expired" if expired else f"{(config.REGISTRATION_TTL_MS - (now - created_at)) // 1000}s left"
            print(f"{key:<24} {record.get('childName', ''):<20} {record.get('code', ''):<8} {created:<20} {state}")

            if expired and args.purge:
                client.delete(f"/tree/{paths.pending_registration(key)}").raise_for_status()
                print(f"  deleted {key}")


if __name__ == "__main__":
    main()
