#!/usr/bin/env python3
"""
Seed script — creates a small gallery for trying out the feed.

Creates:
  • 8 accounts
  • 4 pictures per account (32 total), each with 1-3 tags
  • Random likes / dislikes across pictures

Run against a running API:
  python scripts/seed_data.py --api-url http://localhost:8000

All IDs are printed so you can use them in curl commands.
"""
import argparse
import json
import random
import time
import urllib.error
import urllib.request
from dataclasses import dataclass


NICKNAMES = [
    "alice_lens",
    "bob_shutter",
    "carol_frames",
    "dave_pixels",
    "eve_exposure",
    "frank_focus",
    "grace_grain",
    "henry_hdr",
]

TAGS = ["cats", "dogs", "landscape", "city", "portrait", "food", "night", "macro", "sea"]

PICTURE_NAMES = [
    "Morning fog",
    "Harbour lights",
    "Sleepy kitten",
    "Rooftop sunset",
    "Old market",
    "Rainy crosswalk",
    "Mountain lake",
    "Puppy on a sofa",
    "Neon alley",
    "Ramen at midnight",
    "Dew on a leaf",
    "Lighthouse",
    "Street musician",
    "Winter forest",
    "Tide pools",
    "Bakery window",
]


@dataclass
class ApiClient:
    base_url: str

    def _send(self, method: str, path: str, data: dict = None) -> dict:
        url = f"{self.base_url}{path}"
        body = json.dumps(data).encode() if data is not None else None
        req = urllib.request.Request(
            url, data=body, headers={"Content-Type": "application/json"}, method=method
        )
        try:
            with urllib.request.urlopen(req, timeout=10) as resp:
                return json.loads(resp.read() or b"{}")
        except urllib.error.HTTPError as e:
            print(f"  HTTP {e.code} on {method} {path}: {e.read().decode()}")
            return {}

    def post(self, path: str, data: dict) -> dict:
        return self._send("POST", path, data)

    def patch(self, path: str, data: dict) -> dict:
        return self._send("PATCH", path, data)

    def get(self, path: str) -> dict:
        return self._send("GET", path)


def wait_for_api(client: ApiClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.base_url} ...")
    for _ in range(retries):
        try:
            if client.get("/health").get("status") == "ok":
                print("  API is ready!\n")
                return
        except urllib.error.URLError:
            pass
        time.sleep(3)
    raise RuntimeError(f"API not reachable at {client.base_url} after {retries} retries")


def main(api_url: str) -> None:
    client = ApiClient(api_url)
    wait_for_api(client)

    # ── Create accounts ──────────────────────────────────────────────────
    print("Creating accounts...")
    account_ids: list[str] = []
    for nickname in NICKNAMES:
        aid = client.post("/accounts/", {"nickname": nickname}).get("account_id", "")
        if aid:
            account_ids.append(aid)
            print(f"  ✓ {nickname} ({aid})")
        else:
            print(f"  ✗ Failed to create {nickname}")

    if not account_ids:
        print("No accounts created — aborting")
        return

    # ── Create pictures ──────────────────────────────────────────────────
    print("\nCreating pictures...")
    picture_ids: list[str] = []
    names = PICTURE_NAMES * 2
    random.shuffle(names)
    idx = 0
    for account_id in account_ids:
        for _ in range(4):
            name = names[idx % len(names)]
            idx += 1
            result = client.post(
                "/pictures/",
                {
                    "account_id": account_id,
                    "name": name,
                    "url": f"https://cdn.picfeed.local/{account_id[:8]}/{idx}.webp",
                    "tags": random.sample(TAGS, k=random.randint(1, 3)),
                },
            )
            pid = result.get("picture_id", "")
            if pid:
                picture_ids.append(pid)
    print(f"  ✓ {len(picture_ids)} pictures created")

    # ── Cast votes ───────────────────────────────────────────────────────
    print("\nCasting votes...")
    votes = 0
    for picture_id in picture_ids:
        # Each picture gets 0-5 voters, mostly likes
        for account_id in random.sample(account_ids, k=random.randint(0, 5)):
            action = "voteup" if random.random() < 0.8 else "votedown"
            if client.patch(f"/pictures/{picture_id}/{action}", {"account_id": account_id}):
                votes += 1
    print(f"  ✓ {votes} votes cast")

    # ── Print summary ────────────────────────────────────────────────────
    print("\n" + "=" * 60)
    print("Seed complete! Here are some commands to try:\n")
    a = account_ids[0]
    print(f"# Personalised feed for '{NICKNAMES[0]}':")
    print(f"  curl -s '{api_url}/feed/?account_id={a}&page_size=5' | python3 -m json.tool\n")
    print(f"# Their tag affinity weights:")
    print(f"  curl -s '{api_url}/feed/affinity?account_id={a}' | python3 -m json.tool\n")
    print(f"# Start over with an empty seen set:")
    print(f"  curl -s -X DELETE '{api_url}/feed/seen?account_id={a}'\n")
    print(f"# Global listing, most liked first:")
    print(f"  curl -s '{api_url}/pictures/?mode=most-liked' | python3 -m json.tool\n")
    print(f"# Prometheus metrics: {api_url}/metrics")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the picture feed")
    parser.add_argument("--api-url", default="http://localhost:8000", help="API base URL")
    args = parser.parse_args()
    main(args.api_url)
