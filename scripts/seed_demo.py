#!/usr/bin/env python3
"""Seed a running permwarden server with a demo subject.

Creates subject ``alice`` with a realistic permission set, makes ``bob``
her owner and ``carol`` a friend, then prints the first page each of
them sees.

Usage: python3 scripts/seed_demo.py [BASE_URL]
"""

import sys

import httpx

BASE = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:3850"

PUBLIC, FRIEND, WHITELIST, MISTRESS, LOVER, SELF, OWNER = range(7)

# category ordinals: authority, log, curses, rules, commands, relationships, misc
PERMISSIONS = {
    "authority_grant_self": {"category": 0, "name": "Allow granting self access", "self": True, "min": OWNER},
    "authority_revoke_self": {"category": 0, "name": "Allow forbidding self access", "self": True, "min": OWNER},
    "authority_edit_min": {"category": 0, "name": "Allow lowest access modification", "self": True, "min": OWNER},
    "authority_mistress_add": {"category": 0, "name": "Promote to mistress", "self": True, "min": OWNER},
    "authority_mistress_remove": {"category": 0, "name": "Demote mistresses", "self": True, "min": OWNER},
    "authority_owner_add": {"category": 0, "name": "Promote to owner", "self": True, "min": OWNER},
    "authority_owner_remove": {"category": 0, "name": "Demote owners", "self": True, "min": OWNER},
    "authority_view_roles": {"category": 0, "name": "Allow viewing list of owner/mistress roles", "self": True, "min": FRIEND},
    "log_view_normal": {"category": 1, "name": "Allow to see normal log entries", "self": True, "min": OWNER},
    "log_view_protected": {"category": 1, "name": "Allow to see protected log entries", "self": True, "min": MISTRESS},
    "log_configure": {"category": 1, "name": "Allow to configure what is logged", "self": True, "min": OWNER},
    "log_delete": {"category": 1, "name": "Allow deleting log entries", "self": False, "min": OWNER},
    "log_praise": {"category": 1, "name": "Allow to praise or scold", "self": False, "min": FRIEND},
    "log_leaveMessage": {"category": 1, "name": "Allow to attach notes to the body", "self": False, "min": FRIEND},
    "curses_normal": {"category": 2, "name": "Allow curses", "self": False, "min": WHITELIST},
    "curses_limited": {"category": 2, "name": "Allow limited curses", "self": False, "min": LOVER},
    "curses_color": {"category": 2, "name": "Allow changing colors of cursed items", "self": True, "min": LOVER},
    "rules_normal": {"category": 3, "name": "Allow controlling non-limited rules", "self": False, "min": LOVER},
    "rules_limited": {"category": 3, "name": "Allow controlling limited rules", "self": False, "min": OWNER},
    "commands_normal": {"category": 4, "name": "Allow using non-limited commands", "self": True, "min": WHITELIST},
    "misc_cheat_allowchange": {"category": 6, "name": "Allow changing cheat settings", "self": True, "min": SELF},
}


def check(response: httpx.Response) -> dict:
    if response.status_code >= 400:
        print(f"  WARN {response.request.url} -> {response.status_code}: {response.text[:200]}")
        return {}
    return response.json()


def main() -> None:
    with httpx.Client(base_url=BASE, timeout=30) as client:
        print("=== Seeding subject alice ===")
        check(client.put("/subjects/alice/permissions", json=PERMISSIONS))
        check(client.put("/subjects/alice/viewers/bob", json={"level": OWNER}))
        check(client.put("/subjects/alice/viewers/carol", json={"level": FRIEND}))

        for viewer in ("alice", "bob", "carol"):
            page = check(client.get("/subjects/alice/permissions", params={"viewer_id": viewer}))
            if not page:
                continue
            print(f"\n--- {viewer}: page {page['page'] + 1} / {page['page_count']} ---")
            for item in page["items"]:
                if item["separator"]:
                    print(f"[{item['name']}]")
                else:
                    flags = ("S" if item["edit_self"] else "-") + ("M" if item["edit_min"] else "-")
                    print(f"  {flags} {item['descriptor']['name']}")


if __name__ == "__main__":
    main()
