#!/usr/bin/env python3
"""
Activate a pending account by email when the activation mail never arrived.

Usage:
  python scripts/activate_user.py --email someone@example.com [--resend]
"""
from __future__ import annotations

import argparse
import sys

from portfolio.core.utils import normalize_email
from portfolio.db.models import User
from portfolio.repositories.sql_repository import SQLRecordStore
from portfolio.services.user_service import ACTIVE, PENDING, UserService


def main() -> None:
    ap = argparse.ArgumentParser(description="Activate a pending portfolio account")
    ap.add_argument("--email", required=True, help="Email the account registered with")
    ap.add_argument("--resend", action="store_true", help="Mail the activation link again instead of activating")
    args = ap.parse_args()

    email = normalize_email(args.email)
    if not email:
        raise SystemExit("Invalid email")
    store = SQLRecordStore(User)
    user = store.find({"email": email})
    if not user:
        raise SystemExit(f"No account for '{email}'")
    if user["activation_state"] != PENDING:
        raise SystemExit(f"Account '{email}' is already {user['activation_state']}")

    if args.resend:
        UserService(store=store).resend_activation(email)
        print(f"OK: activation mail queued for {email}")
        return

    changed = store.update_where(
        {"id": user["id"], "activation_state": PENDING},
        {"activation_state": ACTIVE, "activation_key": None},
    )
    if changed != 1:
        raise SystemExit("Account changed concurrently, try again")
    print("OK: account activated")
    print(f"  ID: {user['id']}")
    print(f"  Email: {email}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # pragma: no cover
        sys.stderr.write(f"Error: {exc}\n")
        raise SystemExit(1)
