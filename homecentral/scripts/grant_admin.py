"""Grant back-office access to an email address.

Usage:
    python -m homecentral.scripts.grant_admin --email owner@example.com --role ADMIN

Adds or updates the admin allowlist row. The user does not need to exist yet;
the role applies the next time they sign in with Google.
"""

import argparse
import sys

from sqlalchemy.orm import sessionmaker

from homecentral.db.database import get_engine
from homecentral.db.models import AdminAllowlist
from homecentral.services.allowlist_service import ADMIN_ROLES, normalize_email


def grant(db, email: str, role: str) -> tuple[AdminAllowlist, bool]:
    """Upsert the allowlist row; returns ``(row, created)``."""
    row = db.query(AdminAllowlist).filter(AdminAllowlist.email == email).first()
    if row is not None:
        row.role = role
        db.commit()
        return row, False
    row = AdminAllowlist(email=email, role=role)
    db.add(row)
    db.commit()
    return row, True


def main() -> None:
    parser = argparse.ArgumentParser(description="Grant Home Central admin access")
    parser.add_argument("--email", required=True, help="Google account email")
    parser.add_argument("--role", default="ADMIN", choices=sorted(ADMIN_ROLES))
    args = parser.parse_args()

    email = normalize_email(args.email)
    if "@" not in email:
        print(f"Error: invalid email '{args.email}'", file=sys.stderr)
        sys.exit(1)

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    db = SessionLocal()
    try:
        _, created = grant(db, email, args.role)
        verb = "Granted" if created else "Updated"
        print(f"{verb} {args.role} access for {email}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
