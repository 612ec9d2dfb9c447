from __future__ import annotations

import argparse

from sqlalchemy import func
from sqlalchemy.orm import Session

from authgate.core.config import settings
from authgate.db.session import SessionLocal
from authgate.models.admin_user import AdminUser
from authgate.models.common import utcnow
from authgate.services.accounts import normalize_email
from authgate.services.credentials import hash_password, verify_password


def upsert_admin(db: Session, *, email: str, password: str, firstname: str, lastname: str) -> tuple[AdminUser, bool]:
    """Create the administrator or bring an existing one back in line with the seed values."""
    normalized = normalize_email(email)
    if not normalized:
        raise ValueError("Admin email is required")
    if not password:
        raise ValueError("Admin password is required")

    row = db.query(AdminUser).filter(func.lower(AdminUser.email) == normalized).first()
    created = row is None
    if row is None:
        credential = hash_password(password)
        row = AdminUser(
            firstname=firstname,
            lastname=lastname,
            email=normalized,
            status="ACTIVE",
            password_salt=credential.salt,
            password_hash=credential.hash,
        )
    else:
        row.status = "ACTIVE"
        if not verify_password(password, row.password_salt, row.password_hash):
            credential = hash_password(password)
            row.password_salt = credential.salt
            row.password_hash = credential.hash
        row.updated_at = utcnow()

    db.add(row)
    db.commit()
    db.refresh(row)
    return row, created


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create or update the bootstrap administrator")
    parser.add_argument("--email", default=settings.ADMIN_SEED_EMAIL)
    parser.add_argument("--password", default=settings.ADMIN_SEED_PASSWORD)
    parser.add_argument("--firstname", default=settings.ADMIN_SEED_FIRSTNAME)
    parser.add_argument("--lastname", default=settings.ADMIN_SEED_LASTNAME)
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        row, created = upsert_admin(
            db,
            email=args.email,
            password=args.password,
            firstname=args.firstname,
            lastname=args.lastname,
        )
    finally:
        db.close()
    print(f"admin seed done: email={row.email}, created={created}")


if __name__ == "__main__":
    main()
