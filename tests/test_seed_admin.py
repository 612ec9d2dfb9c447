import os
import unittest

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from authgate.models.admin_user import AdminUser
from authgate.scripts.seed_admin import upsert_admin
from authgate.services.credentials import verify_password


class SeedAdminTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        AdminUser.__table__.create(bind=self.engine)

    def tearDown(self):
        self.engine.dispose()

    def test_creates_then_updates_admin(self):
        with self.SessionLocal() as db:
            row, created = upsert_admin(
                db, email="Root@Example.com", password="first-pass", firstname="Root", lastname="Admin"
            )
            self.assertTrue(created)
            self.assertEqual(row.email, "root@example.com")
            first_salt = row.password_salt

            row.status = "BLOCKED"
            db.commit()

            row, created = upsert_admin(
                db, email="root@example.com", password="first-pass", firstname="Root", lastname="Admin"
            )
            self.assertFalse(created)
            self.assertEqual(row.status, "ACTIVE")
            self.assertEqual(row.password_salt, first_salt)

            row, _ = upsert_admin(db, email="root@example.com", password="second-pass", firstname="Root", lastname="Admin")
            self.assertTrue(verify_password("second-pass", row.password_salt, row.password_hash))
            self.assertEqual(db.query(AdminUser).count(), 1)

    def test_missing_password_is_rejected(self):
        with self.SessionLocal() as db:
            with self.assertRaises(ValueError):
                upsert_admin(db, email="root@example.com", password="", firstname="Root", lastname="Admin")


if __name__ == "__main__":
    unittest.main()
