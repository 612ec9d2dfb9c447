from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from authgate.db.session import Base
from authgate.models.common import CredentialMixin, TimestampMixin, UUIDMixin


class User(Base, UUIDMixin, TimestampMixin, CredentialMixin):
    __tablename__ = "users"

    firstname: Mapped[str] = mapped_column(String(100), nullable=False)
    lastname: Mapped[str] = mapped_column(String(100), nullable=False)
    username: Mapped[str | None] = mapped_column(String(30), unique=True, nullable=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    dial_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    mobile: Mapped[str | None] = mapped_column(String(30), unique=True, nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="ACTIVE", nullable=False)  # ACTIVE|BLOCKED
