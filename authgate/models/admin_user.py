from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from authgate.db.session import Base
from authgate.models.common import CredentialMixin, TimestampMixin, UUIDMixin


class AdminUser(Base, UUIDMixin, TimestampMixin, CredentialMixin):
    __tablename__ = "admin_users"

    firstname: Mapped[str] = mapped_column(String(100), nullable=False)
    lastname: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="ACTIVE", nullable=False)
