from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from authgate.db.session import Base
from authgate.models.common import TimestampMixin, UUIDMixin


class OtpRecord(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "otp_records"
    __table_args__ = (UniqueConstraint("channel", "target", name="uq_otp_records_channel_target"),)

    channel: Mapped[str] = mapped_column(String(10), nullable=False)  # EMAIL|MOBILE
    target: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    last_sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    retries: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_code_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
