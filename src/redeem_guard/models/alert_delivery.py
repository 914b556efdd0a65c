# src/redeem_guard/models/alert_delivery.py
"""SQLAlchemy model recording outbound fraud alert deliveries."""

from datetime import datetime

from sqlalchemy import VARCHAR, DateTime, Integer, SmallInteger, Text
from sqlalchemy.orm import Mapped, mapped_column

from redeem_guard.db.session import Base
from redeem_guard.db.time import utcnow_naive


class AlertDeliveryLog(Base):
    """Final outcome of delivering one alert to the configured sink."""

    __tablename__ = "alert_delivery_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    target: Mapped[str] = mapped_column(Text, nullable=False)
    alert_type: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(VARCHAR(10), nullable=False)  # 'success', 'fail'
    attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)
    retry_count: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow_naive)
