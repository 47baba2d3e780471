"""Failed-login counters per client address, shared by every instance."""

from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from versenest.core.database import Base
from versenest.models.base import UTCDateTime


class LoginThrottle(Base):
    """Fixed-window failed-login counter keyed by client IP."""

    __tablename__ = "login_throttles"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    window_started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
