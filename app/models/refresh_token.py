# app/models/refresh_token.py
from datetime import datetime

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base


class RefreshToken(Base):
    """One row per outstanding refresh token; deleted when consumed."""

    __tablename__ = "refresh_tokens"

    jti: Mapped[str] = mapped_column(String(255), primary_key=True)       # JWT ID
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<RefreshToken(jti={self.jti}, user_id={self.user_id})>"
