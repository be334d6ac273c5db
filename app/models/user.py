"""
Workmate — User model (profile fields read by the matching engine).
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String, primary_key=True, comment="Auth provider uid"
    )
    email: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False
    )
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    age_pref_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    age_pref_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    interests: Mapped[list | None] = mapped_column(
        JSONB, nullable=True, comment="Array of interest strings"
    )
    availability: Mapped[list | None] = mapped_column(
        JSONB, nullable=True, comment="168 hourly slots, Monday 00:00 first"
    )
    occupation: Mapped[str | None] = mapped_column(String, nullable=True)
    occupation_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    work_date_ratio: Mapped[float | None] = mapped_column(
        Float, nullable=True, comment="0 = task-focused, 100 = social"
    )
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    work_chat_ratio: Mapped[float | None] = mapped_column(Float, nullable=True)
    interaction_level: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )

    def __repr__(self) -> str:
        return f"<User {self.email!r} id={self.id}>"
