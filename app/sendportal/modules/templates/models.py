from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.sendportal.models import Base

NAME_MAX_LENGTH = 255


class Template(Base):
    __tablename__ = "templates"
    __table_args__ = (
        UniqueConstraint("team_id", "name", name="uq_templates_team_id_name"),
        Index("idx_templates_team_id", "team_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Owning team; fixed at creation
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
