# src/board_sentinel/models/keyword.py
"""Models holding the mutable classifier configuration."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from board_sentinel.db.session import Base
from board_sentinel.db.time import utcnow


class KeywordCategory(Base):
    """A weighted group of terms and patterns."""

    __tablename__ = "keyword_category"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Score contributed when any of the category's rules match.
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Board slugs on which this category is not enforced (e.g. an adult board).
    relaxed_boards: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)


class Keyword(Base):
    """Either a literal term or a regex pattern; never both."""

    __tablename__ = "keyword"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("keyword_category.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    term: Mapped[str | None] = mapped_column(Text, nullable=True)
    pattern: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)


class Homophone(Base):
    """Evasion variant mapped onto its canonical token before matching."""

    __tablename__ = "keyword_homophone"
    __table_args__ = (UniqueConstraint("canonical", "variant", name="uq_homophone_pair"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    canonical: Mapped[str] = mapped_column(String(128), nullable=False)
    variant: Mapped[str] = mapped_column(String(128), nullable=False)
