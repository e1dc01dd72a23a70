from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, Numeric, Text, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Package(Base):
    __tablename__ = "packages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True)
    destination_id: Mapped[str] = mapped_column(String(36), index=True)

    duration: Mapped[int] = mapped_column(Integer)  # days
    max_group_size: Mapped[int] = mapped_column(Integer, default=10)
    difficulty: Mapped[str] = mapped_column(String(20), default="easy")  # easy, medium, difficult

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    summary: Mapped[str] = mapped_column(Text, default="")
    image_cover: Mapped[str] = mapped_column(String(512), default="")
    featured: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
