from __future__ import annotations
from typing import Optional
from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, DateTime
from sqlalchemy.sql import func

from gigsync.db import Base

class StorageSlot(Base):
    """
    클라이언트 로컬 저장소의 한 칸 (브라우저 localStorage의 key/value 한 쌍).
    token, user, adminToken, adminUser 같은 고정된 이름의 슬롯만 사용합니다.
    """
    __tablename__ = "storage_slots"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
