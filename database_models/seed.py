# File: database_models/seed.py
# 功能：种子库数据模型
# 实现：每颗种子有唯一分享码，可以分享给其他孩子

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean
from .database import Base, utc_now


class Seed(Base):
    """
    种子库记录

    字段说明：
        - type / origin: 种子品种和来源
        - photo_url / notes: 照片和备注
        - share_code: 分享码，唯一
        - is_shared: 是否已分享
    """
    __tablename__ = "seeds"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(100), nullable=False)
    origin = Column(String(200), nullable=True)
    photo_url = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    share_code = Column(String(20), unique=True, nullable=True)
    is_shared = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "origin": self.origin,
            "photo_url": self.photo_url,
            "notes": self.notes,
            "share_code": self.share_code,
            "is_shared": bool(self.is_shared),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
