# File: database_models/plant.py
# 功能：植物数据模型定义
# 实现：使用SQLAlchemy ORM，每个用户同一时间只读取一株活跃植物

from datetime import datetime
from typing import Optional
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from .database import Base, utc_now

SECONDS_PER_DAY = 24 * 60 * 60


# ==================== 植物模型 ====================
class Plant(Base):
    """
    植物数据模型
    功能：记录用户种下的植物，情绪日记挂在植物上

    字段说明：
        - id: 主键
        - user_id: 外键，所属用户
        - name / type: 名称和品种（tomato, sunflower, basil ...）
        - status: 状态（growing / alive / withered）
        - planted_at: 种植时间，种植天数由它推导，不单独存储
        - first_photo_url / latest_photo_url: 第一张和最新照片
        - is_active: 是否为当前植物
    """
    __tablename__ = "plants"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String(100), nullable=True)
    type = Column(String(100), nullable=True)
    status = Column(String(50), default="growing")
    planted_at = Column(DateTime, default=utc_now)
    first_photo_url = Column(Text, nullable=True)
    latest_photo_url = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    user = relationship("User", back_populates="plants")

    def days_caring(self, now: Optional[datetime] = None) -> int:
        """已照顾的完整天数：floor((now - planted_at) / 1天)"""
        if not self.planted_at:
            return 0
        now = now or utc_now()
        elapsed = (now - self.planted_at).total_seconds()
        return int(elapsed // SECONDS_PER_DAY)

    def age_in_days(self, now: Optional[datetime] = None) -> int:
        """展示用的植物年龄，种下当天为第1天"""
        return self.days_caring(now) + 1

    def to_dict(self, now: Optional[datetime] = None) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "planted_at": self.planted_at.isoformat() if self.planted_at else None,
            "first_photo_url": self.first_photo_url,
            "latest_photo_url": self.latest_photo_url,
            "is_active": bool(self.is_active),
            "days_since_planting": self.age_in_days(now),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
