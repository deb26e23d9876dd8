# File: database_models/achievement.py
# 功能：成就目录和用户成就数据模型
# 实现：使用SQLAlchemy ORM，(user_id, achievement_id) 唯一，颁发幂等

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from .database import Base, utc_now


# ==================== 成就目录 ====================
class Achievement(Base):
    """
    成就目录（全局参考数据）

    字段说明：
        - name: 成就名称，唯一
        - description / icon_name: 描述和图标
        - points_required: 解锁时奖励的积分；points 类型条件未设置阈值时也作为阈值
        - condition: 解锁条件描述（JSON 文本），如 {"type": "journal_entries", "count": 10}
        - is_active: 是否启用
    """
    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    icon_name = Column(String(50), nullable=True)
    points_required = Column(Integer, nullable=True)
    condition = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon_name": self.icon_name,
            "points_required": self.points_required,
            "condition": self.condition,
            "is_active": bool(self.is_active),
        }


# ==================== 用户成就 ====================
class UserAchievement(Base):
    """
    用户已解锁的成就
    唯一约束保证同一用户同一成就只有一条记录
    """
    __tablename__ = "user_achievements"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    achievement_id = Column(Integer, ForeignKey("achievements.id"), nullable=False)
    earned_at = Column(DateTime, default=utc_now)

    achievement = relationship("Achievement")

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "achievement_id": self.achievement_id,
            "earned_at": self.earned_at.isoformat() if self.earned_at else None,
        }
