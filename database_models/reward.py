# File: database_models/reward.py
# 功能：奖励商店目录和用户兑换记录
# 实现：奖励是一次性解锁，(user_id, reward_id) 唯一

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from .database import Base, utc_now


# ==================== 奖励目录 ====================
class Reward(Base):
    """
    奖励商店中的商品

    字段说明：
        - name: 名称，唯一
        - emoji / description: 展示信息
        - points_cost: 兑换所需积分
        - category: 分类（stickers, guides, items, badges, avatars, backgrounds）
        - is_active: 是否上架
    """
    __tablename__ = "rewards"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    emoji = Column(String(10), nullable=True)
    points_cost = Column(Integer, nullable=False)
    category = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "emoji": self.emoji,
            "points_cost": self.points_cost,
            "category": self.category,
            "is_active": bool(self.is_active),
        }


# ==================== 用户兑换记录 ====================
class UserReward(Base):
    """用户已兑换的奖励"""
    __tablename__ = "user_rewards"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reward_id = Column(Integer, ForeignKey("rewards.id"), nullable=False)
    purchased_at = Column(DateTime, default=utc_now)

    reward = relationship("Reward")

    __table_args__ = (
        UniqueConstraint("user_id", "reward_id", name="uq_user_reward"),
    )

    def to_dict(self, include_reward: bool = False) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "reward_id": self.reward_id,
            "purchased_at": self.purchased_at.isoformat() if self.purchased_at else None,
        }
        if include_reward:
            data["reward"] = self.reward.to_dict() if self.reward else None
        return data
