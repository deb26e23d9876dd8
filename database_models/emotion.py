# File: database_models/emotion.py
# 功能：情绪类型数据模型（预置目录）

from sqlalchemy import Column, Integer, String, Text
from .database import Base


class Emotion(Base):
    """
    情绪类型
    name 唯一，预置数据按 name 做 upsert
    """
    __tablename__ = "emotions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)  # 情绪名称，唯一
    emoji = Column(String(10), nullable=False)
    color = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "emoji": self.emoji,
            "color": self.color,
            "description": self.description,
        }
