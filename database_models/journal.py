# File: database_models/journal.py
# 功能：情绪日记数据模型定义
# 实现：使用SQLAlchemy ORM，日记创建后不可修改，只能删除

from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from .database import Base, utc_now

# 每篇日记固定奖励的积分
JOURNAL_ENTRY_POINTS = 10


# ==================== 日记模型 ====================
class JournalEntry(Base):
    """
    情绪日记数据模型
    功能：存储孩子的情绪记录，可附带照片和录音

    字段说明：
        - id: 主键，日记唯一标识
        - user_id: 外键，关联用户ID
        - plant_id: 关联的植物（可选）
        - emotion_id: 情绪类型（可选）
        - text_entry: 文字内容
        - photo_url / audio_url: 照片和录音地址
        - points_earned: 本篇日记获得的积分
        - created_at: 创建时间
        - user / emotion: 关联对象
    """
    __tablename__ = "journal_entries"  # 数据库表名

    # 主键字段
    id = Column(Integer, primary_key=True, index=True)  # 日记ID，主键，建立索引

    # 外键字段
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # 用户ID，不可为空
    plant_id = Column(Integer, ForeignKey("plants.id"), nullable=True)  # 植物ID，可为空
    emotion_id = Column(Integer, ForeignKey("emotions.id"), nullable=True)  # 情绪ID，可为空

    # 核心内容字段
    text_entry = Column(Text, nullable=True)  # 文字内容
    photo_url = Column(Text, nullable=True)  # 照片地址
    audio_url = Column(Text, nullable=True)  # 录音地址
    points_earned = Column(Integer, nullable=False, default=JOURNAL_ENTRY_POINTS)  # 获得积分

    # 时间戳字段
    created_at = Column(DateTime, default=utc_now, index=True)  # 创建时间
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)  # 更新时间

    # 关联关系
    user = relationship("User", back_populates="journal_entries")
    emotion = relationship("Emotion")

    def to_dict(self, include_emotion: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "plant_id": self.plant_id,
            "emotion_id": self.emotion_id,
            "text_entry": self.text_entry,
            "photo_url": self.photo_url,
            "audio_url": self.audio_url,
            "points_earned": self.points_earned,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_emotion:
            data["emotion"] = self.emotion.to_dict() if self.emotion else None
        return data
