# File: database_models/notification.py
# 功能：推送通知历史

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean
from .database import Base, utc_now

NOTIFICATION_TYPES = ("reminder", "achievement", "milestone")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(100), nullable=True)
    message = Column(Text, nullable=True)
    type = Column(String(50), default="reminder")  # reminder / achievement / milestone
    is_read = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime, default=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "is_read": bool(self.is_read),
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }
