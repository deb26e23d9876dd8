# File: database_models/__init__.py
# 功能：数据库模型包的初始化文件，导出所有模型和配置
# 实现：统一导出用户、植物、日记、成就、奖励等模型和数据库配置

# 导出数据库配置
from .database import init_db, get_db, SessionLocal, Base, utc_now

# 导出数据模型
from .user import User
from .plant import Plant
from .emotion import Emotion
from .journal import JournalEntry
from .achievement import Achievement, UserAchievement
from .reward import Reward, UserReward
from .notification import Notification
from .seed import Seed

# 导出所有公共接口
__all__ = [
    "init_db",
    "get_db",
    "SessionLocal",
    "Base",
    "utc_now",
    "User",
    "Plant",
    "Emotion",
    "JournalEntry",
    "Achievement",
    "UserAchievement",
    "Reward",
    "UserReward",
    "Notification",
    "Seed",
]
