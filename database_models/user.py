# File: database_models/user.py
# 功能：用户数据模型定义
# 实现：使用SQLAlchemy ORM，支持角色、家长同意（COPPA）和积分

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from .database import Base, utc_now

# ==================== 角色常量 ====================
ROLE_CHILD = "child"
ROLE_CAREGIVER = "caregiver"
ROLE_PROFESSIONAL = "professional"
ROLE_FACILITATOR = "facilitator"

ALL_ROLES = (ROLE_CHILD, ROLE_CAREGIVER, ROLE_PROFESSIONAL, ROLE_FACILITATOR)
# 可以查看儿童名单的角色
FACILITATOR_ROLES = (ROLE_FACILITATOR, ROLE_PROFESSIONAL, ROLE_CAREGIVER)


# ==================== 用户模型 ====================
class User(Base):
    """
    用户数据模型
    功能：存储用户基本信息、角色、同意状态和积分

    字段说明：
        - id: 主键，用户唯一标识
        - alias: 昵称（登录用，唯一）
        - avatar / color_theme: 头像和主题色
        - role: 角色（child / caregiver / professional / facilitator）
        - age: 年龄（儿童 6-17 岁，成人 ≥18 岁）
        - context: 使用场景（home / workshop）
        - points: 积分，非负整数，只能通过奖励路径增加、兑换奖品减少
        - parental_consent: 已确认条款（弱于完整验证）
        - parent_email: 家长邮箱
        - parental_consent_date: 同意验证时间
        - consent_verified: 家长同意已完整验证
        - is_workshop_mode: 工作坊模式（兼容旧数据）
        - accessibility_settings: 无障碍设置（JSON）
        - created_at / updated_at: 时间戳
    """
    __tablename__ = "users"  # 数据库表名

    # 主键字段
    id = Column(Integer, primary_key=True, index=True)  # 用户ID，主键，建立索引

    # 用户基本信息字段
    alias = Column(String(50), unique=True, index=True, nullable=False)  # 昵称，唯一
    avatar = Column(String(100), nullable=True)  # 头像，可为空
    color_theme = Column(String(50), default="green")  # 主题色
    age = Column(Integer, nullable=False, default=10)  # 年龄，COPPA 校验需要

    # 角色与场景
    role = Column(String(20), nullable=False, default=ROLE_CHILD)  # 角色
    context = Column(String(20), nullable=False, default="home")  # home / workshop

    # 积分
    points = Column(Integer, nullable=False, default=0)  # 积分，不可为负

    # 家长同意相关字段
    parental_consent = Column(Boolean, nullable=False, default=False)  # 条款已确认
    parent_email = Column(String(255), nullable=True)  # 家长邮箱
    parental_consent_date = Column(DateTime, nullable=True)  # 同意验证时间
    consent_verified = Column(Boolean, nullable=False, default=False)  # 同意已验证

    is_workshop_mode = Column(Boolean, nullable=False, default=False)  # 工作坊模式
    accessibility_settings = Column(JSON, default=lambda: {"fontSize": "medium"})  # 无障碍设置

    # 时间戳字段
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # 关联关系：删除由账户删除流程负责，这里不配置级联
    plants = relationship("Plant", back_populates="user")
    journal_entries = relationship("JournalEntry", back_populates="user")

    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
    )

    @property
    def is_child(self) -> bool:
        return self.role == ROLE_CHILD

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "alias": self.alias,
            "avatar": self.avatar,
            "color_theme": self.color_theme,
            "age": self.age,
            "role": self.role,
            "context": self.context,
            "points": self.points or 0,
            "parental_consent": bool(self.parental_consent),
            "parental_consent_date": self.parental_consent_date.isoformat() if self.parental_consent_date else None,
            "consent_verified": bool(self.consent_verified),
            "is_workshop_mode": bool(self.is_workshop_mode),
            "accessibility_settings": self.accessibility_settings,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
