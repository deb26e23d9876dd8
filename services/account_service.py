# File: services/account_service.py
# 功能：账户相关操作
# 实现：注册（自动种下第一株植物）、家长同意验证、账户删除（级联删除用户的全部数据）

import logging
from typing import Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from database_models import (
    User, Plant, JournalEntry, UserAchievement, UserReward, Notification, Seed, utc_now
)
from database_models.user import ROLE_CHILD, ROLE_FACILITATOR
from database_models.schemas import CreateUserRequest
from .media_service import media_service

logger = logging.getLogger(__name__)

DEFAULT_PLANT_NAME = "Mi Plantita"


def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_alias(db: Session, alias: str) -> Optional[User]:
    return db.query(User).filter(User.alias == alias).first()


def create_user(db: Session, request: CreateUserRequest) -> User:
    """
    创建用户并自动创建第一株植物

    说明：
        - 成人角色不需要家长同意，consent_verified 直接为 True
        - 儿童需要家长验证；parental_consent 表示家长已接受条款
        - 植物创建失败不影响注册
    """
    is_child = request.role == ROLE_CHILD
    user = User(
        alias=request.alias.strip(),
        avatar=request.avatar,
        color_theme=request.color_theme or ("orange" if request.role == ROLE_FACILITATOR else "green"),
        role=request.role,
        age=request.age,
        context=request.context,
        is_workshop_mode=request.is_workshop_mode or request.role == ROLE_FACILITATOR,
        parent_email=request.parent_email if is_child else None,
        parental_consent=bool(request.parental_consent) if is_child else False,
        consent_verified=not is_child,
        points=0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"✅ 用户创建成功: user_id={user.id}, role={user.role}")

    try:
        plant = Plant(user_id=user.id, name=DEFAULT_PLANT_NAME, type="seedling", status="growing", is_active=True)
        db.add(plant)
        db.commit()
        logger.info(f"🌱 已为用户自动创建植物: user_id={user.id}, plant_id={plant.id}")
    except Exception as e:
        db.rollback()
        logger.warning(f"⚠️ 自动创建植物失败: user_id={user.id}, error={e}")

    return user


def update_user_consent(db: Session, user_id: int, consent_verified: bool) -> Optional[User]:
    user = get_user(db, user_id)
    if not user:
        return None
    user.consent_verified = consent_verified
    user.parental_consent_date = utc_now() if consent_verified else None
    db.commit()
    db.refresh(user)
    return user


def get_all_children(db: Session, limit: int = 100) -> List[User]:
    """主持人面板使用的儿童名单"""
    return (
        db.query(User)
        .filter(User.role == ROLE_CHILD)
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(limit)
        .all()
    )


def delete_user_account(db: Session, user_id: int) -> Dict[str, int]:
    """
    删除账户及其全部数据

    删除顺序：日记 → 用户成就 → 兑换记录 → 通知 → 种子 → 植物 → 用户
    数据库记录在一个事务中删除，提交后再清理媒体文件

    Returns:
        各类数据的删除数量
    """
    media_urls = []
    for (photo_url, audio_url) in db.query(JournalEntry.photo_url, JournalEntry.audio_url).filter(
            JournalEntry.user_id == user_id).all():
        media_urls.extend([photo_url, audio_url])
    for (first_url, latest_url) in db.query(Plant.first_photo_url, Plant.latest_photo_url).filter(
            Plant.user_id == user_id).all():
        media_urls.extend([first_url, latest_url])
    media_urls.extend(url for (url,) in db.query(Seed.photo_url).filter(Seed.user_id == user_id).all())

    try:
        deleted = {
            "journal_entries": db.query(JournalEntry).filter(JournalEntry.user_id == user_id).delete(synchronize_session=False),
            "achievements": db.query(UserAchievement).filter(UserAchievement.user_id == user_id).delete(synchronize_session=False),
            "rewards": db.query(UserReward).filter(UserReward.user_id == user_id).delete(synchronize_session=False),
            "notifications": db.query(Notification).filter(Notification.user_id == user_id).delete(synchronize_session=False),
            "seeds": db.query(Seed).filter(Seed.user_id == user_id).delete(synchronize_session=False),
            "plants": db.query(Plant).filter(Plant.user_id == user_id).delete(synchronize_session=False),
        }
        deleted["users"] = db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    removed_files = sum(1 for url in set(media_urls) if media_service.delete_by_url(url))
    deleted["media_files"] = removed_files
    logger.info(f"🗑️ 账户已删除: user_id={user_id}, deleted={deleted}")
    return deleted


def count_journal_entries_by_user(db: Session, user_ids: List[int]) -> Dict[int, int]:
    """批量统计日记数量"""
    if not user_ids:
        return {}
    rows = (
        db.query(JournalEntry.user_id, func.count(JournalEntry.id))
        .filter(JournalEntry.user_id.in_(user_ids))
        .group_by(JournalEntry.user_id)
        .all()
    )
    return {user_id: count for user_id, count in rows}
