# File: services/achievement_service.py
# 功能：成就评估与颁发
# 实现：根据用户当前统计（积分、植物天数、日记数）对照成就目录，
#       解锁新成就（幂等）并发放成就积分

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database_models import User, Plant, JournalEntry, Achievement, UserAchievement, utc_now
from .achievement_conditions import UserStats, parse_condition, dump_condition, InvalidConditionError
from .points_ledger import credit_points
from .errors import ServerError

logger = logging.getLogger(__name__)


@dataclass
class CatalogEntry:
    """已解析条件的成就目录项"""
    achievement: Achievement
    condition: object


@dataclass
class AwardedAchievement:
    """本次调用中新解锁的成就，用于通知客户端"""
    achievement_id: int
    name: str
    icon_name: Optional[str]
    points_awarded: int
    user_achievement_id: int
    earned_at: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            "achievement_id": self.achievement_id,
            "name": self.name,
            "icon_name": self.icon_name,
            "points_awarded": self.points_awarded,
            "user_achievement_id": self.user_achievement_id,
            "earned_at": self.earned_at.isoformat() if self.earned_at else None,
        }


# ==================== 数据访问 ====================
def get_active_plant(db: Session, user_id: int) -> Optional[Plant]:
    """用户当前活跃的植物（最新的一株）"""
    return (
        db.query(Plant)
        .filter(Plant.user_id == user_id, Plant.is_active == True)  # noqa: E712
        .order_by(Plant.created_at.desc(), Plant.id.desc())
        .first()
    )


def get_journal_entries_count(db: Session, user_id: int) -> int:
    return db.query(func.count(JournalEntry.id)).filter(JournalEntry.user_id == user_id).scalar() or 0


def get_all_achievements(db: Session) -> List[Achievement]:
    return db.query(Achievement).filter(Achievement.is_active == True).order_by(Achievement.id).all()  # noqa: E712


def get_user_achievements(db: Session, user_id: int) -> List[UserAchievement]:
    return (
        db.query(UserAchievement)
        .filter(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.earned_at.desc())
        .all()
    )


def load_catalog(db: Session) -> List[CatalogEntry]:
    """
    加载启用的成就目录并解析条件
    条件无法解析的成就记录警告后跳过，不影响其他成就
    """
    catalog = []
    for achievement in get_all_achievements(db):
        try:
            condition = parse_condition(achievement.condition, achievement.points_required)
        except InvalidConditionError as e:
            logger.warning(f"⚠️ 跳过成就 id={achievement.id} '{achievement.name}': {e}")
            continue
        catalog.append(CatalogEntry(achievement=achievement, condition=condition))
    return catalog


def create_achievement(db: Session, name: str, description: str, icon_name: str,
                       points_required: int, condition) -> Achievement:
    """
    新增成就（写入前校验条件）

    Raises:
        InvalidConditionError: 条件不合法
    """
    parsed = parse_condition(condition, points_required)
    achievement = Achievement(
        name=name,
        description=description,
        icon_name=icon_name,
        points_required=points_required,
        condition=dump_condition(parsed),
        is_active=True,
    )
    db.add(achievement)
    db.commit()
    db.refresh(achievement)
    return achievement


# ==================== 颁发 ====================
def award_achievement(db: Session, user_id: int, achievement_id: int) -> Tuple[UserAchievement, bool]:
    """
    颁发成就（幂等，不提交事务）

    Returns:
        (用户成就记录, 是否为本次新建)
        已存在时返回现有记录；并发插入触发唯一约束时回滚保存点并返回对方写入的记录
    """
    existing = db.query(UserAchievement).filter(
        UserAchievement.user_id == user_id,
        UserAchievement.achievement_id == achievement_id,
    ).first()
    if existing:
        return existing, False

    try:
        with db.begin_nested():
            user_achievement = UserAchievement(user_id=user_id, achievement_id=achievement_id)
            db.add(user_achievement)
        return user_achievement, True
    except IntegrityError:
        logger.info(f"ℹ️ 成就已被并发颁发: user_id={user_id}, achievement_id={achievement_id}")
        existing = db.query(UserAchievement).filter(
            UserAchievement.user_id == user_id,
            UserAchievement.achievement_id == achievement_id,
        ).first()
        return existing, False


def collect_user_stats(db: Session, user: User, now: Optional[datetime] = None) -> UserStats:
    plant = get_active_plant(db, user.id)
    return UserStats(
        points=user.points or 0,
        journal_entries_count=get_journal_entries_count(db, user.id),
        has_active_plant=plant is not None,
        days_caring=plant.days_caring(now) if plant and plant.planted_at else None,
    )


def evaluate_and_award_achievements(db: Session, user_id: int,
                                    now: Optional[datetime] = None) -> List[AwardedAchievement]:
    """
    评估并颁发成就

    流程：
        1. 加载成就目录、用户已解锁集合、活跃植物、日记数和积分
        2. 对每个未解锁的成就按条件类型判断
        3. 满足条件的写入用户成就，若成就带积分则通过 credit_points 发放
        4. 发放的积分计入统计后再检查一轮，直到没有新成就
           （保证紧接着的第二次调用不会再颁发任何成就）

    用户不存在时返回空列表

    Raises:
        ServerError: 数据库操作失败
    """
    now = now or utc_now()
    try:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            return []

        catalog = load_catalog(db)
        earned_ids = {ua.achievement_id for ua in get_user_achievements(db, user_id)}
        stats = collect_user_stats(db, user, now)

        awarded: List[AwardedAchievement] = []
        while True:
            pending = [
                entry for entry in catalog
                if entry.achievement.id not in earned_ids and entry.condition.is_met(stats)
            ]
            if not pending:
                break

            for entry in pending:
                achievement = entry.achievement
                earned_ids.add(achievement.id)
                user_achievement, created = award_achievement(db, user_id, achievement.id)
                if not created:
                    continue

                points = achievement.points_required or 0
                if points > 0:
                    credit_points(db, user_id, points)
                    stats.points += points

                awarded.append(AwardedAchievement(
                    achievement_id=achievement.id,
                    name=achievement.name,
                    icon_name=achievement.icon_name,
                    points_awarded=max(points, 0),
                    user_achievement_id=user_achievement.id,
                    earned_at=user_achievement.earned_at,
                ))
                logger.info(f"🏆 解锁成就: user_id={user_id}, achievement='{achievement.name}', points=+{max(points, 0)}")

        db.commit()
        return awarded

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ 成就评估失败: user_id={user_id}, error={e}")
        raise ServerError("成就评估失败") from e


def achievements_with_status(db: Session, user_id: int) -> List[Dict]:
    """成就目录附带该用户的解锁状态（仪表盘和主持人查看用）"""
    earned = {ua.achievement_id: ua for ua in get_user_achievements(db, user_id)}
    result = []
    for achievement in get_all_achievements(db):
        data = achievement.to_dict()
        ua = earned.get(achievement.id)
        data["earned"] = ua is not None
        data["earned_at"] = ua.earned_at.isoformat() if ua and ua.earned_at else None
        result.append(data)
    return result
