# File: services/points_ledger.py
# 功能：积分账本
# 实现：积分增减统一使用数据库端原子更新（points = points + delta）；
#       兑换奖励在单个事务中锁定用户行，检查余额和重复兑换后扣分并记录

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from database_models import User, Reward, UserReward, utc_now
from database_models.database import SQLITE_IMMEDIATE
from .errors import ServerError

logger = logging.getLogger(__name__)


# ==================== 积分原子更新 ====================
def credit_points(db: Session, user_id: int, delta: int) -> int:
    """
    原子地调整用户积分（不提交事务）

    Args:
        db: 数据库会话
        user_id: 用户ID
        delta: 积分变化量，正数为奖励

    Returns:
        受影响的行数（用户不存在时为0）
    """
    updated = db.query(User).filter(User.id == user_id).update(
        {User.points: User.points + delta, User.updated_at: utc_now()},
        synchronize_session=False,
    )
    logger.info(f"💰 积分变动: user_id={user_id}, delta={delta:+d}, rows={updated}")
    return updated


# ==================== 奖励兑换 ====================
class PurchaseError(str, Enum):
    REWARD_NOT_FOUND = "REWARD_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"
    ALREADY_PURCHASED = "ALREADY_PURCHASED"


@dataclass
class PurchaseResult:
    """
    兑换结果
    成功时 user_reward 和 user 有值；失败时 error 说明原因
    """
    user_reward: Optional[UserReward] = None
    user: Optional[User] = None
    error: Optional[PurchaseError] = None
    points_needed: int = 0  # 积分不足时还差多少

    @property
    def ok(self) -> bool:
        return self.error is None


def purchase_reward(db: Session, user_id: int, reward_id: int) -> PurchaseResult:
    """
    用积分兑换奖励

    步骤（同一事务内，用户行加排他锁）：
        1. 查询奖励，不存在则失败
        2. SELECT ... FOR UPDATE 锁定用户
        3. 已兑换过则失败
        4. 余额不足则失败
        5. 扣除积分并写入兑换记录
        6. 提交

    同一用户的并发兑换在第2步排队，后到的请求看到的是已扣减后的余额
    SQLite 不支持行锁，这里以 BEGIN IMMEDIATE 开启事务，提前取得写锁；
    调用方会话中已有的只读事务会先提交

    Raises:
        ServerError: 数据库操作失败
    """
    try:
        if db.in_transaction():
            db.commit()
        db.connection(execution_options={SQLITE_IMMEDIATE: True})

        reward = db.query(Reward).filter(Reward.id == reward_id).first()
        if not reward:
            db.rollback()
            return PurchaseResult(error=PurchaseError.REWARD_NOT_FOUND)

        user = (
            db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not user:
            db.rollback()
            return PurchaseResult(error=PurchaseError.USER_NOT_FOUND)

        existing = db.query(UserReward).filter(
            UserReward.user_id == user_id,
            UserReward.reward_id == reward_id,
        ).first()
        if existing:
            db.rollback()
            logger.info(f"🚫 重复兑换: user_id={user_id}, reward_id={reward_id}")
            return PurchaseResult(error=PurchaseError.ALREADY_PURCHASED)

        balance = user.points or 0
        if balance < reward.points_cost:
            db.rollback()
            logger.info(f"🚫 积分不足: user_id={user_id}, reward_id={reward_id}, points={balance}, cost={reward.points_cost}")
            return PurchaseResult(
                error=PurchaseError.INSUFFICIENT_POINTS,
                points_needed=reward.points_cost - balance,
            )

        credit_points(db, user_id, -reward.points_cost)
        user_reward = UserReward(user_id=user_id, reward_id=reward_id)
        db.add(user_reward)
        db.commit()

        db.refresh(user)
        db.refresh(user_reward)
        logger.info(f"🎁 兑换成功: user_id={user_id}, reward='{reward.name}', cost={reward.points_cost}, points={user.points}")
        return PurchaseResult(user_reward=user_reward, user=user)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ 兑换奖励失败: user_id={user_id}, reward_id={reward_id}, error={e}")
        raise ServerError("兑换奖励失败") from e
