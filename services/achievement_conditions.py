# File: services/achievement_conditions.py
# 功能：成就解锁条件的类型定义与解析
# 实现：Pydantic 判别联合（按 type 字段区分四种条件），在加载成就目录时解析一次

import json
from dataclasses import dataclass
from typing import Annotated, Optional, Union, Literal
from pydantic import BaseModel, Field, TypeAdapter, ValidationError


# ==================== 用户统计 ====================
@dataclass
class UserStats:
    """
    评估成就时使用的用户统计快照

    字段说明：
        - points: 当前积分
        - journal_entries_count: 日记总数
        - has_active_plant: 是否有活跃植物
        - days_caring: 照顾植物的完整天数（没有植物时为 None）
    """
    points: int
    journal_entries_count: int
    has_active_plant: bool
    days_caring: Optional[int] = None


# ==================== 条件类型 ====================
class PlantCreatedCondition(BaseModel):
    type: Literal["plant_created"]
    count: int = 1

    def is_met(self, stats: UserStats) -> bool:
        return stats.has_active_plant


class DaysCaringCondition(BaseModel):
    type: Literal["days_caring"]
    count: int = Field(..., ge=0)

    def is_met(self, stats: UserStats) -> bool:
        if stats.days_caring is None:
            return False
        return stats.days_caring >= self.count


class JournalEntriesCondition(BaseModel):
    type: Literal["journal_entries"]
    count: int = Field(..., ge=0)

    def is_met(self, stats: UserStats) -> bool:
        return stats.journal_entries_count >= self.count


class PointsCondition(BaseModel):
    type: Literal["points"]
    # 未设置或为 0 时使用成就的 points_required
    threshold: Optional[int] = Field(None, ge=0)

    def is_met(self, stats: UserStats) -> bool:
        return self.threshold is not None and stats.points >= self.threshold


AchievementCondition = Annotated[
    Union[PlantCreatedCondition, DaysCaringCondition, JournalEntriesCondition, PointsCondition],
    Field(discriminator="type"),
]

_condition_adapter = TypeAdapter(AchievementCondition)


class InvalidConditionError(ValueError):
    """成就条件无法解析"""
    pass


def parse_condition(raw, points_required: Optional[int] = None):
    """
    解析成就条件

    Args:
        raw: JSON 字符串或 dict
        points_required: 成就自身的 points_required，作为 points 条件的默认阈值

    Returns:
        四种条件之一

    Raises:
        InvalidConditionError: 条件为空、JSON 不合法、类型未知或字段缺失
    """
    if raw is None or raw == "":
        raise InvalidConditionError("成就条件为空")
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        condition = _condition_adapter.validate_python(data)
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        raise InvalidConditionError(f"成就条件无法解析: {e}") from e

    # threshold 为空或 0 时都使用 points_required
    if isinstance(condition, PointsCondition) and not condition.threshold:
        if points_required is None:
            raise InvalidConditionError("points 条件缺少 threshold，且成就没有 points_required")
        condition = condition.model_copy(update={"threshold": points_required})
    return condition


def dump_condition(condition) -> str:
    """把条件对象序列化为存储用的 JSON 文本"""
    return condition.model_dump_json(exclude_none=True)
