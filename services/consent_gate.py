# File: services/consent_gate.py
# 功能：家长同意（COPPA）拦截
# 实现：写操作前检查执行用户的角色和同意状态，未获同意的儿童不能提交任何数据

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from database_models import User
from .errors import ServerError

logger = logging.getLogger(__name__)

# 只检查会修改数据的请求
MUTATING_METHODS = ("POST", "PUT", "PATCH")

# 未验证的儿童也必须能访问的接口：注册、同意验证、重发同意邮件
CONSENT_EXEMPT_PATHS = (
    "/api/users",
    "/api/verify-consent",
    "/api/resend-consent-email",
)

CONSENT_REQUIRED_CODE = "CONSENT_REQUIRED"
USER_NOT_FOUND_CODE = "USER_NOT_FOUND"
REDIRECT_TO_CONSENT = "redirect_to_consent"


class ConsentOutcome(str, Enum):
    ALLOW = "allow"                            # 非儿童或已完整验证
    ALLOW_READ = "allow_read"                  # 只读请求
    ALLOW_EXEMPT = "allow_exempt"              # 豁免接口
    ALLOW_UNIDENTIFIED = "allow_unidentified"  # 请求里没有用户ID，交给接口自己校验
    ALLOW_TERMS_ONLY = "allow_terms_only"      # 只确认了条款，未完整验证
    USER_NOT_FOUND = "user_not_found"
    CONSENT_REQUIRED = "consent_required"


@dataclass
class ConsentDecision:
    outcome: ConsentOutcome
    user_id: Optional[int] = None
    code: Optional[str] = None
    message: Optional[str] = None
    action: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome not in (ConsentOutcome.USER_NOT_FOUND, ConsentOutcome.CONSENT_REQUIRED)


def is_mutating_method(method: str) -> bool:
    return (method or "").upper() in MUTATING_METHODS


def check_consent(db: Session, user_id: Optional[int], is_mutating: bool,
                  path: Optional[str] = None) -> ConsentDecision:
    """
    判断是否允许以该用户身份执行数据采集操作

    Args:
        db: 数据库会话
        user_id: 从请求体/路径参数解析出的用户ID，可能为空
        is_mutating: 是否为写操作
        path: 请求路径（用于豁免判断）

    Returns:
        ConsentDecision

    Raises:
        ServerError: 查询用户失败
    """
    if not is_mutating:
        return ConsentDecision(ConsentOutcome.ALLOW_READ, user_id)

    if path in CONSENT_EXEMPT_PATHS:
        return ConsentDecision(ConsentOutcome.ALLOW_EXEMPT, user_id)

    if user_id is None:
        # 无法确定用户时放行，由具体接口自行校验参数
        # 注意：没有携带用户ID的写接口因此不受同意检查约束
        logger.info(f"ℹ️ 同意检查：请求未携带用户ID，放行 path={path}")
        return ConsentDecision(ConsentOutcome.ALLOW_UNIDENTIFIED)

    try:
        user = db.query(User).filter(User.id == user_id).first()
    except SQLAlchemyError as e:
        logger.error(f"❌ 同意检查查询用户失败: user_id={user_id}, error={e}")
        raise ServerError("同意检查失败") from e

    if not user:
        return ConsentDecision(
            ConsentOutcome.USER_NOT_FOUND,
            user_id,
            code=USER_NOT_FOUND_CODE,
            message="Usuario no encontrado",
        )

    if user.is_child and not user.consent_verified and not user.parental_consent:
        logger.warning(f"🚫 已拦截：未获家长同意的儿童尝试提交数据 user_id={user_id}, path={path}")
        return ConsentDecision(
            ConsentOutcome.CONSENT_REQUIRED,
            user_id,
            code=CONSENT_REQUIRED_CODE,
            message="Se requiere el consentimiento de tus padres",
            action=REDIRECT_TO_CONSENT,
        )

    if user.is_child and not user.consent_verified:
        # 条款确认代替完整验证，属于降级信任
        logger.info(f"⚠️ 儿童仅确认条款、未完整验证，放行 user_id={user_id}, path={path}")
        return ConsentDecision(ConsentOutcome.ALLOW_TERMS_ONLY, user_id)

    return ConsentDecision(ConsentOutcome.ALLOW, user_id)
