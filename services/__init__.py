# File: services/__init__.py
# 功能：业务服务包
# 实现：导出同意检查、成就评估、积分账本、目录初始化和媒体存储的公共接口

from .errors import ServerError
from .consent_gate import ConsentOutcome, ConsentDecision, check_consent, is_mutating_method
from .achievement_service import evaluate_and_award_achievements, award_achievement, achievements_with_status
from .points_ledger import credit_points, purchase_reward, PurchaseError, PurchaseResult
from .catalog_service import ensure_default_data
from .media_service import media_service
from .media_cleanup import cleanup_unreferenced_media

__all__ = [
    "ServerError",
    "ConsentOutcome",
    "ConsentDecision",
    "check_consent",
    "is_mutating_method",
    "evaluate_and_award_achievements",
    "award_achievement",
    "achievements_with_status",
    "credit_points",
    "purchase_reward",
    "PurchaseError",
    "PurchaseResult",
    "ensure_default_data",
    "media_service",
    "cleanup_unreferenced_media",
]
