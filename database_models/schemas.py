# File: database_models/schemas.py
# 功能：数据验证模型定义
# 实现：使用Pydantic进行请求数据验证

from typing import Optional
from pydantic import BaseModel, Field, model_validator

from .user import ROLE_CHILD, ALL_ROLES

# 儿童年龄范围
CHILD_MIN_AGE = 6
CHILD_MAX_AGE = 17
ADULT_MIN_AGE = 18


# ==================== 用户相关模型 ====================
class CreateUserRequest(BaseModel):
    """
    注册请求的数据验证模型
    功能：按角色校验年龄和条款确认

    字段说明：
        - alias: 昵称，至少2个字符
        - role: child / caregiver / professional / facilitator
        - age: 儿童 6-17 岁，其他角色 ≥18 岁
        - consent_acknowledgment: 儿童和看护者必须确认已阅读条款
        - parental_consent: 家长已接受条款（儿童可选）
        - parent_email: 家长邮箱（可选）
    """
    alias: str = Field(..., min_length=2, max_length=50)
    avatar: Optional[str] = None
    color_theme: Optional[str] = None
    role: str = ROLE_CHILD
    age: int = 10
    context: str = "home"
    is_workshop_mode: bool = False
    parent_email: Optional[str] = None
    parental_consent: bool = False
    consent_acknowledgment: bool = False

    @model_validator(mode="after")
    def check_role_rules(self):
        if self.role not in ALL_ROLES:
            raise ValueError(f"Rol no válido: {self.role}")
        if self.context not in ("home", "workshop"):
            raise ValueError("El contexto debe ser 'home' o 'workshop'")
        if self.role == ROLE_CHILD:
            if self.age < CHILD_MIN_AGE:
                raise ValueError("Debes tener al menos 6 años para usar la aplicación")
            if self.age > CHILD_MAX_AGE:
                raise ValueError("Esta aplicación está diseñada para niños de 6-17 años")
        elif self.age < ADULT_MIN_AGE:
            raise ValueError("Los facilitadores y cuidadores deben ser mayores de edad")
        # 工作坊主持人默认视为已确认条款
        if self.role != "facilitator" and not self.consent_acknowledgment:
            raise ValueError("Debes confirmar que has leído y aceptas los términos")
        return self


class LoginRequest(BaseModel):
    """昵称登录请求"""
    alias: str


class VerifyConsentRequest(BaseModel):
    """
    家长同意验证请求
    字段说明：
        - verification_code: 家长邮件中的验证码
        - user_id: 待验证的儿童用户ID
    """
    verification_code: str
    user_id: int


class ResendConsentEmailRequest(BaseModel):
    user_id: int


class DeleteAccountRequest(BaseModel):
    """
    删除账户请求模型
    功能：验证删除账户请求的数据格式
    """
    confirm_deletion: bool  # 确认删除标志，必须为True才能删除


class DeleteAccountResponse(BaseModel):
    """
    删除账户响应模型
    功能：返回删除账户操作的结果
    """
    success: bool  # 删除是否成功
    message: str  # 操作结果消息
    deleted_data: dict  # 删除的数据统计


# ==================== 植物相关模型 ====================
class CreatePlantRequest(BaseModel):
    user_id: int
    name: Optional[str] = None
    type: Optional[str] = None
    status: str = "growing"


class UpdatePlantStatusRequest(BaseModel):
    user_id: int
    status: str = Field(..., pattern="^(growing|alive|withered)$")


# ==================== 通知 / 奖励 ====================
class CreateNotificationRequest(BaseModel):
    user_id: int
    title: str = Field(..., max_length=100)
    message: str
    type: str = Field("reminder", pattern="^(reminder|achievement|milestone)$")


class PurchaseRewardRequest(BaseModel):
    user_id: int
