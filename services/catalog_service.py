# File: services/catalog_service.py
# 功能：预置目录数据（情绪、成就、奖励）
# 实现：幂等的"确保已初始化"操作，依赖数据库唯一约束，不使用进程内标记，
#       多个服务实例同时启动也安全

import logging
from typing import Dict, List
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database_models import Emotion, Achievement, Reward
from .achievement_conditions import parse_condition, dump_condition

logger = logging.getLogger(__name__)

# ==================== 预置数据 ====================
DEFAULT_EMOTIONS: List[Dict] = [
    {"name": "Ansiedad", "emoji": "😰", "color": "purple", "description": "Me siento nervioso, como mariposas en la panza"},
    {"name": "Rechazo", "emoji": "🙄", "color": "gray", "description": "No quiero hacer algo o no me gusta"},
    {"name": "Frustración", "emoji": "😤", "color": "orange", "description": "Estoy molesto porque algo no sale bien"},
    {"name": "Rabia", "emoji": "😡", "color": "red", "description": "Estoy muy enojado"},
    {"name": "Miedo", "emoji": "😨", "color": "indigo", "description": "Tengo miedo de algo"},
    {"name": "Diversión", "emoji": "😄", "color": "green", "description": "Me estoy divirtiendo mucho"},
    {"name": "Alegría", "emoji": "😊", "color": "yellow", "description": "Me siento feliz y contento"},
    {"name": "Aceptado", "emoji": "🤗", "color": "pink", "description": "Me siento querido y valorado"},
]

DEFAULT_ACHIEVEMENTS: List[Dict] = [
    {
        "name": "Primera Semilla",
        "description": "Plantaste tu primera semilla",
        "icon_name": "seedling",
        "points_required": 10,
        "condition": {"type": "plant_created", "count": 1},
    },
    {
        "name": "Primer Registro",
        "description": "Escribiste tu primera entrada emocional",
        "icon_name": "leaf",
        "points_required": 10,
        "condition": {"type": "journal_entries", "count": 1},
    },
    {
        "name": "7 Días",
        "description": "Has cuidado tu planta por 7 días",
        "icon_name": "calendar-check",
        "points_required": 70,
        "condition": {"type": "days_caring", "count": 7},
    },
    {
        "name": "Escritor de Emociones",
        "description": "Has escrito 10 entradas emocionales",
        "icon_name": "book-open",
        "points_required": 100,
        "condition": {"type": "journal_entries", "count": 10},
    },
]

DEFAULT_REWARDS: List[Dict] = [
    {"name": "Pack de Stickers Naturales", "description": "Colección de stickers de plantas y emociones",
     "emoji": "🌿", "points_cost": 50, "category": "stickers"},
    {"name": "Guía de Cuidado de Plantas", "description": "Tips especiales para cuidar tu planta",
     "emoji": "📚", "points_cost": 75, "category": "guides"},
    {"name": "Semilla Misteriosa", "description": "Una semilla sorpresa para tu colección",
     "emoji": "🎁", "points_cost": 100, "category": "items"},
    {"name": "Insignia de Jardinero Experto", "description": "Una insignia especial para mostrar tu dedicación",
     "emoji": "🏅", "points_cost": 150, "category": "badges"},
    {"name": "Avatar Especial de Planta", "description": "Un avatar único con temática de plantas",
     "emoji": "🌱", "points_cost": 120, "category": "avatars"},
    {"name": "Fondo de Jardín Secreto", "description": "Un hermoso fondo para personalizar tu perfil",
     "emoji": "🪴", "points_cost": 200, "category": "backgrounds"},
]


def _insert_if_missing(db: Session, model, name: str, values: Dict) -> bool:
    """按 name 插入一条记录；已存在或被并发插入时返回 False"""
    if db.query(model).filter(model.name == name).first():
        return False
    try:
        with db.begin_nested():
            db.add(model(**values))
        return True
    except IntegrityError:
        return False


def upsert_emotion(db: Session, values: Dict) -> Emotion:
    """按 name upsert 情绪（不提交事务）"""
    emotion = db.query(Emotion).filter(Emotion.name == values["name"]).first()
    if emotion:
        emotion.emoji = values["emoji"]
        emotion.color = values["color"]
        emotion.description = values.get("description")
        return emotion
    try:
        with db.begin_nested():
            emotion = Emotion(**values)
            db.add(emotion)
        return emotion
    except IntegrityError:
        return db.query(Emotion).filter(Emotion.name == values["name"]).first()


def ensure_default_data(db: Session) -> Dict[str, int]:
    """
    确保预置数据存在（可重复调用）

    - 情绪：按名称 upsert，自动修正被改动的预置项
    - 成就、奖励：只补充缺失的名称，不覆盖已有数据

    Returns:
        本次新增的数量统计
    """
    created = {"emotions": 0, "achievements": 0, "rewards": 0}
    try:
        existing_emotions = {name for (name,) in db.query(Emotion.name).all()}
        for values in DEFAULT_EMOTIONS:
            upsert_emotion(db, values)
            if values["name"] not in existing_emotions:
                created["emotions"] += 1

        for item in DEFAULT_ACHIEVEMENTS:
            condition = parse_condition(item["condition"], item["points_required"])
            values = dict(item, condition=dump_condition(condition), is_active=True)
            if _insert_if_missing(db, Achievement, item["name"], values):
                created["achievements"] += 1

        for item in DEFAULT_REWARDS:
            values = dict(item, is_active=True)
            if _insert_if_missing(db, Reward, item["name"], values):
                created["rewards"] += 1

        db.commit()
    except Exception:
        db.rollback()
        raise

    if any(created.values()):
        logger.info(f"🌱 预置数据已初始化: {created}")
    return created
