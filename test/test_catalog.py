from database_models import Emotion, Achievement, Reward
from services.catalog_service import (
    ensure_default_data, DEFAULT_EMOTIONS, DEFAULT_ACHIEVEMENTS, DEFAULT_REWARDS,
)
from services.achievement_service import load_catalog


def test_seeding_is_idempotent(db):
    created = ensure_default_data(db)
    assert created == {
        "emotions": len(DEFAULT_EMOTIONS),
        "achievements": len(DEFAULT_ACHIEVEMENTS),
        "rewards": len(DEFAULT_REWARDS),
    }

    again = ensure_default_data(db)
    assert again == {"emotions": 0, "achievements": 0, "rewards": 0}
    assert db.query(Emotion).count() == 8
    assert db.query(Achievement).count() == 4
    assert db.query(Reward).count() == 6


def test_seeded_conditions_all_parse(db):
    ensure_default_data(db)
    names = [entry.achievement.name for entry in load_catalog(db)]
    assert names == ["Primera Semilla", "Primer Registro", "7 Días", "Escritor de Emociones"]


def test_emotions_are_upserted_by_name(db):
    ensure_default_data(db)
    alegria = db.query(Emotion).filter(Emotion.name == "Alegría").one()
    alegria.emoji = "?"
    db.commit()

    ensure_default_data(db)
    assert db.query(Emotion).filter(Emotion.name == "Alegría").one().emoji == "😊"


def test_existing_rewards_are_not_overwritten(db):
    ensure_default_data(db)
    stickers = db.query(Reward).filter(Reward.name == "Pack de Stickers Naturales").one()
    stickers.points_cost = 40
    db.commit()

    ensure_default_data(db)
    assert db.query(Reward).filter(Reward.name == "Pack de Stickers Naturales").one().points_cost == 40
