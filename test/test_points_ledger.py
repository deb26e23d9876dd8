import threading
import time

import pytest

from database_models import SessionLocal, User, Reward, UserReward
from services.points_ledger import credit_points, purchase_reward, PurchaseError


def _points(db, user_id):
    return db.query(User.points).filter(User.id == user_id).scalar()


@pytest.fixture
def make_reward(db):
    def _make_reward(name, cost):
        reward = Reward(name=name, description="", emoji="🎁", points_cost=cost, category="items", is_active=True)
        db.add(reward)
        db.flush()
        reward_id = reward.id
        db.commit()
        return reward_id
    return _make_reward


def test_insufficient_points(db, make_user, make_reward):
    reward_id = make_reward("Stickers", 50)
    user_id = make_user(points=30)

    result = purchase_reward(db, user_id, reward_id)
    assert not result.ok
    assert result.error == PurchaseError.INSUFFICIENT_POINTS
    assert result.points_needed == 20
    assert _points(db, user_id) == 30
    assert db.query(UserReward).count() == 0


def test_purchase_deducts_points(db, make_user, make_reward):
    reward_id = make_reward("Stickers", 50)
    user_id = make_user(points=80)

    result = purchase_reward(db, user_id, reward_id)
    assert result.ok
    assert result.user.points == 30
    assert result.user_reward.reward_id == reward_id
    assert _points(db, user_id) == 30


def test_no_double_purchase(db, make_user, make_reward):
    reward_id = make_reward("Stickers", 50)
    user_id = make_user(points=200)

    assert purchase_reward(db, user_id, reward_id).ok
    result = purchase_reward(db, user_id, reward_id)
    assert result.error == PurchaseError.ALREADY_PURCHASED
    assert _points(db, user_id) == 150
    assert db.query(UserReward).filter(UserReward.user_id == user_id).count() == 1


def test_repeat_purchase_reports_already_purchased_with_low_balance(db, make_user, make_reward):
    reward_id = make_reward("Stickers", 50)
    user_id = make_user(points=60)

    assert purchase_reward(db, user_id, reward_id).ok
    # 余额 10 已不足 50，但重复兑换优先报告 ALREADY_PURCHASED
    result = purchase_reward(db, user_id, reward_id)
    assert result.error == PurchaseError.ALREADY_PURCHASED
    assert result.points_needed == 0
    assert _points(db, user_id) == 10


def test_missing_reward_or_user(db, make_user, make_reward):
    reward_id = make_reward("Stickers", 50)
    user_id = make_user(points=100)

    assert purchase_reward(db, user_id, 999).error == PurchaseError.REWARD_NOT_FOUND
    assert purchase_reward(db, 999, reward_id).error == PurchaseError.USER_NOT_FOUND
    assert _points(db, user_id) == 100


def test_concurrent_purchases_never_overdraw(db, make_user, make_reward):
    first_reward = make_reward("Guía", 60)
    second_reward = make_reward("Semilla Misteriosa", 70)
    user_id = make_user(points=100)
    db.close()

    results = []
    barrier = threading.Barrier(2)

    def buy(reward_id):
        session = SessionLocal()
        try:
            barrier.wait()
            result = purchase_reward(session, user_id, reward_id)
            results.append(result.error)
        finally:
            session.close()

    threads = [threading.Thread(target=buy, args=(r,)) for r in (first_reward, second_reward)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # 两个奖励加起来超过余额，任何串行顺序下都只有一个能兑换成功
    assert sorted(results, key=lambda e: e is not None) == [None, PurchaseError.INSUFFICIENT_POINTS]
    final = _points(db, user_id)
    assert final in (40, 30)
    assert final >= 0
    assert db.query(UserReward).filter(UserReward.user_id == user_id).count() == 1


def test_open_read_transactions_do_not_block_each_other(make_user):
    user_id = make_user(points=25)
    reader_a = SessionLocal()
    reader_b = SessionLocal()
    try:
        # A 的读事务保持打开，B 的读取应立即返回而不是等待锁超时
        assert _points(reader_a, user_id) == 25
        assert reader_a.in_transaction()
        started = time.monotonic()
        assert _points(reader_b, user_id) == 25
        assert time.monotonic() - started < 2
    finally:
        reader_b.close()
        reader_a.close()


def test_credit_points_is_relative(db, make_user):
    user_id = make_user(points=5)
    assert credit_points(db, user_id, 10) == 1
    assert credit_points(db, 999, 10) == 0
    db.commit()
    assert _points(db, user_id) == 15
