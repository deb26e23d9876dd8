# File: test/conftest.py
# 功能：测试环境配置
# 实现：在导入应用前把数据库和上传目录指向临时目录，每个测试前重建表结构

import os
import tempfile
from datetime import timedelta
from itertools import count

_TMP_DIR = tempfile.mkdtemp(prefix="semillita-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["MEDIA_UPLOAD_DIR"] = os.path.join(_TMP_DIR, "media")
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["CONSENT_VERIFICATION_CODE"] = "APPROVED"
os.environ["MEDIA_CLEANUP_ENABLED"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from database_models import init_db, SessionLocal, Base, User, Plant, JournalEntry, utc_now  # noqa: E402
from database_models.database import engine  # noqa: E402

_alias_counter = count(1)


@pytest.fixture(autouse=True)
def reset_database():
    init_db()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    """
    直接写库创建用户，返回用户ID
    提交后不再访问对象属性，避免 SQLite 写锁一直被测试会话占用
    """
    def _make_user(role="child", age=10, parental_consent=True, consent_verified=True, points=0,
                   planted_days_ago=None, journal_entries=0, now=None):
        now = now or utc_now()
        user = User(
            alias=f"usuario{next(_alias_counter)}",
            role=role,
            age=age,
            context="home",
            parental_consent=parental_consent,
            consent_verified=consent_verified,
            points=points,
        )
        db.add(user)
        db.flush()
        user_id = user.id
        if planted_days_ago is not None:
            db.add(Plant(user_id=user_id, name="Mi Plantita", is_active=True,
                         planted_at=now - timedelta(days=planted_days_ago)))
        for i in range(journal_entries):
            db.add(JournalEntry(user_id=user_id, text_entry=f"entrada {i}"))
        db.commit()
        return user_id

    return _make_user
