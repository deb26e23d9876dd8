# File: database_models/database.py
# 功能：数据库配置和连接管理
# 实现：使用SQLAlchemy ORM，默认SQLite，可通过环境变量切换数据库

import os
from datetime import datetime, timezone
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from dotenv import load_dotenv

load_dotenv()

# ==================== 数据库配置 ====================
# 数据库连接URL
# 参数来源：环境变量 DATABASE_URL，未设置时使用本地SQLite文件
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./database/semillita.db")

IS_SQLITE = DATABASE_URL.startswith("sqlite")

if IS_SQLITE and "///" in DATABASE_URL:
    # 确保SQLite文件所在目录存在
    _db_path = DATABASE_URL.split("///", 1)[1]
    if _db_path and _db_path != ":memory:":
        os.makedirs(os.path.dirname(os.path.abspath(_db_path)), exist_ok=True)

# 创建数据库引擎
# 参数说明：
# - DATABASE_URL: 数据库连接字符串
# - connect_args: SQLite特定参数，允许多线程访问
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if IS_SQLITE else {},
)

# 需要提前取得写锁的事务通过连接执行选项声明，见 services/points_ledger.py
SQLITE_IMMEDIATE = "sqlite_immediate"

if IS_SQLITE:
    # SQLite 不支持 SELECT ... FOR UPDATE
    # 普通事务使用延迟 BEGIN，读操作之间互不阻塞；
    # 带 SQLITE_IMMEDIATE 选项的事务以 BEGIN IMMEDIATE 开始，保证积分扣减串行执行
    @event.listens_for(engine, "connect")
    def _sqlite_on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _sqlite_on_begin(conn):
        if conn.get_execution_options().get(SQLITE_IMMEDIATE):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

# 创建会话工厂
# 参数说明：
# - bind: 绑定到数据库引擎
# - autoflush: 禁用自动刷新
# - autocommit: 禁用自动提交
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

# 声明式基类
Base = declarative_base()


def utc_now() -> datetime:
    """当前UTC时间（naive），与数据库中存储的时间保持一致"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ==================== 数据库初始化 ====================
def init_db():
    """
    初始化数据库
    功能：创建所有数据库表结构

    说明：
        此函数在应用启动时调用，确保数据库表结构存在
        如果表已存在，不会重复创建
    """
    # 导入模型，确保所有表都注册到 Base.metadata
    from . import user, plant, emotion, journal, achievement, reward, notification, seed  # noqa: F401
    Base.metadata.create_all(bind=engine)  # 创建所有表结构


def get_db():
    """
    FastAPI 依赖：每个请求一个数据库会话，请求结束后关闭
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
