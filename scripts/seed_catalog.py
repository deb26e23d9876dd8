#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
初始化预置目录数据
功能：创建数据表，并写入情绪、成就、奖励的预置数据（可重复执行）
"""

import os
import sys
import logging

# 添加项目根目录到Python路径
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database_models import init_db, SessionLocal
from services.catalog_service import ensure_default_data

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
)


def main():
    init_db()
    db = SessionLocal()
    try:
        created = ensure_default_data(db)
    except Exception as e:
        logging.error(f"❌ 初始化预置数据失败: {e}")
        sys.exit(1)
    finally:
        db.close()

    if any(created.values()):
        logging.info(f"✅ 新增预置数据: {created}")
    else:
        logging.info("✅ 预置数据已是最新，无需写入")


if __name__ == "__main__":
    main()
