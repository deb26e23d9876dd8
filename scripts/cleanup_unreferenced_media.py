#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
清理未被引用的媒体文件
功能：删除上传目录中没有被日记、植物或种子引用的照片和录音
"""

import os
import sys
import logging

# 添加项目根目录到Python路径
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database_models import init_db, SessionLocal
from services.media_cleanup import cleanup_unreferenced_media

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('cleanup_unreferenced_media.log'),
        logging.StreamHandler()
    ]
)

def main():
    """主函数"""
    import argparse

    parser = argparse.ArgumentParser(description='清理未被引用的媒体文件')
    parser.add_argument('--dry-run', action='store_true', help='模拟模式，不实际删除文件')

    args = parser.parse_args()

    logging.info("=" * 60)
    logging.info("🧹 开始清理未被引用的媒体文件")
    logging.info("=" * 60)

    init_db()
    db = SessionLocal()
    try:
        if args.dry_run:
            logging.info("🔍 模拟模式 - 不会实际删除文件")
        stats = cleanup_unreferenced_media(db, dry_run=args.dry_run)
        logging.info(f"📊 统计结果: {stats}")
    except KeyboardInterrupt:
        logging.info("⚠️ 用户中断操作")
    except Exception as e:
        logging.error(f"❌ 清理过程异常: {e}")
        sys.exit(1)
    finally:
        db.close()

if __name__ == "__main__":
    main()
