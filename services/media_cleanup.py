# File: services/media_cleanup.py
# 功能：清理未被任何记录引用的媒体文件
# 实现：收集日记、植物、种子中引用的URL，与上传目录中的文件对比后删除多余文件

import os
import logging
from typing import Dict, Set
from sqlalchemy.orm import Session

from database_models import JournalEntry, Plant, Seed
from .media_service import MediaService, media_service, URL_PREFIX

logger = logging.getLogger(__name__)


def get_referenced_urls(db: Session) -> Set[str]:
    """所有被数据库记录引用的媒体URL"""
    referenced = set()
    for photo_url, audio_url in db.query(JournalEntry.photo_url, JournalEntry.audio_url).all():
        referenced.update([photo_url, audio_url])
    for first_url, latest_url in db.query(Plant.first_photo_url, Plant.latest_photo_url).all():
        referenced.update([first_url, latest_url])
    referenced.update(url for (url,) in db.query(Seed.photo_url).all())
    referenced.discard(None)
    return referenced


def cleanup_unreferenced_media(db: Session, service: MediaService = media_service,
                               dry_run: bool = False) -> Dict[str, int]:
    """
    删除上传目录中未被引用的文件
    dry_run 为 True 时只统计，不删除

    Returns:
        {"scanned", "deleted", "failed", "freed_bytes"}
    """
    stats = {"scanned": 0, "deleted": 0, "failed": 0, "freed_bytes": 0}
    if not os.path.isdir(service.upload_dir):
        logger.warning(f"⚠️ 上传目录不存在: {service.upload_dir}")
        return stats

    referenced = get_referenced_urls(db)
    logger.info(f"📊 被引用的媒体文件数: {len(referenced)}")

    for user_dir in sorted(os.listdir(service.upload_dir)):
        user_path = os.path.join(service.upload_dir, user_dir)
        if not os.path.isdir(user_path) or not user_dir.startswith("user_"):
            continue
        for filename in sorted(os.listdir(user_path)):
            file_path = os.path.join(user_path, filename)
            if not os.path.isfile(file_path):
                continue
            stats["scanned"] += 1
            if f"{URL_PREFIX}/{user_dir}/{filename}" in referenced:
                continue
            if dry_run:
                stats["deleted"] += 1
                stats["freed_bytes"] += os.path.getsize(file_path)
                logger.info(f"   - 将删除: {user_dir}/{filename}")
                continue
            try:
                size = os.path.getsize(file_path)
                os.remove(file_path)
                stats["deleted"] += 1
                stats["freed_bytes"] += size
                logger.info(f"🗑️ 删除未引用文件: {user_dir}/{filename} ({size} bytes)")
            except OSError as e:
                stats["failed"] += 1
                logger.error(f"❌ 删除失败 {user_dir}/{filename}: {e}")

    logger.info(f"✅ 媒体清理完成: 成功 {stats['deleted']} 个，失败 {stats['failed']} 个，"
                f"释放 {stats['freed_bytes'] / 1024 / 1024:.2f} MB")
    return stats
