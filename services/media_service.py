# File: services/media_service.py
# 功能：日记照片、录音等媒体文件存储服务
# 实现：按用户目录保存上传的原始文件，不做格式转换或压缩

import os
import uuid
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads"


class MediaService:
    """
    媒体文件存储服务
    功能：保存、定位、删除用户上传的照片和录音
    """

    def __init__(self, upload_dir: Optional[str] = None, max_file_size: Optional[int] = None):
        self.upload_dir = upload_dir or os.getenv("MEDIA_UPLOAD_DIR", "uploads/media")
        self.max_file_size = max_file_size or int(os.getenv("MEDIA_MAX_FILE_SIZE", str(5 * 1024 * 1024)))  # 5MB
        self.allowed_prefixes = ("image/", "audio/")

        # 确保上传目录存在
        os.makedirs(self.upload_dir, exist_ok=True)

    def save_file(self, data: bytes, mime_type: str, user_id: int,
                  original_filename: str = "") -> Dict[str, Any]:
        """
        保存上传的文件
        :param data: 文件内容
        :param mime_type: MIME类型，只接受 image/* 和 audio/*
        :param user_id: 用户ID
        :param original_filename: 原始文件名（用于推断扩展名）
        :return: 保存结果 {"success", "url", "file_path"} 或 {"success": False, "error"}
        """
        try:
            self._validate(data, mime_type)

            filename = f"{uuid.uuid4().hex}{self._get_file_extension(original_filename, mime_type)}"
            user_dir = f"user_{user_id}"
            file_path = os.path.join(self.upload_dir, user_dir, filename)

            # 确保用户目录存在
            os.makedirs(os.path.dirname(file_path), exist_ok=True)

            with open(file_path, "wb") as f:
                f.write(data)

            url = f"{URL_PREFIX}/{user_dir}/{filename}"
            logger.info(f"✅ 媒体文件保存成功: {url} ({len(data)} bytes)")
            return {"success": True, "url": url, "file_path": file_path}

        except (ValueError, OSError) as e:
            logger.error(f"❌ 媒体文件保存失败: {e}")
            return {"success": False, "error": str(e)}

    def resolve_path(self, user_dir: str, filename: str) -> Optional[str]:
        """
        把 URL 中的目录和文件名映射为本地路径
        拒绝路径穿越
        """
        if os.path.basename(filename) != filename or os.path.basename(user_dir) != user_dir:
            return None
        if not user_dir.startswith("user_"):
            return None
        file_path = os.path.join(self.upload_dir, user_dir, filename)
        return file_path if os.path.isfile(file_path) else None

    def delete_by_url(self, url: Optional[str]) -> bool:
        """按URL删除本地文件，文件不存在时返回 False"""
        if not url or not url.startswith(URL_PREFIX + "/"):
            return False
        parts = url[len(URL_PREFIX) + 1:].split("/")
        if len(parts) != 2:
            return False
        file_path = self.resolve_path(parts[0], parts[1])
        if not file_path:
            return False
        try:
            os.remove(file_path)
            logger.info(f"🗑️ 删除媒体文件: {url}")
            return True
        except OSError as e:
            logger.warning(f"⚠️ 删除媒体文件失败 {url}: {e}")
            return False

    def _validate(self, data: bytes, mime_type: str) -> None:
        if not data:
            raise ValueError("文件为空")
        if len(data) > self.max_file_size:
            raise ValueError(f"文件过大，最大支持{self.max_file_size // (1024 * 1024)}MB")
        if not mime_type or not mime_type.startswith(self.allowed_prefixes):
            raise ValueError(f"只允许上传图片和音频: {mime_type}")

    def _get_file_extension(self, filename: str, mime_type: str) -> str:
        _, ext = os.path.splitext(filename or "")
        if ext:
            return ext.lower()
        subtype = mime_type.split("/", 1)[1].split(";", 1)[0]
        return f".{subtype}" if subtype else ""


# 全局媒体服务实例
media_service = MediaService()
