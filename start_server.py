#!/usr/bin/env python3
"""
Semillita 服务器启动脚本
"""

import os
import sys
import uvicorn
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()

def main():
    # 检查环境变量
    if not os.getenv("JWT_SECRET_KEY"):
        print("⚠️ 未设置 JWT_SECRET_KEY，将使用开发环境默认密钥")
        print("   生产环境请在 .env 文件中设置 JWT_SECRET_KEY")

    # 检查上传目录是否可写
    upload_dir = os.getenv("MEDIA_UPLOAD_DIR", "uploads/media")
    try:
        os.makedirs(upload_dir, exist_ok=True)
    except OSError as e:
        print(f"❌ 无法创建上传目录 {upload_dir}: {e}")
        sys.exit(1)

    print("✅ 环境检查通过，启动服务器...")

    # 启动服务器
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.getenv("RELOAD", "false").lower() == "true",
        log_level="info"
    )

if __name__ == "__main__":
    main()
