"""
数据库模型通用工具函数
"""

import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """当前 UTC 时间（naive，数据库统一存储格式）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_uuid() -> str:
    return str(uuid.uuid4())
