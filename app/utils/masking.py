"""
File: app/utils/masking.py
Description: PII 数据脱敏工具 (Data Masking)

本模块提供敏感信息脱敏功能，用于日志记录时的隐私保护。
三方登录 payload 通常夹带邮箱与各类 Token，写日志前必须经过这里。

特性：
1. 针对性脱敏: 邮箱。
2. 递归脱敏: 能够深度遍历字典/列表，自动过滤敏感 Key (如 password, id_token)。

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-18 (OAuth token keys)
"""

from typing import Any

# ==============================================================================
# 1. 敏感字段黑名单 (大小写不敏感)
# ==============================================================================
SENSITIVE_KEYS = {
    "password",
    "passwd",
    "secret",
    "token",
    "access_token",
    "refresh_token",
    "id_token",
    "code_verifier",
    "api_key",
    "session_id",
    "client_secret",
    "authorization",
}

# ==============================================================================
# 2. 基础脱敏函数
# ==============================================================================


def mask_email(email: str | None) -> str:
    """
    邮箱脱敏。
    规则: 保留用户名首位和域名，中间掩盖。
    示例: jane.doe@example.com -> j***@example.com
    """
    if not email or "@" not in email:
        return "******"

    user_part, domain_part = email.split("@", 1)
    if len(user_part) <= 1:
        masked_user = "*" * 4
    else:
        masked_user = f"{user_part[0]}***"
    return f"{masked_user}@{domain_part}"


def mask_secret(value: Any) -> str:
    """
    通用机密信息完全掩盖。
    用于密码、Token 等。
    """
    if value is None:
        return ""
    return "******"


# ==============================================================================
# 3. 递归脱敏工具 (核心)
# ==============================================================================


def mask_sensitive_data(data: Any) -> Any:
    """
    递归遍历数据结构（字典、列表），自动对敏感字段进行脱敏。

    用于在打印日志前处理三方 payload 或上下文字典。
    注意：此函数返回新的副本，不修改原数据。
    """
    if isinstance(data, dict):
        new_data = {}
        for k, v in data.items():
            if isinstance(k, str) and k.lower() in SENSITIVE_KEYS:
                new_data[k] = mask_secret(v)
            else:
                new_data[k] = mask_sensitive_data(v)
        return new_data

    if isinstance(data, list):
        return [mask_sensitive_data(item) for item in data]

    return data
