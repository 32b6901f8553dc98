"""
File: app/core/security.py
Description: 安全工具模块 (JWT 验签)

Access Token 由外部令牌服务签发 (本服务只负责把三方身份解析为本地用户)，
本模块只做验签与主体提取：
1. 校验签名与有效期
2. 校验 Token 类型 (仅接受 access)
3. 提取 sub (用户 uuid)

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-18 (Verify-only; issuance moved to the token service)
"""

from jose import JWTError, jwt

from app.core.config import settings


class InvalidTokenError(Exception):
    """Token 无法通过校验 (签名错误、过期、缺少 sub 或类型不符)"""


def decode_access_token(token: str) -> str:
    """
    解析 Access Token 并返回主体标识 (用户 uuid)。

    Raises:
        InvalidTokenError: 校验失败
    """
    # settings 校验器已保证 SECRET_KEY 非空
    secret_key = settings.SECRET_KEY or ""

    try:
        payload = jwt.decode(token, secret_key, algorithms=[settings.ALGORITHM])
    except JWTError:
        # 使用 from None 截断异常链，避免暴露底层 jose 异常细节
        raise InvalidTokenError("Invalid Token or Expired") from None

    token_type = payload.get("type", "access")
    if token_type != "access":
        raise InvalidTokenError("Invalid Token type")

    subject = payload.get("sub")
    if not subject:
        raise InvalidTokenError("Invalid Token: missing sub")

    return str(subject)
