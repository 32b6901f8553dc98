"""
File: app/domains/social_auth/constants.py
Description: 三方登录领域常量定义 (错误码 + 成功提示)
Namespace: social_auth.*

1. Error 定义: 继承 BaseErrorCode，包含 (HTTP状态, 业务码, 默认文案)
2. Msg 定义: 纯字符串常量，用于 Router 返回成功响应

Author: jinmozhe
Created: 2026-10-18
"""

from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from app.core.error_code import BaseErrorCode

# ==============================================================================
# 1. 错误码定义 (Error Codes)
# 用于 Service 层抛出异常: raise AppException(SocialAuthError.REGISTRATION_FAILED)
# ==============================================================================


class SocialAuthError(BaseErrorCode):
    """
    三方登录领域错误定义
    Tuple Structure: (HTTP_Status, Code_String, Default_Message)
    """

    # HTTP 400: 未启用的三方平台
    PROVIDER_NOT_ENABLED = (
        HTTP_400_BAD_REQUEST,
        "social_auth.provider_not_enabled",
        "该登录方式未启用",
    )

    # HTTP 400: 三方资料缺少唯一标识，解析在任何写入之前终止
    MISSING_EXTERNAL_ID = (
        HTTP_400_BAD_REQUEST,
        "social_auth.missing_external_id",
        "三方资料缺少用户唯一标识",
    )

    # HTTP 403: 没有匹配用户且关闭了自动注册
    AUTO_REGISTRATION_DISABLED = (
        HTTP_403_FORBIDDEN,
        "social_auth.auto_registration_disabled",
        "未找到匹配用户且自动注册已关闭",
    )

    # HTTP 500: 注册事务回滚 / 注册后置钩子失败或配置错误
    # 注意：钩子失败时用户记录可能已经落库
    REGISTRATION_FAILED = (
        HTTP_500_INTERNAL_SERVER_ERROR,
        "social_auth.registration_failed",
        "创建用户账号失败",
    )

    # HTTP 500: 按邮箱匹配到的用户缺少唯一标识 (脏数据)
    MATCHED_USER_INVALID = (
        HTTP_500_INTERNAL_SERVER_ERROR,
        "social_auth.matched_user_invalid",
        "匹配到的用户缺少唯一标识",
    )

    # HTTP 500: 已有用户绑定三方账号失败
    ACCOUNT_LINK_FAILED = (
        HTTP_500_INTERNAL_SERVER_ERROR,
        "social_auth.account_link_failed",
        "绑定三方账号失败",
    )

    # 仅用于日志记录，资料同步失败永远不会向调用方抛出
    PROFILE_SYNC_FAILED = (
        HTTP_500_INTERNAL_SERVER_ERROR,
        "social_auth.profile_sync_failed",
        "同步三方资料失败",
    )

    # HTTP 404: 三方绑定不存在或不属于当前用户
    SOCIAL_ACCOUNT_NOT_FOUND = (
        HTTP_404_NOT_FOUND,
        "social_auth.account_not_found",
        "三方账号不存在或不属于当前用户",
    )


# ==============================================================================
# 2. 成功提示语 (Success Messages)
# ==============================================================================


class SocialAuthMsg:
    """
    三方登录领域成功提示文案
    """

    ACCOUNTS_RETRIEVED = "三方账号列表获取成功"
    ACCOUNT_UNLINKED = "三方账号解绑成功"
