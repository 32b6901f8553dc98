"""
File: app/domains/social_auth/router.py
Description: 三方账号管理 HTTP 路由层

本模块定义"我的三方账号"端点 (均需鉴权 CurrentUser)：
1. GET    /social-accounts          列出已绑定的三方账号
2. DELETE /social-accounts/{uuid}   解绑指定三方账号

只能查看/解绑属于当前用户的绑定，防止越权访问 (IDOR)。

Author: jinmozhe
Created: 2026-10-18
"""

from fastapi import APIRouter, Request

from app.api.deps import CurrentUser
from app.core.response import ResponseModel
from app.domains.social_auth.constants import SocialAuthMsg
from app.domains.social_auth.dependencies import SocialAccountServiceDep
from app.domains.social_auth.schemas import SocialAccountRead

router = APIRouter()


@router.get(
    "",
    response_model=ResponseModel[list[SocialAccountRead]],
    summary="获取我的三方账号",
    description="列出当前登录用户已绑定的三方账号 (不包含原始资料快照)。需携带有效 Token。",
)
async def list_social_accounts(
    request: Request,
    current_user: CurrentUser,
    service: SocialAccountServiceDep,
) -> ResponseModel[list[SocialAccountRead]]:
    accounts = await service.list_accounts(current_user.uuid)

    req_id = getattr(request.state, "request_id", None)
    return ResponseModel.success(
        data=accounts,
        request_id=req_id,
        message=SocialAuthMsg.ACCOUNTS_RETRIEVED,
    )


@router.delete(
    "/{link_uuid}",
    response_model=ResponseModel[None],
    summary="解绑三方账号",
    description="解绑当前登录用户的某个三方账号。绑定不存在或不属于当前用户时返回 404。",
)
async def unlink_social_account(
    request: Request,
    link_uuid: str,
    current_user: CurrentUser,
    service: SocialAccountServiceDep,
) -> ResponseModel[None]:
    await service.unlink(current_user.uuid, link_uuid)

    req_id = getattr(request.state, "request_id", None)
    return ResponseModel.success(
        request_id=req_id,
        message=SocialAuthMsg.ACCOUNT_UNLINKED,
    )
