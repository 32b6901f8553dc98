"""
File: app/api_router.py
Description: 根 API 路由聚合层

本模块负责：
1. 聚合所有业务领域的 Router (social_auth)
2. 统一设置路由前缀 (如 /social-accounts)
3. 统一设置标签 (Tags) 用于 OpenAPI 文档分组

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-18 (Social account management)
"""

from fastapi import APIRouter

from app.domains.social_auth.router import router as social_accounts_router

# 创建根 API 路由
api_router = APIRouter()

# ------------------------------------------------------------------------------
# 注册领域路由
# ------------------------------------------------------------------------------

# 1. 三方账号模块 (Social Auth Domain)
api_router.include_router(
    social_accounts_router, prefix="/social-accounts", tags=["social-accounts"]
)
