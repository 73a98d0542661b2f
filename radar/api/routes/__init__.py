"""
API 路由汇总

将所有子路由注册到主路由器，统一对外暴露。

路由模块说明：
- health.py        : 健康检查接口
- me.py            : 用户资料、用量、数据导出
- plans.py         : 套餐目录、加购包
- journal.py       : 日记
- chat.py          : Coach 聊天、风险检测、我的风险预警
- oracle.py        : 神谕（AI 支持助手）
- billing.py       : Stripe 结账与订阅
- content.py       : 内容阅读
- notifications.py : 站内通知
- webhooks.py      : Stripe / WhatsApp 回调
- admin_console.py : 租户管理台（用户、Key、覆盖、预警、内容、审计）
- admin_ai.py      : 租户管理台（AI 路由、人设、用量、流程图）
- admin.py         : 平台管理员接口（租户、套餐目录）
"""

from fastapi import APIRouter

from radar.api.routes import (
    admin,
    admin_ai,
    admin_console,
    billing,
    chat,
    content,
    health,
    journal,
    me,
    notifications,
    oracle,
    plans,
    webhooks,
)

# 主路由器，包含所有 API 端点
api_router = APIRouter()

# 注册各子路由，tags 用于 API 文档分组
api_router.include_router(health.router, tags=["health"])
api_router.include_router(me.router, tags=["me"])
api_router.include_router(plans.router, tags=["plans"])
api_router.include_router(journal.router, tags=["journal"])
api_router.include_router(chat.router, tags=["chat"])
api_router.include_router(oracle.router, tags=["oracle"])
api_router.include_router(billing.router, tags=["billing"])
api_router.include_router(content.router, tags=["content"])
api_router.include_router(notifications.router, tags=["notifications"])
api_router.include_router(webhooks.router)  # webhooks 路由自带 tags
api_router.include_router(admin_console.router)
api_router.include_router(admin_ai.router)
api_router.include_router(admin.router)
