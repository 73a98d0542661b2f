"""
数据模型层 (ORM Models)

数据模型关系图：
    Tenant (租户)
       │
       ├── User (用户) ── APIKey
       │     ├── JournalEntry (日记)
       │     ├── ChatMessage (聊天)
       │     ├── RiskAlert (风险预警)
       │     ├── Subscription / AddonPurchase / FeatureUsage (计费与用量)
       │     └── Notification (通知)
       │
       ├── ContentItem (内容，tenant_id 为空表示全局)
       ├── AIProviderRoute / AIPersona (AI 路由配置，可为全局)
       └── AIFlow ── AIFlowNode / AIFlowEdge / AIFlowVersion

    Plan ── PlanFeature (平台级套餐目录)
"""

from radar.models.addon import AddonPurchase
from radar.models.ai import AIPersona, AIProviderRoute
from radar.models.ai_flow import AIFlow, AIFlowEdge, AIFlowNode, AIFlowVersion
from radar.models.api_key import APIKey
from radar.models.audit_log import AuditLog
from radar.models.chat import ChatMessage
from radar.models.content import ContentItem
from radar.models.journal import JournalEntry
from radar.models.notification import Notification, WhatsAppMessage
from radar.models.plan import FeatureOverride, Plan, PlanFeature
from radar.models.risk_alert import RiskAlert
from radar.models.subscription import BillingEvent, Subscription
from radar.models.tenant import Tenant
from radar.models.usage import AIUsageLog, FeatureUsage
from radar.models.user import User

__all__ = [
    "AIFlow",
    "AIFlowEdge",
    "AIFlowNode",
    "AIFlowVersion",
    "AIPersona",
    "AIProviderRoute",
    "AIUsageLog",
    "APIKey",
    "AddonPurchase",
    "AuditLog",
    "BillingEvent",
    "ChatMessage",
    "ContentItem",
    "FeatureOverride",
    "FeatureUsage",
    "JournalEntry",
    "Notification",
    "Plan",
    "PlanFeature",
    "RiskAlert",
    "Subscription",
    "Tenant",
    "User",
    "WhatsAppMessage",
]
