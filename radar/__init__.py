"""
Radar Platform - 应用主包

支持/自助服务 SaaS 平台的后端，包含以下子模块：
- api/        : API 路由和依赖注入
- auth/       : 认证授权（API Key、管理员 Token、角色）
- db/         : 数据库连接和会话管理
- models/     : SQLAlchemy ORM 数据模型
- schemas/    : Pydantic 请求/响应模式
- services/   : 业务逻辑服务层（日记、风险、套餐、AI 路由、计费...）
- infra/      : 基础设施（日志、LLM、WhatsApp、邮件、限流）
- middleware/ : 请求追踪和审计

项目架构遵循分层设计：
    API层 → 服务层 → 数据访问层 → 第三方 SDK
"""
