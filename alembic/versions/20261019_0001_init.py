"""
初始数据库迁移脚本

创建全部基础表：
- tenants / users / api_keys                       : 租户、用户、认证
- plans / plan_features / feature_overrides        : 套餐目录与用户覆盖
- subscriptions / billing_events / addon_purchases : 计费
- feature_usage / ai_usage_logs                    : 用量
- journal_entries / chat_messages / risk_alerts    : 业务数据
- notifications / whatsapp_messages                : 通知
- content_items                                    : 内容
- ai_provider_routes / ai_personas                 : AI 路由配置
- ai_flows / ai_flow_nodes / ai_flow_edges / ai_flow_versions : 流程图
- audit_logs                                       : 审计

Revision ID: 20261019_0001
Revises: 无（初始迁移）
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _tenant_fk(nullable: bool = False) -> list:
    return [
        sa.Column("tenant_id", sa.String(length=36), nullable=nullable),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    ]


def _user_fk(ondelete: str = "CASCADE", nullable: bool = False) -> list:
    return [
        sa.Column("user_id", sa.String(length=36), nullable=nullable),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete=ondelete),
    ]


def upgrade() -> None:
    """升级：创建所有表"""
    # ==================== 租户与用户 ====================
    op.create_table(
        "tenants",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("plan_slug", sa.String(length=50), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("branding", sa.JSON(), nullable=False),
        sa.Column("max_ai_requests_per_day", sa.Integer(), nullable=True),
        sa.Column("stripe_customer_id", sa.String(length=100), nullable=True),
        sa.Column("disabled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disabled_reason", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("ix_tenants_status", "tenants", ["status"])

    op.create_table(
        "users",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("whatsapp_opt_in", sa.Boolean(), nullable=False),
        sa.Column("email_notifications", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("stripe_customer_id", sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])
    op.create_index("ix_users_phone", "users", ["phone"])
    op.create_index("ix_users_stripe_customer_id", "users", ["stripe_customer_id"])

    op.create_table(
        "api_keys",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(),
        *_user_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("prefix", sa.String(length=12), nullable=False),
        sa.Column("hashed_key", sa.String(length=128), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rate_limit_per_minute", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("hashed_key", name="uq_api_keys_hashed_key"),
    )
    op.create_index("ix_api_keys_tenant_id", "api_keys", ["tenant_id"])
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])
    op.create_index("ix_api_keys_prefix", "api_keys", ["prefix"])

    # ==================== 套餐 ====================
    op.create_table(
        "plans",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("slug", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("highlights", sa.JSON(), nullable=False),
        sa.Column("price_monthly_cents", sa.Integer(), nullable=False),
        sa.Column("price_yearly_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("stripe_price_monthly", sa.String(length=100), nullable=True),
        sa.Column("stripe_price_yearly", sa.String(length=100), nullable=True),
        sa.Column("is_visible", sa.Boolean(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "plan_features",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("plan_slug", sa.String(length=50), nullable=False),
        sa.Column("feature_key", sa.String(length=50), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("limit_daily", sa.Integer(), nullable=True),
        sa.Column("limit_weekly", sa.Integer(), nullable=True),
        sa.Column("limit_monthly", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["plan_slug"], ["plans.slug"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("plan_slug", "feature_key", name="uq_plan_feature"),
    )
    op.create_index("ix_plan_features_plan_slug", "plan_features", ["plan_slug"])

    op.create_table(
        "feature_overrides",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(),
        *_user_fk(),
        sa.Column("feature_key", sa.String(length=50), nullable=False),
        sa.Column("override_type", sa.String(length=20), nullable=False),
        sa.Column("limit_daily", sa.Integer(), nullable=True),
        sa.Column("limit_weekly", sa.Integer(), nullable=True),
        sa.Column("limit_monthly", sa.Integer(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_feature_overrides_tenant_id", "feature_overrides", ["tenant_id"])
    op.create_index("ix_feature_overrides_user_id", "feature_overrides", ["user_id"])

    # ==================== 计费 ====================
    op.create_table(
        "subscriptions",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(),
        *_user_fk(),
        sa.Column("plan_slug", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("period", sa.String(length=10), nullable=False),
        sa.Column("stripe_subscription_id", sa.String(length=100), nullable=True),
        sa.Column("stripe_customer_id", sa.String(length=100), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_subscription_id"),
    )
    op.create_index("ix_subscriptions_tenant_id", "subscriptions", ["tenant_id"])
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])

    op.create_table(
        "billing_events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("stripe_event_id", sa.String(length=100), nullable=False),
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_event_id"),
    )

    op.create_table(
        "addon_purchases",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(),
        *_user_fk(),
        sa.Column("addon_id", sa.String(length=50), nullable=False),
        sa.Column("feature_key", sa.String(length=50), nullable=True),
        sa.Column("credits_total", sa.Integer(), nullable=True),
        sa.Column("credits_remaining", sa.Integer(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("stripe_session_id", sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_session_id"),
    )
    op.create_index("ix_addon_purchases_tenant_id", "addon_purchases", ["tenant_id"])
    op.create_index("ix_addon_purchases_user_id", "addon_purchases", ["user_id"])
    op.create_index("ix_addon_purchases_feature_key", "addon_purchases", ["feature_key"])

    # ==================== 用量 ====================
    op.create_table(
        "feature_usage",
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(),
        *_user_fk(),
        sa.Column("feature_key", sa.String(length=50), nullable=False),
        sa.Column("source", sa.String(length=10), nullable=False),
        sa.Column("addon_purchase_id", sa.String(length=36), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["addon_purchase_id"], ["addon_purchases.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_feature_usage_tenant_id", "feature_usage", ["tenant_id"])
    op.create_index("ix_feature_usage_user_feature_used", "feature_usage", ["user_id", "feature_key", "used_at"])

    op.create_table(
        "ai_usage_logs",
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("feature_key", sa.String(length=50), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("persona", sa.String(length=100), nullable=True),
        sa.Column("tokens_input", sa.Integer(), nullable=False),
        sa.Column("tokens_output", sa.Integer(), nullable=False),
        sa.Column("latency_ms", sa.Integer(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_usage_logs_user_id", "ai_usage_logs", ["user_id"])
    op.create_index("ix_ai_usage_tenant_created", "ai_usage_logs", ["tenant_id", "created_at"])

    # ==================== 日记 / 聊天 / 风险 ====================
    op.create_table(
        "journal_entries",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(),
        *_user_fk(),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("emotions", sa.JSON(), nullable=False),
        sa.Column("impact_score", sa.Integer(), nullable=True),
        sa.Column("entry_type", sa.String(length=20), nullable=False),
        sa.Column("risk_level", sa.String(length=10), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_journal_entries_tenant_id", "journal_entries", ["tenant_id"])
    op.create_index("ix_journal_entries_user_id", "journal_entries", ["user_id"])

    op.create_table(
        "chat_messages",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(),
        *_user_fk(),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("channel", sa.String(length=20), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=True),
        sa.Column("model", sa.String(length=100), nullable=True),
        sa.Column("persona", sa.String(length=100), nullable=True),
        sa.Column("tokens", sa.Integer(), nullable=False),
        sa.Column("risk_level", sa.String(length=10), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_messages_tenant_id", "chat_messages", ["tenant_id"])
    op.create_index("ix_chat_messages_user_id", "chat_messages", ["user_id"])
    op.create_index("ix_chat_messages_session_id", "chat_messages", ["session_id"])

    op.create_table(
        "risk_alerts",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(),
        *_user_fk(),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("source_id", sa.String(length=36), nullable=True),
        sa.Column("level", sa.String(length=10), nullable=False),
        sa.Column("category", sa.String(length=30), nullable=False),
        sa.Column("triggers", sa.JSON(), nullable=False),
        sa.Column("recommendation", sa.Text(), nullable=False),
        sa.Column("is_resolved", sa.Boolean(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(length=36), nullable=True),
        sa.Column("resolution_note", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_risk_alerts_tenant_id", "risk_alerts", ["tenant_id"])
    op.create_index("ix_risk_alerts_user_id", "risk_alerts", ["user_id"])
    op.create_index("ix_risk_alerts_level", "risk_alerts", ["level"])
    op.create_index("ix_risk_alerts_is_resolved", "risk_alerts", ["is_resolved"])

    # ==================== 通知 ====================
    op.create_table(
        "notifications",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(),
        *_user_fk(),
        sa.Column("channel", sa.String(length=20), nullable=False),
        sa.Column("category", sa.String(length=30), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_tenant_id", "notifications", ["tenant_id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_status", "notifications", ["status"])

    op.create_table(
        "whatsapp_messages",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(nullable=True),
        *_user_fk(ondelete="SET NULL", nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("direction", sa.String(length=10), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_whatsapp_messages_tenant_id", "whatsapp_messages", ["tenant_id"])
    op.create_index("ix_whatsapp_messages_user_id", "whatsapp_messages", ["user_id"])
    op.create_index("ix_whatsapp_messages_phone", "whatsapp_messages", ["phone"])

    # ==================== 内容 ====================
    op.create_table(
        "content_items",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(nullable=True),
        sa.Column("slug", sa.String(length=150), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("content_type", sa.String(length=20), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("author_id", sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "slug", name="uq_content_tenant_slug"),
    )
    op.create_index("ix_content_items_tenant_id", "content_items", ["tenant_id"])
    op.create_index("ix_content_items_category", "content_items", ["category"])
    op.create_index("ix_content_items_status", "content_items", ["status"])

    # ==================== AI 路由配置 ====================
    op.create_table(
        "ai_provider_routes",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(nullable=True),
        sa.Column("feature_key", sa.String(length=50), nullable=False),
        sa.Column("plan_slug", sa.String(length=50), nullable=True),
        sa.Column("user_role", sa.String(length=20), nullable=True),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("route_role", sa.String(length=20), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False),
        sa.Column("limit_daily", sa.Integer(), nullable=True),
        sa.Column("limit_monthly", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_provider_routes_tenant_id", "ai_provider_routes", ["tenant_id"])
    op.create_index("ix_ai_provider_routes_feature_key", "ai_provider_routes", ["feature_key"])

    op.create_table(
        "ai_personas",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(nullable=True),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("feature_key", sa.String(length=50), nullable=False),
        sa.Column("system_prompt", sa.Text(), nullable=False),
        sa.Column("allowed_roles", sa.JSON(), nullable=False),
        sa.Column("allowed_plans", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_personas_tenant_id", "ai_personas", ["tenant_id"])
    op.create_index("ix_ai_personas_feature_key", "ai_personas", ["feature_key"])

    # ==================== 流程图 ====================
    op.create_table(
        "ai_flows",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        *_tenant_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("mode_default", sa.String(length=20), nullable=False),
        sa.Column("review_status", sa.String(length=20), nullable=False),
        sa.Column("validation_window_days", sa.Integer(), nullable=False),
        sa.Column("validation_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("validation_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_flows_tenant_id", "ai_flows", ["tenant_id"])

    op.create_table(
        "ai_flow_nodes",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("flow_id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("subtype", sa.String(length=50), nullable=True),
        sa.Column("label", sa.String(length=255), nullable=True),
        sa.Column("ai_agent_id", sa.String(length=36), nullable=True),
        sa.Column("position_x", sa.Float(), nullable=False),
        sa.Column("position_y", sa.Float(), nullable=False),
        sa.Column("config", sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(["flow_id"], ["ai_flows.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_flow_nodes_flow_id", "ai_flow_nodes", ["flow_id"])

    op.create_table(
        "ai_flow_edges",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("flow_id", sa.String(length=36), nullable=False),
        sa.Column("source_node_id", sa.String(length=36), nullable=False),
        sa.Column("source_handle", sa.String(length=50), nullable=False),
        sa.Column("target_node_id", sa.String(length=36), nullable=False),
        sa.Column("target_handle", sa.String(length=50), nullable=False),
        sa.ForeignKeyConstraint(["flow_id"], ["ai_flows.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_flow_edges_flow_id", "ai_flow_edges", ["flow_id"])

    op.create_table(
        "ai_flow_versions",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("flow_id", sa.String(length=36), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=True),
        sa.Column("is_current", sa.Boolean(), nullable=False),
        sa.Column("stability_status", sa.String(length=20), nullable=False),
        sa.Column("nodes", sa.JSON(), nullable=False),
        sa.Column("edges", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.ForeignKeyConstraint(["flow_id"], ["ai_flows.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("flow_id", "version", name="uq_flow_version"),
    )
    op.create_index("ix_ai_flow_versions_flow_id", "ai_flow_versions", ["flow_id"])

    # ==================== 审计 ====================
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("request_id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("resource_type", sa.String(length=50), nullable=True),
        sa.Column("resource_id", sa.String(length=36), nullable=True),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("path", sa.String(length=500), nullable=False),
        sa.Column("query_params", sa.JSON(), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("duration_ms", sa.Float(), nullable=False),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_request_id", "audit_logs", ["request_id"])
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_status_code", "audit_logs", ["status_code"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_tenant_created", "audit_logs", ["tenant_id", "created_at"])
    op.create_index("ix_audit_logs_action_created", "audit_logs", ["action", "created_at"])


def downgrade() -> None:
    """降级：按依赖逆序删除所有表"""
    for table in (
        "audit_logs",
        "ai_flow_versions",
        "ai_flow_edges",
        "ai_flow_nodes",
        "ai_flows",
        "ai_personas",
        "ai_provider_routes",
        "content_items",
        "whatsapp_messages",
        "notifications",
        "risk_alerts",
        "chat_messages",
        "journal_entries",
        "ai_usage_logs",
        "feature_usage",
        "addon_purchases",
        "billing_events",
        "subscriptions",
        "feature_overrides",
        "plan_features",
        "plans",
        "api_keys",
        "users",
        "tenants",
    ):
        op.drop_table(table)
