"""
领域异常

服务层抛出这些异常，由 radar.main 中的全局异常处理器统一映射为
{"detail": ..., "code": ...} 格式的 JSON 响应。
"""


class RadarError(Exception):
    """平台业务异常基类"""

    status_code: int = 400
    code: str = "BAD_REQUEST"

    def __init__(self, detail: str, *, code: str | None = None, extra: dict | None = None):
        super().__init__(detail)
        self.detail = detail
        if code:
            self.code = code
        self.extra = extra or {}


class FeatureDisabledError(RadarError):
    """功能未开放（租户开关关闭或套餐不包含该功能）"""

    status_code = 403
    code = "FEATURE_DISABLED"


class PlanLimitError(RadarError):
    """套餐用量超限"""

    status_code = 429
    code = "PLAN_LIMIT_REACHED"


class LLMError(RadarError):
    """LLM 调用错误"""

    status_code = 502
    code = "LLM_ERROR"


class AIRouterError(RadarError):
    """AI 路由失败（无可用提供商或全部调用失败）"""

    status_code = 502
    code = "AI_PROVIDERS_FAILED"


class BillingError(RadarError):
    """计费错误"""

    code = "BILLING_ERROR"


class BillingNotConfiguredError(BillingError):
    """Stripe 未配置"""

    status_code = 503
    code = "BILLING_NOT_CONFIGURED"


class WebhookError(RadarError):
    """Webhook 校验或解析错误"""

    code = "INVALID_WEBHOOK"


class FlowGraphError(RadarError):
    """AI 流程图结构错误"""

    code = "INVALID_GRAPH"


class NotificationError(Exception):
    """通知渠道发送失败（只记录，不影响主流程）"""
