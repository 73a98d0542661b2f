"""
加购包服务

加购包是可单独购买的附加资源：
- creditos: 额度包（如 +50 条 AI 对话），按 credits 消耗，有有效期
- feature: 单次功能（如导出 PDF）
- pacote: 主题资源包（如安全工具包），有效期内可访问
- servico: 人工服务（暂未上线）

目录是静态配置；Stripe Price ID 通过环境变量 STRIPE_ADDON_PRICES 注入，
未配置时结账按目录价格即时创建 price_data。
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.config import get_settings
from radar.infra.logging import get_logger
from radar.models import AddonPurchase, User

logger = get_logger(__name__)


@dataclass(frozen=True)
class Addon:
    id: str
    name: str
    description: str
    type: str
    category: str
    price_cents: int
    available_for_plans: tuple[str, ...]
    feature_key: str | None = None
    credits: int | None = None
    validity_days: int | None = None
    one_time_purchase: bool = False
    coming_soon: bool = False
    includes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def stripe_price_id(self) -> str | None:
        return get_settings().stripe_addon_prices.get(self.id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "category": self.category,
            "price_cents": self.price_cents,
            "feature_key": self.feature_key,
            "credits": self.credits,
            "validity_days": self.validity_days,
            "one_time_purchase": self.one_time_purchase,
            "coming_soon": self.coming_soon,
            "includes": list(self.includes),
            "available_for_plans": list(self.available_for_plans),
        }


ADDONS: tuple[Addon, ...] = (
    Addon(
        id="chat-50",
        name="+50 Mensagens Coach IA",
        description="Pacote de 50 mensagens extras para o Coach IA.",
        type="creditos",
        category="chat",
        price_cents=990,
        feature_key="chat",
        credits=50,
        validity_days=30,
        available_for_plans=("free", "essencial"),
    ),
    Addon(
        id="chat-200",
        name="+200 Mensagens Coach IA",
        description="Pacote de 200 mensagens extras para o Coach IA.",
        type="creditos",
        category="chat",
        price_cents=2990,
        feature_key="chat",
        credits=200,
        validity_days=60,
        available_for_plans=("free", "essencial"),
    ),
    Addon(
        id="diario-10",
        name="+10 Entradas no Diário",
        description="Pacote de 10 entradas extras no diário.",
        type="creditos",
        category="diario",
        price_cents=490,
        feature_key="diario",
        credits=10,
        validity_days=30,
        available_for_plans=("free",),
    ),
    Addon(
        id="pdf-export",
        name="Exportar PDF (Avulso)",
        description="Exporte seu resultado do Teste de Clareza em PDF uma vez.",
        type="feature",
        category="exportacao",
        price_cents=490,
        feature_key="exportacao",
        credits=1,
        available_for_plans=("free",),
    ),
    Addon(
        id="relatorio-completo",
        name="Relatório Completo",
        description="Relatório detalhado com análise de todos os seus registros.",
        type="feature",
        category="exportacao",
        price_cents=1990,
        feature_key="relatorio",
        credits=1,
        available_for_plans=("free", "essencial"),
        includes=(
            "Análise de padrões do diário",
            "Evolução temporal",
            "Categorias mais frequentes",
            "Recomendações personalizadas",
            "PDF profissional",
        ),
    ),
    Addon(
        id="kit-seguranca",
        name="Kit Segurança",
        description="Guia de plano de fuga, checklist de documentos e contatos de emergência.",
        type="pacote",
        category="seguranca",
        price_cents=1490,
        validity_days=90,
        available_for_plans=("free", "essencial", "premium"),
        includes=(
            "Guia de Plano de Fuga (PDF)",
            "Checklist de Documentos",
            "Contatos de Emergência Personalizados",
            "Roteiro de Denúncia",
        ),
    ),
    Addon(
        id="kit-documentacao",
        name="Kit Documentação Legal",
        description="Ferramentas para documentar e organizar evidências.",
        type="pacote",
        category="seguranca",
        price_cents=2490,
        one_time_purchase=True,
        available_for_plans=("free", "essencial", "premium"),
        includes=(
            "Template de Linha do Tempo",
            "Guia de Coleta de Provas",
            "Modelo de Declaração",
        ),
    ),
    Addon(
        id="sessao-orientacao",
        name="Sessão de Orientação",
        description="Sessão de 30 minutos com profissional especializado.",
        type="servico",
        category="premium",
        price_cents=9990,
        coming_soon=True,
        available_for_plans=("free", "essencial", "premium"),
    ),
)

_ADDONS_BY_ID = {addon.id: addon for addon in ADDONS}


def get_addon(addon_id: str) -> Addon | None:
    return _ADDONS_BY_ID.get(addon_id)


def list_addons_for_plan(plan_slug: str) -> list[Addon]:
    """某套餐可购买的加购包（不含即将上线的）"""
    return [a for a in ADDONS if plan_slug in a.available_for_plans and not a.coming_soon]


async def list_active_purchases(session: AsyncSession, user_id: str) -> list[AddonPurchase]:
    now = datetime.now(timezone.utc)
    result = await session.execute(
        select(AddonPurchase)
        .where(
            AddonPurchase.user_id == user_id,
            AddonPurchase.is_active.is_(True),
            or_(AddonPurchase.expires_at.is_(None), AddonPurchase.expires_at > now),
        )
        .order_by(AddonPurchase.created_at.desc())
    )
    return list(result.scalars().all())


async def has_purchased(session: AsyncSession, user_id: str, addon_id: str) -> bool:
    result = await session.execute(
        select(AddonPurchase.id).where(
            AddonPurchase.user_id == user_id,
            AddonPurchase.addon_id == addon_id,
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def grant_addon(
    session: AsyncSession,
    *,
    user: User,
    addon: Addon,
    stripe_session_id: str | None = None,
) -> AddonPurchase:
    """支付成功后发放加购包（不 commit）"""
    expires_at = None
    if addon.validity_days:
        expires_at = datetime.now(timezone.utc) + timedelta(days=addon.validity_days)

    purchase = AddonPurchase(
        tenant_id=user.tenant_id,
        user_id=user.id,
        addon_id=addon.id,
        feature_key=addon.feature_key,
        credits_total=addon.credits,
        credits_remaining=addon.credits,
        expires_at=expires_at,
        stripe_session_id=stripe_session_id,
    )
    session.add(purchase)
    logger.info(f"加购包已发放: {addon.id}", extra={"user_id": user.id, "credits": addon.credits})
    return purchase


async def consume_credit(
    session: AsyncSession,
    user_id: str,
    feature_key: str,
    *,
    now: datetime | None = None,
) -> AddonPurchase | None:
    """
    消耗一个加购包额度

    优先使用最早过期的额度包；没有可用额度时返回 None。
    """
    now = now or datetime.now(timezone.utc)
    result = await session.execute(
        select(AddonPurchase)
        .where(
            AddonPurchase.user_id == user_id,
            AddonPurchase.feature_key == feature_key,
            AddonPurchase.is_active.is_(True),
            AddonPurchase.credits_remaining > 0,
            or_(AddonPurchase.expires_at.is_(None), AddonPurchase.expires_at > now),
        )
        .order_by(AddonPurchase.expires_at.is_(None), AddonPurchase.expires_at, AddonPurchase.created_at)
        .limit(1)
        .with_for_update()
    )
    purchase = result.scalar_one_or_none()
    if purchase is None:
        return None

    purchase.credits_remaining -= 1
    if purchase.credits_remaining <= 0:
        purchase.is_active = False
    return purchase
