"""
套餐目录与 AI 路由初始化脚本

用途：
    - 新环境部署后写入默认套餐（free / essencial / premium / profissional）及功能额度
    - 写入全局 AI 路由（chat / oraculo）和默认人设

脚本可重复执行：已存在的套餐、功能、路由、人设按 slug / 唯一键更新，不会重复插入。

用法示例：
    uv run python scripts/seed_catalog.py
    uv run python scripts/seed_catalog.py --skip-ai
    uv run python scripts/seed_catalog.py --stripe-price essencial:monthly:price_123
"""

import argparse
import asyncio

from sqlalchemy import select

from radar.db.session import SessionLocal
from radar.models import AIPersona, AIProviderRoute, Plan
from radar.services import plans as plan_service

# 限额：(日, 周, 月)，None 表示不限制
PLANS = [
    {
        "slug": "free",
        "name": "Radar Guardar",
        "description": "Guarde sua história com segurança.",
        "highlights": ["Diário (3 entradas/mês)", "Coach IA (5 mensagens/dia)", "Recursos de emergência"],
        "price_monthly_cents": 0,
        "price_yearly_cents": 0,
        "sort_order": 0,
        "features": {
            "diario": (None, None, 3),
            "chat": (5, None, None),
            "oraculo": (3, None, None),
            "content": (None, None, None),
        },
    },
    {
        "slug": "essencial",
        "name": "Radar Jornada",
        "description": "Documente sua jornada e exporte relatórios.",
        "highlights": ["Diário ilimitado", "Coach IA (50 mensagens/dia)", "Exportar PDF"],
        "price_monthly_cents": 2990,
        "price_yearly_cents": 29900,
        "sort_order": 1,
        "features": {
            "diario": (None, None, None),
            "chat": (50, None, None),
            "oraculo": (20, None, None),
            "content": (None, None, None),
            "exportacao": (None, None, 10),
            "addons": (None, None, None),
        },
    },
    {
        "slug": "premium",
        "name": "Radar Defesa",
        "description": "Proteção completa com IA ilimitada.",
        "highlights": ["Coach IA ilimitado", "Múltiplas IAs colaborativas", "Prioridade no suporte"],
        "price_monthly_cents": 4990,
        "price_yearly_cents": 49900,
        "sort_order": 2,
        "features": {
            "diario": (None, None, None),
            "chat": (None, None, None),
            "oraculo": (None, None, None),
            "content": (None, None, None),
            "exportacao": (None, None, None),
            "addons": (None, None, None),
        },
    },
    {
        "slug": "profissional",
        "name": "Radar Profissional",
        "description": "Ferramentas para terapeutas e profissionais.",
        "highlights": ["Painel de clientes", "Relatórios para laudos", "Suporte dedicado"],
        "price_monthly_cents": 9990,
        "price_yearly_cents": 99900,
        "sort_order": 3,
        "features": {
            "diario": (None, None, None),
            "chat": (None, None, None),
            "oraculo": (None, None, None),
            "content": (None, None, None),
            "exportacao": (None, None, None),
            "addons": (None, None, None),
        },
    },
]

# (feature_key, plan_slug, provider, model, route_role, priority)
AI_ROUTES = [
    ("chat", None, "openai", "gpt-4o-mini", "principal", 10),
    ("chat", None, "groq", "llama-3.1-8b-instant", "fallback", 20),
    ("chat", "premium", "deepseek", "deepseek-chat", "colaborativo", 30),
    ("chat", "profissional", "deepseek", "deepseek-chat", "colaborativo", 30),
    ("oraculo", None, "openai", "gpt-4o-mini", "principal", 10),
    ("oraculo", None, "groq", "llama-3.1-8b-instant", "fallback", 20),
]

PERSONAS = [
    {
        "slug": "coach",
        "name": "Coach Radar",
        "feature_key": "chat",
        "system_prompt": (
            "Você é o Coach do Radar, uma IA de apoio para pessoas que vivem ou viveram "
            "relacionamentos abusivos. Acolha sem julgar, valide sentimentos, ajude a "
            "nomear padrões de comportamento e nunca minimize relatos de violência. "
            "Em caso de risco, oriente a procurar ajuda: Ligue 180 ou 190."
        ),
        "allowed_roles": [],
        "allowed_plans": [],
    },
    {
        "slug": "coach-profissional",
        "name": "Assistente Clínico",
        "feature_key": "chat",
        "system_prompt": (
            "Você auxilia profissionais de saúde mental que acompanham vítimas de abuso. "
            "Responda com linguagem técnica, cite padrões observáveis e sugira "
            "encaminhamentos, sem emitir diagnósticos."
        ),
        "allowed_roles": ["profissional"],
        "allowed_plans": [],
    },
]


async def seed_plans(session, stripe_prices: dict[tuple[str, str], str]) -> None:
    for definition in PLANS:
        data = {k: v for k, v in definition.items() if k != "features"}
        plan = await plan_service.get_plan(session, definition["slug"])
        if plan is None:
            plan = Plan(**data)
            session.add(plan)
            await session.flush()
            print(f"Created plan {plan.slug}")
        else:
            for field, value in data.items():
                setattr(plan, field, value)
            print(f"Updated plan {plan.slug}")

        monthly = stripe_prices.get((plan.slug, "monthly"))
        yearly = stripe_prices.get((plan.slug, "yearly"))
        if monthly:
            plan.stripe_price_monthly = monthly
        if yearly:
            plan.stripe_price_yearly = yearly

        for feature_key, (daily, weekly, monthly_limit) in definition["features"].items():
            await plan_service.upsert_plan_feature(
                session,
                plan.slug,
                {
                    "feature_key": feature_key,
                    "enabled": True,
                    "limit_daily": daily,
                    "limit_weekly": weekly,
                    "limit_monthly": monthly_limit,
                },
            )


async def seed_ai(session) -> None:
    for feature_key, plan_slug, provider, model, route_role, priority in AI_ROUTES:
        result = await session.execute(
            select(AIProviderRoute).where(
                AIProviderRoute.tenant_id.is_(None),
                AIProviderRoute.feature_key == feature_key,
                AIProviderRoute.provider == provider,
                AIProviderRoute.model == model,
                AIProviderRoute.route_role == route_role,
                AIProviderRoute.plan_slug.is_(None) if plan_slug is None
                else AIProviderRoute.plan_slug == plan_slug,
            )
        )
        route = result.scalar_one_or_none()
        if route is None:
            session.add(
                AIProviderRoute(
                    tenant_id=None,
                    feature_key=feature_key,
                    plan_slug=plan_slug,
                    provider=provider,
                    model=model,
                    route_role=route_role,
                    priority=priority,
                )
            )
            print(f"Created route {feature_key} -> {provider}/{model} ({route_role})")
        else:
            route.priority = priority
            route.is_active = True

    for definition in PERSONAS:
        result = await session.execute(
            select(AIPersona).where(AIPersona.tenant_id.is_(None), AIPersona.slug == definition["slug"])
        )
        persona = result.scalar_one_or_none()
        if persona is None:
            session.add(AIPersona(tenant_id=None, **definition))
            print(f"Created persona {definition['slug']}")
        else:
            for field, value in definition.items():
                setattr(persona, field, value)
            print(f"Updated persona {definition['slug']}")


def parse_stripe_prices(values: list[str]) -> dict[tuple[str, str], str]:
    prices = {}
    for value in values:
        try:
            slug, period, price_id = value.split(":", 2)
        except ValueError:
            raise SystemExit(f"Invalid --stripe-price value: {value} (expected slug:period:price_id)")
        if period not in ("monthly", "yearly"):
            raise SystemExit(f"Invalid period in --stripe-price: {period}")
        prices[(slug, period)] = price_id
    return prices


async def main() -> None:
    parser = argparse.ArgumentParser(description="Seed default plans, AI routes and personas")
    parser.add_argument("--skip-ai", action="store_true", help="Only seed the plan catalog")
    parser.add_argument(
        "--stripe-price",
        action="append",
        default=[],
        help="Stripe price id as slug:period:price_id (repeatable)",
    )
    args = parser.parse_args()
    stripe_prices = parse_stripe_prices(args.stripe_price)

    async with SessionLocal() as session:
        await seed_plans(session, stripe_prices)
        if not args.skip_ai:
            await seed_ai(session)
        await session.commit()

    print("Catalog seeded")


if __name__ == "__main__":
    asyncio.run(main())
