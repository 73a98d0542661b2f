"""
神谕 (Oráculo) 服务

平台的站内 AI 支持助手。按提问者身份（管理员、用户、专业人士、开发者、白标伙伴）
拼装不同的系统提示词，要求模型以固定 JSON 结构回答，再解析为 OracleAnswer。

调用链：
    限流（每用户/分钟） → 套餐额度预检查 → AI 路由（feature=oraculo, json_mode）
    → 解析回答 → 记录用量
"""

import json
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from radar.exceptions import AIRouterError
from radar.infra.logging import RequestTimer, get_logger
from radar.models import Tenant, User
from radar.services import plans as plan_service
from radar.services.ai_router import AIRequestPayload, AIRouterRequest, route_ai_request

logger = get_logger(__name__)

ORACLE_FEATURE = "oraculo"
ORACLE_ROLES = ("admin", "usuaria", "profissional", "dev", "whitelabel")


PROMPT_BASE = """Você é o ORÁCULO, a IA de suporte do Radar.

CONTEXTO DO PRODUTO:
- Radar é um SaaS brasileiro de apoio a vítimas de relacionamentos abusivos
- Funcionalidades: Teste de Clareza, Diário de Episódios, Chat/Coach IA, Plano de Segurança
- Planos: Gratuito, Essencial, Premium, Profissional

REGRAS GERAIS:
1. Responda SEMPRE em português brasileiro
2. Seja direto e objetivo
3. Use dados quando disponíveis
4. Sugira ações concretas
5. Identifique riscos e prioridades
6. NUNCA invente dados - se não souber, diga

FORMATO DE RESPOSTA (JSON OBRIGATÓRIO):
{
  "modo": "analise" | "sugestao" | "alerta" | "explicacao",
  "risco": "baixo" | "medio" | "alto" | "critico",
  "titulo_curto": "string (max 50 chars)",
  "resposta_principal": "string (resposta detalhada)",
  "passos": ["passo 1", "passo 2", ...],
  "links_sugeridos": [{"label": "string", "url": "string"}],
  "mensagem_final_seguranca": "string (apenas se risco alto/critico)"
}

IMPORTANTE: Responda APENAS com o JSON, sem texto adicional."""

ROLE_PROMPTS: dict[str, str] = {
    "admin": """
SEU PAPEL COMO ORÁCULO PARA ADMIN:
Você ajuda o ADMINISTRADOR/DONO do produto a:
- Entender métricas e dados do sistema
- Identificar problemas técnicos e de negócio
- Tomar decisões estratégicas
- Configurar e otimizar o produto

TOM: Técnico, direto, estratégico.
FOCO: Métricas, performance, decisões de produto, configurações.""",
    "usuaria": """
SEU PAPEL COMO ORÁCULO PARA USUÁRIA:
Você ajuda a USUÁRIA (pessoa em relacionamento potencialmente abusivo) a:
- Entender como usar as funcionalidades do Radar
- Interpretar resultados do Teste de Clareza
- Usar o Diário de forma efetiva
- Encontrar recursos de ajuda

TOM: Acolhedor, empático, cuidadoso. Linguagem simples e acessível.
FOCO: Suporte emocional, orientação de uso, segurança.
CUIDADO: Nunca diagnosticar, sempre sugerir buscar ajuda profissional.""",
    "profissional": """
SEU PAPEL COMO ORÁCULO PARA PROFISSIONAL:
Você ajuda o PROFISSIONAL (psicólogo, advogado, assistente social) a:
- Entender como usar o Radar com seus clientes/pacientes
- Interpretar relatórios e dados dos clientes
- Configurar sua área profissional

TOM: Profissional, técnico quando necessário, respeitoso.
FOCO: Uso clínico/jurídico, relatórios, gestão de clientes.""",
    "dev": """
SEU PAPEL COMO ORÁCULO PARA DESENVOLVEDOR:
Você ajuda o DESENVOLVEDOR a:
- Entender a arquitetura do sistema
- Debugar problemas técnicos
- Entender APIs e integrações

TOM: Técnico, preciso, com exemplos de código quando útil.
FOCO: Código, APIs, banco de dados, deploy, debugging.""",
    "whitelabel": """
SEU PAPEL COMO ORÁCULO PARA PARCEIRO WHITELABEL:
Você ajuda o PARCEIRO WHITELABEL a:
- Configurar sua instância personalizada
- Entender opções de customização
- Gerenciar seus usuários e métricas da sua base

TOM: Profissional, orientado a negócios, prático.
FOCO: Customização, gestão, métricas da instância, suporte.""",
}


@dataclass
class OracleQuestion:
    question: str
    role: str = "usuaria"
    plan: str | None = None
    url_atual: str | None = None
    manual_context: str | None = None
    language: str = "pt-BR"


@dataclass
class OracleAnswer:
    modo: str = "explicacao"
    risco: str = "baixo"
    titulo_curto: str = "Resposta do Oráculo"
    resposta_principal: str = ""
    passos: list[str] = field(default_factory=list)
    links_sugeridos: list[dict[str, str]] = field(default_factory=list)
    mensagem_final_seguranca: str | None = None


@dataclass
class OracleResult:
    answer: OracleAnswer
    meta: dict[str, Any]


def oracle_role_for(user_role: str, requested: str | None = None) -> str:
    """
    用户角色 → 神谕身份

    管理员可以指定以 dev / whitelabel 等身份提问，其他用户固定为自身角色。
    """
    if user_role in ("admin", "super_admin"):
        if requested in ORACLE_ROLES:
            return requested
        return "admin"
    if user_role == "profissional":
        return "profissional"
    return "usuaria"


def build_system_prompt(role: str) -> str:
    return PROMPT_BASE + "\n" + ROLE_PROMPTS.get(role, ROLE_PROMPTS["usuaria"])


def build_user_context(question: OracleQuestion) -> str:
    lines = [
        "CONTEXTO DA PERGUNTA:",
        f"- Perfil: {question.role}",
        f"- Plano: {question.plan or 'não informado'}",
        f"- Página atual: {question.url_atual or 'não informada'}",
        f"- Idioma: {question.language or 'pt-BR'}",
    ]
    if question.manual_context:
        lines.append(f"- Contexto adicional: {question.manual_context}")
    lines.extend(["", "PERGUNTA:", question.question])
    return "\n".join(lines)


def parse_oracle_response(text: str) -> OracleAnswer:
    """解析模型输出；不是 JSON 对象时把原文作为主回答"""
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return OracleAnswer(resposta_principal=text or "")

    if not isinstance(parsed, dict):
        return OracleAnswer(resposta_principal=text)

    passos = parsed.get("passos")
    links = parsed.get("links_sugeridos")
    return OracleAnswer(
        modo=parsed.get("modo") or "explicacao",
        risco=parsed.get("risco") or "baixo",
        titulo_curto=parsed.get("titulo_curto") or "Resposta do Oráculo",
        resposta_principal=parsed.get("resposta_principal") or text,
        passos=[str(p) for p in passos] if isinstance(passos, list) else [],
        links_sugeridos=[link for link in links if isinstance(link, dict)] if isinstance(links, list) else [],
        mensagem_final_seguranca=parsed.get("mensagem_final_seguranca"),
    )


async def ask_oracle(
    session: AsyncSession,
    *,
    user: User,
    tenant: Tenant,
    question: OracleQuestion,
) -> OracleResult:
    """
    向神谕提问

    Raises:
        ValueError: 问题为空
        FeatureDisabledError / PlanLimitError: 无权限或额度用完
        AIRouterError: 所有提供商失败（失败记录会被提交）
    """
    if not question.question or not question.question.strip():
        raise ValueError("Pergunta é obrigatória")

    timer = RequestTimer()
    plan_slug = await plan_service.get_user_plan_slug(session, user, tenant)
    question.plan = question.plan or plan_slug
    await plan_service.ensure_available(session, user, ORACLE_FEATURE, plan_slug=plan_slug)

    request = AIRouterRequest(
        feature_key=ORACLE_FEATURE,
        user_role=user.role,
        plan_slug=plan_slug,
        tenant=tenant,
        user_id=user.id,
        payload=AIRequestPayload(
            messages=[
                {"role": "system", "content": build_system_prompt(question.role)},
                {"role": "user", "content": build_user_context(question)},
            ],
            json_mode=True,
        ),
    )

    try:
        response = await route_ai_request(session, request)
    except AIRouterError:
        await session.commit()
        raise

    answer = parse_oracle_response(response.content)
    await plan_service.check_and_record(
        session, user, ORACLE_FEATURE, plan_slug=plan_slug, details={"role": question.role}
    )
    await session.commit()

    logger.info(
        "神谕回答完成",
        extra={"role": question.role, "risco": answer.risco, "provider": response.provider_used},
    )
    return OracleResult(
        answer=answer,
        meta={
            "latency_ms": timer.elapsed_ms(),
            "tokens_input": response.tokens_input,
            "tokens_output": response.tokens_output,
            "model": response.model,
            "provider": response.provider_used,
        },
    )
