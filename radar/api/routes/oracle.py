"""
神谕接口 (POST /v1/oracle)

平台内的 AI 支持助手。每个用户单独限流（比全局 API 限流更严格），
同时计入 oraculo 功能额度。
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_current_context, get_db_session, require_feature
from radar.auth.api_key import APIKeyContext
from radar.auth.rate_limit import get_oracle_rate_limiter
from radar.infra.logging import get_logger
from radar.schemas.oracle import OracleAnswerResponse, OracleMeta, OracleRequest, OracleResponse
from radar.services import oracle as oracle_service
from radar.services.oracle import ORACLE_FEATURE, OracleQuestion

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/v1/oracle",
    response_model=OracleResponse,
    dependencies=[Depends(require_feature(ORACLE_FEATURE))],
)
async def ask_oracle(
    payload: OracleRequest,
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    """
    向神谕提问

    - 问题为空：400 QUESTION_REQUIRED
    - 超过每分钟次数：429 RATE_LIMIT_EXCEEDED（带 Retry-After）
    - 套餐额度用完：429 PLAN_LIMIT_REACHED
    """
    if not payload.question.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "QUESTION_REQUIRED", "detail": "Pergunta é obrigatória"},
        )

    limiter = get_oracle_rate_limiter()
    limiter_key = f"oracle:{context.user.id}"
    if not limiter.allow(limiter_key):
        retry_after = limiter.retry_after(limiter_key)
        logger.warning("神谕限流触发", extra={"user_id": context.user.id})
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"code": "RATE_LIMIT_EXCEEDED", "detail": "Muitas perguntas seguidas. Aguarde um pouco."},
            headers={"Retry-After": str(retry_after)},
        )

    question = OracleQuestion(
        question=payload.question,
        role=oracle_service.oracle_role_for(context.role, payload.perfil),
        url_atual=payload.url_atual,
        manual_context=payload.manual_context,
        language=payload.language,
    )
    result = await oracle_service.ask_oracle(db, user=context.user, tenant=context.tenant, question=question)

    answer = result.answer
    return OracleResponse(
        response=OracleAnswerResponse(
            modo=answer.modo,
            risco=answer.risco,
            titulo_curto=answer.titulo_curto,
            resposta_principal=answer.resposta_principal,
            passos=answer.passos,
            links_sugeridos=answer.links_sugeridos,
            mensagem_final_seguranca=answer.mensagem_final_seguranca,
        ),
        meta=OracleMeta(**result.meta),
    )
