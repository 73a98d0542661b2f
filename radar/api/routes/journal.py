"""
日记接口 (/v1/journal)

创建时计入 diario 功能额度，并做风险检测和 30 天模式分析。
删除为软删除，列表和详情不再返回已删除条目。
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_current_context, get_db_session, require_feature
from radar.auth.api_key import APIKeyContext
from radar.schemas.journal import (
    JournalCreateResponse,
    JournalEntryCreate,
    JournalEntryResponse,
    JournalEntryUpdate,
    JournalListResponse,
    JournalUpdateResponse,
    RiskAnalysisResponse,
    RiskPatternResponse,
)
from radar.schemas.risk import RiskAlertResponse, RiskDetectionResponse
from radar.services import journal as journal_service
from radar.services.journal import JOURNAL_FEATURE, JournalAnalysis

router = APIRouter(dependencies=[Depends(require_feature(JOURNAL_FEATURE))])


def _err(code: str, detail: str) -> dict:
    return {"code": code, "detail": detail}


def _analysis_response(analysis: JournalAnalysis) -> RiskAnalysisResponse:
    pattern = None
    if analysis.pattern is not None:
        pattern = RiskPatternResponse(
            high_risk_count=analysis.pattern.high_risk_count,
            moderate_risk_count=analysis.pattern.moderate_risk_count,
            should_suggest_safety_plan=analysis.pattern.should_suggest_safety_plan,
        )
    return RiskAnalysisResponse(
        risk=RiskDetectionResponse(**analysis.risk.to_dict()),
        high_risk_tags_found=analysis.high_risk_tags_found,
        moderate_risk_tags_found=analysis.moderate_risk_tags_found,
        pattern=pattern,
    )


async def _get_entry_or_404(db: AsyncSession, user_id: str, entry_id: str):
    entry = await journal_service.get_entry(db, user_id, entry_id)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_err("ENTRY_NOT_FOUND", "Journal entry not found"),
        )
    return entry


@router.post("/v1/journal", response_model=JournalCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_journal_entry(
    payload: JournalEntryCreate,
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    """
    新建日记条目

    返回条目本身、可能生成的风险预警，以及标签/正文的风险分析。
    额度用完返回 429 PLAN_LIMIT_REACHED，套餐不含日记返回 403 FEATURE_NOT_IN_PLAN，
    管理员撤销返回 403 FEATURE_REVOKED。
    """
    try:
        result = await journal_service.create_entry(db, user=context.user, **payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_err("CONTENT_REQUIRED", str(e)))

    return JournalCreateResponse(
        entry=JournalEntryResponse.model_validate(result.entry),
        risk_alert=RiskAlertResponse.model_validate(result.alert) if result.alert else None,
        risk_analysis=_analysis_response(result.analysis),
    )


@router.get("/v1/journal", response_model=JournalListResponse)
async def list_journal_entries(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    entry_type: str | None = Query(None),
    tag: str | None = Query(None),
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    items, total = await journal_service.list_entries(
        db, context.user.id, limit=limit, offset=offset, entry_type=entry_type, tag=tag
    )
    return JournalListResponse(
        items=[JournalEntryResponse.model_validate(e) for e in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/v1/journal/{entry_id}", response_model=JournalEntryResponse)
async def get_journal_entry(
    entry_id: str,
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    entry = await _get_entry_or_404(db, context.user.id, entry_id)
    return JournalEntryResponse.model_validate(entry)


@router.patch("/v1/journal/{entry_id}", response_model=JournalUpdateResponse)
async def update_journal_entry(
    entry_id: str,
    payload: JournalEntryUpdate,
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    """修改条目；正文或标签变化会重新检测风险，等级上升时才生成新预警"""
    entry = await _get_entry_or_404(db, context.user.id, entry_id)
    entry, alert = await journal_service.update_entry(
        db, user=context.user, entry=entry, changes=payload.model_dump(exclude_unset=True)
    )
    return JournalUpdateResponse(
        entry=JournalEntryResponse.model_validate(entry),
        risk_alert=RiskAlertResponse.model_validate(alert) if alert else None,
    )


@router.delete("/v1/journal/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_journal_entry(
    entry_id: str,
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    entry = await _get_entry_or_404(db, context.user.id, entry_id)
    await journal_service.delete_entry(db, entry)
