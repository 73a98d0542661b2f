"""
租户管理台：AI 配置 (/v1/admin)

- ai-routes   : 提供商路由表（本租户记录 + 只读的全局记录）
- ai-personas : 人设
- ai-usage    : 最近 N 天调用统计
- ai-flows    : 流程图编辑器后端（图保存、版本、回滚）

路由表和人设变化后清空路由缓存，下一次 AI 调用即生效。
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_db_session, require_roles
from radar.auth.api_key import APIKeyContext
from radar.models import AIPersona, AIProviderRoute
from radar.schemas.ai import (
    AIPersonaCreate,
    AIPersonaResponse,
    AIPersonaUpdate,
    AIRouteCreate,
    AIRouteResponse,
    AIRouteUpdate,
    AIUsageSummary,
)
from radar.schemas.ai_flow import (
    AIFlowCreate,
    AIFlowResponse,
    AIFlowUpdate,
    FlowEdge,
    FlowGraphResponse,
    FlowGraphSave,
    FlowNode,
    FlowVersionResponse,
)
from radar.services import ai_flows as flow_service
from radar.services import ai_usage as usage_service
from radar.services.ai_router import clear_route_cache

require_tenant_admin = require_roles("admin", "super_admin")

router = APIRouter(
    prefix="/v1/admin",
    tags=["admin-ai"],
    dependencies=[Depends(require_tenant_admin)],
)


def _err(code: str, detail: str) -> dict:
    return {"code": code, "detail": detail}


def _not_found(code: str, detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_err(code, detail))


# ==================== 提供商路由 ====================

@router.get("/ai-routes", response_model=list[AIRouteResponse])
async def list_ai_routes(
    feature_key: str | None = Query(None),
    include_global: bool = Query(True),
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    if include_global:
        conditions = [or_(AIProviderRoute.tenant_id == context.tenant.id, AIProviderRoute.tenant_id.is_(None))]
    else:
        conditions = [AIProviderRoute.tenant_id == context.tenant.id]
    if feature_key:
        conditions.append(AIProviderRoute.feature_key == feature_key)

    result = await db.execute(
        select(AIProviderRoute)
        .where(*conditions)
        .order_by(AIProviderRoute.feature_key, AIProviderRoute.priority)
    )
    return [AIRouteResponse.model_validate(r) for r in result.scalars().all()]


@router.post("/ai-routes", response_model=AIRouteResponse, status_code=status.HTTP_201_CREATED)
async def create_ai_route(
    payload: AIRouteCreate,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    route = AIProviderRoute(tenant_id=context.tenant.id, **payload.model_dump())
    db.add(route)
    await db.commit()
    await db.refresh(route)
    clear_route_cache()
    return AIRouteResponse.model_validate(route)


async def _get_own_route(db: AsyncSession, tenant_id: str, route_id: str) -> AIProviderRoute:
    """只允许修改本租户的路由，全局路由对租户只读"""
    route = await db.get(AIProviderRoute, route_id)
    if route is None or route.tenant_id != tenant_id:
        raise _not_found("ROUTE_NOT_FOUND", f"AI route {route_id} not found")
    return route


@router.patch("/ai-routes/{route_id}", response_model=AIRouteResponse)
async def update_ai_route(
    route_id: str,
    payload: AIRouteUpdate,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    route = await _get_own_route(db, context.tenant.id, route_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(route, key, value)
    await db.commit()
    await db.refresh(route)
    clear_route_cache()
    return AIRouteResponse.model_validate(route)


@router.delete("/ai-routes/{route_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ai_route(
    route_id: str,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    route = await _get_own_route(db, context.tenant.id, route_id)
    await db.delete(route)
    await db.commit()
    clear_route_cache()


# ==================== 人设 ====================

@router.get("/ai-personas", response_model=list[AIPersonaResponse])
async def list_personas(
    feature_key: str | None = Query(None),
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    conditions = [or_(AIPersona.tenant_id == context.tenant.id, AIPersona.tenant_id.is_(None))]
    if feature_key:
        conditions.append(AIPersona.feature_key == feature_key)
    result = await db.execute(select(AIPersona).where(*conditions).order_by(AIPersona.feature_key, AIPersona.slug))
    return [AIPersonaResponse.model_validate(p) for p in result.scalars().all()]


@router.post("/ai-personas", response_model=AIPersonaResponse, status_code=status.HTTP_201_CREATED)
async def create_persona(
    payload: AIPersonaCreate,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    existing = await db.execute(
        select(AIPersona.id).where(AIPersona.tenant_id == context.tenant.id, AIPersona.slug == payload.slug)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_err("PERSONA_EXISTS", f"Persona '{payload.slug}' already exists"),
        )

    persona = AIPersona(tenant_id=context.tenant.id, **payload.model_dump())
    db.add(persona)
    await db.commit()
    await db.refresh(persona)
    return AIPersonaResponse.model_validate(persona)


async def _get_own_persona(db: AsyncSession, tenant_id: str, persona_id: str) -> AIPersona:
    persona = await db.get(AIPersona, persona_id)
    if persona is None or persona.tenant_id != tenant_id:
        raise _not_found("PERSONA_NOT_FOUND", f"Persona {persona_id} not found")
    return persona


@router.patch("/ai-personas/{persona_id}", response_model=AIPersonaResponse)
async def update_persona(
    persona_id: str,
    payload: AIPersonaUpdate,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    persona = await _get_own_persona(db, context.tenant.id, persona_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(persona, key, value)
    await db.commit()
    await db.refresh(persona)
    return AIPersonaResponse.model_validate(persona)


@router.delete("/ai-personas/{persona_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_persona(
    persona_id: str,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    persona = await _get_own_persona(db, context.tenant.id, persona_id)
    await db.delete(persona)
    await db.commit()


# ==================== 用量统计 ====================

@router.get("/ai-usage", response_model=AIUsageSummary)
async def ai_usage_summary(
    days: int = Query(30, ge=1, le=365),
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    """按提供商 / 功能汇总调用次数、失败次数和 token"""
    summary = await usage_service.summarize_usage(db, context.tenant.id, days=days)
    return AIUsageSummary(**summary)


# ==================== 流程图 ====================

def _graph_response(graph: flow_service.FlowGraph, version: int | None = None) -> FlowGraphResponse:
    return FlowGraphResponse(
        flow=AIFlowResponse.model_validate(graph.flow),
        nodes=[FlowNode.model_validate(n) for n in graph.nodes],
        edges=[FlowEdge.model_validate(e) for e in graph.edges],
        version=version,
    )


async def _get_flow_or_404(db: AsyncSession, tenant_id: str, flow_id: str):
    flow = await flow_service.get_flow(db, tenant_id, flow_id)
    if flow is None:
        raise _not_found("FLOW_NOT_FOUND", f"Flow {flow_id} not found")
    return flow


@router.get("/ai-flows", response_model=list[AIFlowResponse])
async def list_flows(
    include_inactive: bool = Query(False),
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    flows = await flow_service.list_flows(db, context.tenant.id, include_inactive=include_inactive)
    return [AIFlowResponse.model_validate(f) for f in flows]


@router.post("/ai-flows", response_model=AIFlowResponse, status_code=status.HTTP_201_CREATED)
async def create_flow(
    payload: AIFlowCreate,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    flow = await flow_service.create_flow(
        db, tenant_id=context.tenant.id, created_by=context.user.id, data=payload.model_dump()
    )
    return AIFlowResponse.model_validate(flow)


@router.get("/ai-flows/{flow_id}", response_model=FlowGraphResponse)
async def get_flow(
    flow_id: str,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    """流程详情，包含当前的节点和连线"""
    flow = await _get_flow_or_404(db, context.tenant.id, flow_id)
    return _graph_response(await flow_service.get_graph(db, flow))


@router.patch("/ai-flows/{flow_id}", response_model=AIFlowResponse)
async def update_flow(
    flow_id: str,
    payload: AIFlowUpdate,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    flow = await _get_flow_or_404(db, context.tenant.id, flow_id)
    flow = await flow_service.update_flow(db, flow, payload.model_dump(exclude_unset=True))
    return AIFlowResponse.model_validate(flow)


@router.delete("/ai-flows/{flow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_flow(
    flow_id: str,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    """软删除（is_active=False），版本历史保留"""
    flow = await _get_flow_or_404(db, context.tenant.id, flow_id)
    await flow_service.deactivate_flow(db, flow)


@router.put("/ai-flows/{flow_id}/graph", response_model=FlowGraphResponse)
async def save_flow_graph(
    flow_id: str,
    payload: FlowGraphSave,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    """
    保存整张流程图

    结构不合法返回 400 INVALID_GRAPH；成功后生成新的当前版本。
    """
    flow = await _get_flow_or_404(db, context.tenant.id, flow_id)
    graph, version = await flow_service.save_graph(
        db,
        flow,
        nodes=[n.model_dump() for n in payload.nodes],
        edges=[e.model_dump() for e in payload.edges],
        label=payload.label,
        created_by=context.user.id,
    )
    return _graph_response(graph, version=version.version)


@router.get("/ai-flows/{flow_id}/versions", response_model=list[FlowVersionResponse])
async def list_flow_versions(
    flow_id: str,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    flow = await _get_flow_or_404(db, context.tenant.id, flow_id)
    versions = await flow_service.list_versions(db, flow.id)
    return [FlowVersionResponse.model_validate(v) for v in versions]


@router.post("/ai-flows/{flow_id}/versions/{version}/revert", response_model=FlowGraphResponse)
async def revert_flow_version(
    flow_id: str,
    version: int,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    flow = await _get_flow_or_404(db, context.tenant.id, flow_id)
    graph = await flow_service.revert_to_version(db, flow, version)
    if graph is None:
        raise _not_found("VERSION_NOT_FOUND", f"Version {version} not found")
    return _graph_response(graph, version=version)
