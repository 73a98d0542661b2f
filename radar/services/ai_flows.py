"""
AI 流程图服务（管理端编辑器后端）

流程图由节点（TRIGGER / IA / ACTION）和连线组成。保存整张图时：
1. 校验：节点 id 唯一、类型合法、连线两端都指向图中的节点
2. 删除旧节点/连线，按新图重建（客户端 id 映射为新的数据库 id）
3. 生成一个新版本快照并标记为当前版本

回滚到某个版本 = 用该版本快照重建节点/连线，并把该版本标记为当前版本。
这里只负责编辑和版本管理，不执行流程。
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from radar.exceptions import FlowGraphError
from radar.infra.logging import get_logger
from radar.models import AIFlow, AIFlowEdge, AIFlowNode, AIFlowVersion

logger = get_logger(__name__)

NODE_TYPES = ("TRIGGER", "IA", "ACTION")


@dataclass
class FlowGraph:
    flow: AIFlow
    nodes: list[AIFlowNode]
    edges: list[AIFlowEdge]


# ==================== 序列化 ====================


def node_to_dict(node: AIFlowNode) -> dict[str, Any]:
    return {
        "id": node.id,
        "type": node.type,
        "subtype": node.subtype,
        "label": node.label,
        "ai_agent_id": node.ai_agent_id,
        "position_x": node.position_x,
        "position_y": node.position_y,
        "config": node.config or {},
    }


def edge_to_dict(edge: AIFlowEdge) -> dict[str, Any]:
    return {
        "id": edge.id,
        "source_node_id": edge.source_node_id,
        "source_handle": edge.source_handle,
        "target_node_id": edge.target_node_id,
        "target_handle": edge.target_handle,
    }


# ==================== 校验 ====================


def validate_graph(nodes: list[dict], edges: list[dict]) -> None:
    """
    校验流程图结构

    Raises:
        FlowGraphError: 节点 id 缺失/重复、类型非法、连线引用不存在的节点
    """
    seen: set[str] = set()
    for node in nodes:
        node_id = node.get("id")
        if not node_id:
            raise FlowGraphError("Nó sem id")
        if node_id in seen:
            raise FlowGraphError(f"Id de nó duplicado: {node_id}")
        seen.add(node_id)
        if node.get("type") not in NODE_TYPES:
            raise FlowGraphError(f"Tipo de nó inválido: {node.get('type')}")

    for edge in edges:
        source, target = edge.get("source_node_id"), edge.get("target_node_id")
        if source not in seen or target not in seen:
            raise FlowGraphError(f"Conexão referencia nó inexistente: {source} -> {target}")


# ==================== 流程 CRUD ====================


async def list_flows(session: AsyncSession, tenant_id: str, *, include_inactive: bool = False) -> list[AIFlow]:
    conditions = [AIFlow.tenant_id == tenant_id]
    if not include_inactive:
        conditions.append(AIFlow.is_active.is_(True))
    result = await session.execute(select(AIFlow).where(*conditions).order_by(AIFlow.updated_at.desc()))
    return list(result.scalars().all())


async def create_flow(session: AsyncSession, *, tenant_id: str, created_by: str | None, data: dict) -> AIFlow:
    if not (data.get("name") or "").strip():
        raise FlowGraphError("Nome é obrigatório", code="NAME_REQUIRED")
    flow = AIFlow(tenant_id=tenant_id, created_by=created_by, **data)
    session.add(flow)
    await session.commit()
    return flow


async def get_flow(session: AsyncSession, tenant_id: str, flow_id: str) -> AIFlow | None:
    flow = await session.get(AIFlow, flow_id)
    if flow is None or flow.tenant_id != tenant_id:
        return None
    return flow


async def get_graph(session: AsyncSession, flow: AIFlow) -> FlowGraph:
    nodes = await session.execute(
        select(AIFlowNode).where(AIFlowNode.flow_id == flow.id).order_by(AIFlowNode.created_at)
    )
    edges = await session.execute(
        select(AIFlowEdge).where(AIFlowEdge.flow_id == flow.id).order_by(AIFlowEdge.created_at)
    )
    return FlowGraph(flow=flow, nodes=list(nodes.scalars().all()), edges=list(edges.scalars().all()))


async def update_flow(session: AsyncSession, flow: AIFlow, changes: dict) -> AIFlow:
    """更新流程属性；首次进入 in_validation 时记录验证窗口"""
    entering_validation = (
        changes.get("review_status") == "in_validation"
        and flow.review_status != "in_validation"
        and flow.validation_started_at is None
    )

    for key, value in changes.items():
        setattr(flow, key, value)

    if entering_validation:
        now = datetime.now(timezone.utc)
        flow.validation_started_at = now
        flow.validation_ends_at = now + timedelta(days=flow.validation_window_days)

    await session.commit()
    return flow


async def deactivate_flow(session: AsyncSession, flow: AIFlow) -> None:
    flow.is_active = False
    await session.commit()


# ==================== 图与版本 ====================


async def _replace_graph(
    session: AsyncSession, flow: AIFlow, nodes: list[dict], edges: list[dict]
) -> tuple[list[AIFlowNode], list[AIFlowEdge]]:
    await session.execute(delete(AIFlowEdge).where(AIFlowEdge.flow_id == flow.id))
    await session.execute(delete(AIFlowNode).where(AIFlowNode.flow_id == flow.id))

    id_map: dict[str, str] = {}
    new_nodes = []
    for data in nodes:
        node = AIFlowNode(
            id=str(uuid4()),
            flow_id=flow.id,
            type=data["type"],
            subtype=data.get("subtype"),
            label=data.get("label"),
            ai_agent_id=data.get("ai_agent_id"),
            position_x=data.get("position_x") or 0,
            position_y=data.get("position_y") or 0,
            config=data.get("config") or {},
        )
        id_map[data["id"]] = node.id
        new_nodes.append(node)

    new_edges = [
        AIFlowEdge(
            id=str(uuid4()),
            flow_id=flow.id,
            source_node_id=id_map[data["source_node_id"]],
            source_handle=data.get("source_handle") or "output",
            target_node_id=id_map[data["target_node_id"]],
            target_handle=data.get("target_handle") or "input",
        )
        for data in edges
    ]

    session.add_all(new_nodes)
    session.add_all(new_edges)
    return new_nodes, new_edges


async def _next_version(session: AsyncSession, flow_id: str) -> int:
    current = await session.scalar(select(func.max(AIFlowVersion.version)).where(AIFlowVersion.flow_id == flow_id))
    return (current or 0) + 1


async def _mark_current(session: AsyncSession, flow_id: str, version: int) -> None:
    await session.execute(
        update(AIFlowVersion).where(AIFlowVersion.flow_id == flow_id).values(is_current=False)
    )
    await session.execute(
        update(AIFlowVersion)
        .where(AIFlowVersion.flow_id == flow_id, AIFlowVersion.version == version)
        .values(is_current=True)
    )


async def save_graph(
    session: AsyncSession,
    flow: AIFlow,
    *,
    nodes: list[dict],
    edges: list[dict],
    label: str | None = None,
    created_by: str | None = None,
) -> tuple[FlowGraph, AIFlowVersion]:
    """保存整张流程图并生成新版本"""
    validate_graph(nodes, edges)

    new_nodes, new_edges = await _replace_graph(session, flow, nodes, edges)

    version_number = await _next_version(session, flow.id)
    await session.execute(
        update(AIFlowVersion).where(AIFlowVersion.flow_id == flow.id).values(is_current=False)
    )
    version = AIFlowVersion(
        flow_id=flow.id,
        version=version_number,
        label=label,
        is_current=True,
        nodes=[node_to_dict(n) for n in new_nodes],
        edges=[edge_to_dict(e) for e in new_edges],
        created_by=created_by,
    )
    session.add(version)
    flow.updated_at = datetime.now(timezone.utc)
    await session.commit()

    logger.info(
        f"流程图已保存: v{version_number}",
        extra={"flow_id": flow.id, "nodes": len(new_nodes), "edges": len(new_edges)},
    )
    return FlowGraph(flow=flow, nodes=new_nodes, edges=new_edges), version


async def list_versions(session: AsyncSession, flow_id: str) -> list[AIFlowVersion]:
    result = await session.execute(
        select(AIFlowVersion).where(AIFlowVersion.flow_id == flow_id).order_by(AIFlowVersion.version.desc())
    )
    return list(result.scalars().all())


async def revert_to_version(session: AsyncSession, flow: AIFlow, version: int) -> FlowGraph | None:
    """回滚到指定版本；版本不存在返回 None"""
    result = await session.execute(
        select(AIFlowVersion).where(AIFlowVersion.flow_id == flow.id, AIFlowVersion.version == version)
    )
    snapshot = result.scalar_one_or_none()
    if snapshot is None:
        return None

    nodes, edges = await _replace_graph(session, flow, snapshot.nodes or [], snapshot.edges or [])
    await _mark_current(session, flow.id, version)
    flow.updated_at = datetime.now(timezone.utc)
    await session.commit()

    logger.info(f"流程图已回滚到 v{version}", extra={"flow_id": flow.id})
    return FlowGraph(flow=flow, nodes=nodes, edges=edges)
