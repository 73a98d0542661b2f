"""
AI 流程图服务测试

- validate_graph: 节点 id、节点类型、连线引用
- save_graph: 客户端节点 id 重映射为新 id，版本号递增，快照与新图一致
- revert_to_version: 版本不存在返回 None
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from radar.exceptions import FlowGraphError
from radar.services.ai_flows import revert_to_version, save_graph, validate_graph

NODES = [
    {"id": "n1", "type": "TRIGGER", "subtype": "diary_entry", "position_x": 10, "position_y": 20},
    {"id": "n2", "type": "IA", "label": "Classificar risco", "config": {"temperature": 0.2}},
    {"id": "n3", "type": "ACTION", "subtype": "notify"},
]
EDGES = [
    {"source_node_id": "n1", "target_node_id": "n2"},
    {"source_node_id": "n2", "target_node_id": "n3", "source_handle": "high"},
]


class TestValidateGraph:
    def test_valid_graph(self):
        validate_graph(NODES, EDGES)

    def test_empty_graph_is_valid(self):
        validate_graph([], [])

    def test_missing_node_id(self):
        with pytest.raises(FlowGraphError):
            validate_graph([{"type": "IA"}], [])

    def test_duplicate_node_id(self):
        with pytest.raises(FlowGraphError) as exc_info:
            validate_graph([{"id": "a", "type": "IA"}, {"id": "a", "type": "ACTION"}], [])
        assert exc_info.value.code == "INVALID_GRAPH"

    def test_invalid_node_type(self):
        with pytest.raises(FlowGraphError):
            validate_graph([{"id": "a", "type": "LOOP"}], [])

    def test_edge_to_unknown_node(self):
        with pytest.raises(FlowGraphError):
            validate_graph(NODES, [{"source_node_id": "n1", "target_node_id": "ghost"}])


def _session(max_version: int | None):
    session = MagicMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock(return_value=max_version)
    session.commit = AsyncMock()
    return session


@pytest.mark.asyncio
async def test_save_graph_remaps_ids_and_creates_version():
    session = _session(max_version=2)
    flow = SimpleNamespace(id="flow-1", updated_at=None)

    graph, version = await save_graph(session, flow, nodes=NODES, edges=EDGES, label="v3", created_by="admin-1")

    new_ids = [node.id for node in graph.nodes]
    assert len(set(new_ids)) == 3
    assert not set(new_ids) & {"n1", "n2", "n3"}

    first, second = graph.edges
    assert (first.source_node_id, first.target_node_id) == (new_ids[0], new_ids[1])
    assert second.source_handle == "high"
    assert first.source_handle == "output"
    assert first.target_handle == "input"

    assert graph.nodes[0].position_x == 10
    assert graph.nodes[1].position_x == 0
    assert graph.nodes[1].config == {"temperature": 0.2}

    assert version.version == 3
    assert version.is_current is True
    assert [n["id"] for n in version.nodes] == new_ids
    assert flow.updated_at is not None
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_first_save_is_version_one():
    session = _session(max_version=None)
    _, version = await save_graph(session, SimpleNamespace(id="flow-1", updated_at=None), nodes=[], edges=[])
    assert version.version == 1


@pytest.mark.asyncio
async def test_invalid_graph_is_not_saved():
    session = _session(max_version=1)
    with pytest.raises(FlowGraphError):
        await save_graph(session, SimpleNamespace(id="flow-1"), nodes=[{"id": "x", "type": "?"}], edges=[])
    session.execute.assert_not_awaited()
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_revert_unknown_version():
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    session = MagicMock()
    session.execute = AsyncMock(return_value=result)
    session.commit = AsyncMock()

    assert await revert_to_version(session, SimpleNamespace(id="flow-1"), 9) is None
    session.commit.assert_not_awaited()
