"""
日记风险模式测试

- split_risk_tags: 标签按日记的高/中风险标签分组（精确匹配，不区分大小写）
- compute_pattern: 最近条目累计风险标签，达到阈值时建议复查安全计划
- update_entry: 正文修改后风险等级上升才创建新预警
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from radar.services.journal import compute_pattern, split_risk_tags, update_entry
from radar.services.risk import detect_risk


def test_split_risk_tags():
    high, moderate = split_risk_tags(["Agressao_Fisica", "gaslighting", "trabalho", "arma"])
    assert high == ["agressao_fisica", "arma"]
    assert moderate == ["gaslighting"]


def test_split_is_exact_match():
    high, moderate = split_risk_tags(["agressao", "isolamento_social"])
    assert high == []
    assert moderate == []


def test_pattern_requires_three_entries():
    assert compute_pattern([["arma"], ["arma"]]) is None


def test_pattern_counts_entries_rated_critical_by_detector():
    entries = [["agressao_fisica"], ["ameaca_explicita"], ["violencia_verbal"]]
    assert all(detect_risk(tags=tags, text="").level == "CRITICAL" for tags in entries)

    pattern = compute_pattern([["agressao_fisica"], ["ameaca_explicita"], ["estrangulamento", "feliz"]])
    assert pattern.high_risk_count == 3
    assert pattern.should_suggest_safety_plan is True


def test_pattern_moderate_threshold():
    entries = [["gaslighting", "isolamento"], ["controle_financeiro"], ["humilhacao", "monitoramento"]]
    pattern = compute_pattern(entries)
    assert pattern.high_risk_count == 0
    assert pattern.moderate_risk_count == 5
    assert pattern.should_suggest_safety_plan is True


def test_pattern_below_thresholds():
    pattern = compute_pattern([["intimidacao"], [], None])
    assert pattern.high_risk_count == 0
    assert pattern.moderate_risk_count == 1
    assert pattern.should_suggest_safety_plan is False


def _entry(**overrides):
    data = {"id": "e1", "tags": [], "content": "dia tranquilo", "risk_level": "LOW", "extra_metadata": {}}
    data.update(overrides)
    return SimpleNamespace(**data)


@pytest.mark.asyncio
async def test_update_creates_alert_when_risk_increases():
    session = MagicMock()
    session.commit = AsyncMock()
    entry = _entry()
    created = SimpleNamespace(level="HIGH")

    with patch("radar.services.journal.risk_service.create_risk_alert", AsyncMock(return_value=created)) as create:
        _, alert = await update_entry(
            session, user=SimpleNamespace(id="u1"), entry=entry, changes={"content": "ele me bateu"}
        )

    assert alert is created
    assert entry.risk_level == "HIGH"
    assert create.await_args.kwargs["source"] == "diary"
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_update_without_risk_increase_creates_no_alert():
    session = MagicMock()
    session.commit = AsyncMock()
    entry = _entry(content="ele me bateu", risk_level="HIGH")

    with patch("radar.services.journal.risk_service.create_risk_alert", AsyncMock()) as create:
        _, alert = await update_entry(
            session,
            user=SimpleNamespace(id="u1"),
            entry=entry,
            changes={"title": "novo título", "content": "ele me bateu de novo", "metadata": None},
        )

    assert alert is None
    create.assert_not_awaited()
    assert entry.title == "novo título"
    assert entry.extra_metadata == {}
