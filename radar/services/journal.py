"""
日记服务

创建日记时：
1. 检查并记录 diario 功能额度
2. 保存条目
3. 对标签 + 正文做风险检测，等级高于 LOW 时创建风险预警
4. 统计最近 30 天的风险标签，判断是否建议用户复查安全计划
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.infra.logging import get_logger
from radar.models import JournalEntry, RiskAlert, User
from radar.services import plans as plan_service
from radar.services import risk as risk_service

logger = get_logger(__name__)

JOURNAL_FEATURE = "diario"

PATTERN_WINDOW_DAYS = 30
PATTERN_MIN_ENTRIES = 3
PATTERN_HIGH_THRESHOLD = 3
PATTERN_MODERATE_THRESHOLD = 5

# 日记界面提供的标签值；风险模式按这两组精确计数
JOURNAL_HIGH_RISK_TAGS = frozenset({
    "ameaca_velada",
    "ameaca_explicita",
    "ameacas",
    "agressao_verbal",
    "agressao_fisica",
    "explosao",
    "violencia",
    "medo_intenso",
    "perigo_iminente",
    "estrangulamento",
    "arma",
})
JOURNAL_MODERATE_RISK_TAGS = frozenset({
    "gaslighting",
    "isolamento",
    "controle_financeiro",
    "humilhacao",
    "intimidacao",
    "ciumes_excessivo",
    "monitoramento",
})


@dataclass
class RiskPattern:
    high_risk_count: int
    moderate_risk_count: int
    should_suggest_safety_plan: bool


@dataclass
class JournalAnalysis:
    risk: risk_service.RiskDetectionResult
    high_risk_tags_found: list[str] = field(default_factory=list)
    moderate_risk_tags_found: list[str] = field(default_factory=list)
    pattern: RiskPattern | None = None


@dataclass
class JournalCreateResult:
    entry: JournalEntry
    alert: RiskAlert | None
    analysis: JournalAnalysis


def split_risk_tags(tags: list[str]) -> tuple[list[str], list[str]]:
    """返回 (高风险标签, 中风险标签)"""
    normalized = [t.lower() for t in tags]
    return (
        [t for t in normalized if t in JOURNAL_HIGH_RISK_TAGS],
        [t for t in normalized if t in JOURNAL_MODERATE_RISK_TAGS],
    )


def compute_pattern(tag_lists: list[list[str]]) -> RiskPattern | None:
    """最近条目的风险模式；条目少于 3 条时不做判断"""
    if len(tag_lists) < PATTERN_MIN_ENTRIES:
        return None

    high = moderate = 0
    for tags in tag_lists:
        high_found, moderate_found = split_risk_tags(tags or [])
        high += len(high_found)
        moderate += len(moderate_found)

    return RiskPattern(
        high_risk_count=high,
        moderate_risk_count=moderate,
        should_suggest_safety_plan=high >= PATTERN_HIGH_THRESHOLD or moderate >= PATTERN_MODERATE_THRESHOLD,
    )


async def _recent_tag_lists(session: AsyncSession, user_id: str) -> list[list[str]]:
    since = datetime.now(timezone.utc) - timedelta(days=PATTERN_WINDOW_DAYS)
    result = await session.execute(
        select(JournalEntry.tags).where(
            JournalEntry.user_id == user_id,
            JournalEntry.deleted_at.is_(None),
            JournalEntry.created_at >= since,
        )
    )
    return [tags or [] for tags in result.scalars().all()]


async def create_entry(
    session: AsyncSession,
    *,
    user: User,
    content: str,
    title: str | None = None,
    tags: list[str] | None = None,
    emotions: list[str] | None = None,
    impact_score: int | None = None,
    entry_type: str = "episode",
    metadata: dict | None = None,
) -> JournalCreateResult:
    """
    创建日记条目并提交

    Raises:
        ValueError: 内容为空
        FeatureDisabledError / PlanLimitError: 无权限或额度用完
    """
    if not content or not content.strip():
        raise ValueError("Conteúdo é obrigatório")

    tags = tags or []
    await plan_service.check_and_record(session, user, JOURNAL_FEATURE)

    entry = JournalEntry(
        tenant_id=user.tenant_id,
        user_id=user.id,
        title=title,
        content=content,
        tags=tags,
        emotions=emotions or [],
        impact_score=impact_score,
        entry_type=entry_type,
        extra_metadata=metadata or {},
    )
    session.add(entry)
    await session.flush()

    result, alert = await risk_service.process_journal_entry(
        session, user=user, entry_id=entry.id, content=content, tags=tags
    )
    entry.risk_level = result.level

    high_found, moderate_found = split_risk_tags(tags)
    pattern = compute_pattern(await _recent_tag_lists(session, user.id))

    await session.commit()

    if alert is not None:
        logger.info(
            f"日记触发风险预警: {alert.level}",
            extra={"entry_id": entry.id, "alert_id": alert.id},
        )

    return JournalCreateResult(
        entry=entry,
        alert=alert,
        analysis=JournalAnalysis(
            risk=result,
            high_risk_tags_found=high_found,
            moderate_risk_tags_found=moderate_found,
            pattern=pattern,
        ),
    )


async def list_entries(
    session: AsyncSession,
    user_id: str,
    *,
    limit: int = 20,
    offset: int = 0,
    entry_type: str | None = None,
    tag: str | None = None,
) -> tuple[list[JournalEntry], int]:
    conditions = [JournalEntry.user_id == user_id, JournalEntry.deleted_at.is_(None)]
    if entry_type:
        conditions.append(JournalEntry.entry_type == entry_type)

    query = select(JournalEntry).where(*conditions).order_by(JournalEntry.created_at.desc())

    if tag:
        # 标签存在 JSON 列中，在 Python 侧过滤以兼容不同数据库
        result = await session.execute(query)
        entries = [e for e in result.scalars().all() if tag in (e.tags or [])]
        return entries[offset:offset + limit], len(entries)

    total = await session.scalar(select(func.count(JournalEntry.id)).where(*conditions)) or 0
    result = await session.execute(query.offset(offset).limit(limit))
    return list(result.scalars().all()), total


async def get_entry(session: AsyncSession, user_id: str, entry_id: str) -> JournalEntry | None:
    entry = await session.get(JournalEntry, entry_id)
    if entry is None or entry.user_id != user_id or entry.deleted_at is not None:
        return None
    return entry


async def update_entry(
    session: AsyncSession,
    *,
    user: User,
    entry: JournalEntry,
    changes: dict,
) -> tuple[JournalEntry, RiskAlert | None]:
    """
    更新日记条目并提交

    正文或标签变化时重新做风险检测；只有等级上升时才创建新的预警。
    """
    for key, value in changes.items():
        if key == "metadata":
            entry.extra_metadata = value or {}
        else:
            setattr(entry, key, value)

    alert = None
    if "content" in changes or "tags" in changes:
        result = risk_service.detect_risk(tags=entry.tags, text=entry.content)
        if risk_service.is_more_severe(result.level, entry.risk_level) and result.level != "LOW":
            alert = await risk_service.create_risk_alert(
                session, user=user, source="diary", result=result, source_id=entry.id
            )
        entry.risk_level = result.level

    await session.commit()
    return entry, alert


async def delete_entry(session: AsyncSession, entry: JournalEntry) -> None:
    entry.deleted_at = datetime.now(timezone.utc)
    await session.commit()
