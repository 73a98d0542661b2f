"""
风险检测服务

在日记标签、日记正文、聊天消息、WhatsApp 消息中识别暴力/虐待信号，
检测到风险（等级不为 LOW）时自动创建 RiskAlert。

检测规则：
- 标签：按关键词子串匹配，CRITICAL > HIGH > MEDIUM 三档词表
- 文本：身体暴力正则命中 ≥3 次为 CRITICAL，否则 HIGH；
  情感虐待正则命中 ≥3 次为 HIGH，否则 MEDIUM（只在未命中身体暴力时检查）
- 组合：取最严重的结果，触发词合并去重

使用示例：
    from radar.services.risk import detect_risk

    result = detect_risk(tags=["medo"], text="ele me ameaçou de novo")
    if result.detected:
        print(result.level, result.recommendation)
"""

import re
from dataclasses import dataclass, field
from typing import Literal

from sqlalchemy.ext.asyncio import AsyncSession

from radar.infra.logging import get_logger
from radar.models import RiskAlert, User

logger = get_logger(__name__)

RiskLevel = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]
RiskCategory = Literal["PHYSICAL_VIOLENCE", "EMOTIONAL_ABUSE", "FINANCIAL_ABUSE", "ISOLATION", "OTHER"]
RiskSource = Literal["clarity_test", "chat", "diary", "manual"]

LEVEL_PRIORITY: dict[str, int] = {"LOW": 1, "MEDIUM": 2, "HIGH": 3, "CRITICAL": 4}

# 文本检测最多保留的触发词数量
MAX_TEXT_TRIGGERS = 5

# ==================== 风险词表 ====================

CRITICAL_TAGS = (
    "violencia", "violência", "agressao", "agressão",
    "bater", "bateu", "apanhar", "apanhei",
    "empurrar", "empurrou", "estrangular", "estrangulou",
    "ameaca", "ameaça", "ameacou", "ameaçou",
    "matar", "morte", "suicidio", "suicídio",
    "arma", "faca", "sangue", "hospital",
    "policia", "polícia", "delegacia",
)

HIGH_RISK_TAGS = (
    "medo", "panico", "pânico", "terror", "perigo",
    "fuga", "fugir", "esconder", "socorro", "ajuda",
    "desespero", "desesperada", "presa", "refem", "refém",
    "trancada", "isolada", "sozinha", "ninguem", "ninguém",
)

MEDIUM_RISK_TAGS = (
    "abuso", "manipulacao", "manipulação", "controle",
    "ciumes", "ciúmes", "possessivo", "possessiva",
    "humilhacao", "humilhação", "xingamento", "insulto",
    "grito", "gritar", "ameaca", "ameaça",
    "chantagem", "culpa", "vergonha",
)

PHYSICAL_RISK_REGEX = re.compile(
    r"\b(bate|bateu|batendo|apanha|apanhei|apanhou|agred|agress|violen|ameaç|ameac|mata|matar|morr"
    r"|suicid|arma|faca|sangue|hospital|policia|polícia|delegacia|socorro|ajuda|perigo|medo|panico"
    r"|pânico|terror)\w*",
    re.IGNORECASE,
)

EMOTIONAL_RISK_REGEX = re.compile(
    r"\b(manipul|control|ciúme|ciume|possess|humilh|xing|insult|grit|chantag|culp|vergonha|isol"
    r"|sozinha|ninguém|ninguem|presa|refém|refem|trancada)\w*",
    re.IGNORECASE,
)


@dataclass
class RiskDetectionResult:
    """风险检测结果"""
    detected: bool = False
    level: str = "LOW"
    category: str = "OTHER"
    triggers: list[str] = field(default_factory=list)
    recommendation: str = ""

    def to_dict(self) -> dict:
        return {
            "detected": self.detected,
            "level": self.level,
            "category": self.category,
            "triggers": list(self.triggers),
            "recommendation": self.recommendation,
        }


def _unique(items: list[str]) -> list[str]:
    """去重并保持顺序"""
    return list(dict.fromkeys(items))


def get_recommendation(level: str, category: str) -> str:
    if level == "CRITICAL":
        return (
            "Situação de risco grave detectada. Se você está em perigo imediato, ligue 190 (Polícia) "
            "ou 180 (Central da Mulher). Considere ir a um local seguro."
        )
    if level == "HIGH":
        if category == "PHYSICAL_VIOLENCE":
            return (
                "Sinais de risco físico detectados. Recomendamos revisar seu Plano de Segurança e "
                "identificar um local seguro caso precise sair rapidamente."
            )
        return (
            "Sinais de risco detectados. Considere conversar com alguém de confiança ou um "
            "profissional sobre sua situação."
        )
    if level == "MEDIUM":
        return (
            "Alguns padrões preocupantes foram identificados. Lembre-se de que você não está sozinha "
            "e existem recursos disponíveis para ajudar."
        )
    return ""


def detect_risk_from_tags(tags: list[str]) -> RiskDetectionResult:
    """按标签检测风险（子串匹配）"""
    normalized = [t.lower().strip() for t in tags]
    triggers: list[str] = []
    level = "LOW"
    category = "OTHER"

    for tag in normalized:
        if any(ct in tag for ct in CRITICAL_TAGS):
            triggers.append(tag)
            level = "CRITICAL"
            category = "PHYSICAL_VIOLENCE"

    if level != "CRITICAL":
        for tag in normalized:
            if any(ht in tag for ht in HIGH_RISK_TAGS):
                triggers.append(tag)
                level = "HIGH"
                if category == "OTHER":
                    category = "PHYSICAL_VIOLENCE"

    if level == "LOW":
        for tag in normalized:
            if any(mt in tag for mt in MEDIUM_RISK_TAGS):
                triggers.append(tag)
                level = "MEDIUM"
                category = "EMOTIONAL_ABUSE"

    return RiskDetectionResult(
        detected=bool(triggers),
        level=level,
        category=category,
        triggers=triggers,
        recommendation=get_recommendation(level, category),
    )


def detect_risk_from_text(text: str) -> RiskDetectionResult:
    """按自由文本检测风险（正则）"""
    triggers: list[str] = []
    level = "LOW"
    category = "OTHER"

    physical = [m.group(0) for m in PHYSICAL_RISK_REGEX.finditer(text or "")]
    if physical:
        triggers.extend(physical[:MAX_TEXT_TRIGGERS])
        level = "CRITICAL" if len(physical) >= 3 else "HIGH"
        category = "PHYSICAL_VIOLENCE"

    if level == "LOW":
        emotional = [m.group(0) for m in EMOTIONAL_RISK_REGEX.finditer(text or "")]
        if emotional:
            triggers.extend(emotional[:MAX_TEXT_TRIGGERS])
            level = "HIGH" if len(emotional) >= 3 else "MEDIUM"
            category = "EMOTIONAL_ABUSE"

    return RiskDetectionResult(
        detected=bool(triggers),
        level=level,
        category=category,
        triggers=_unique(triggers),
        recommendation=get_recommendation(level, category),
    )


def detect_risk(tags: list[str] | None = None, text: str | None = None) -> RiskDetectionResult:
    """
    组合检测标签和文本

    取最严重的结果；等级相同时保留先出现的（标签优先），触发词合并去重。
    """
    results: list[RiskDetectionResult] = []
    if tags:
        results.append(detect_risk_from_tags(tags))
    if text:
        results.append(detect_risk_from_text(text))

    if not results:
        return RiskDetectionResult()

    combined = results[0]
    for current in results[1:]:
        if not combined.detected and current.detected:
            combined = current
        elif current.detected and LEVEL_PRIORITY[current.level] > LEVEL_PRIORITY[combined.level]:
            combined = RiskDetectionResult(
                detected=True,
                level=current.level,
                category=current.category,
                triggers=combined.triggers + current.triggers,
                recommendation=current.recommendation,
            )
        else:
            combined = RiskDetectionResult(
                detected=combined.detected,
                level=combined.level,
                category=combined.category,
                triggers=combined.triggers + current.triggers,
                recommendation=combined.recommendation,
            )

    combined.triggers = _unique(combined.triggers)
    return combined


def is_more_severe(level: str, than: str) -> bool:
    return LEVEL_PRIORITY.get(level, 0) > LEVEL_PRIORITY.get(than, 0)


# ==================== 预警持久化 ====================


async def create_risk_alert(
    session: AsyncSession,
    *,
    user: User,
    source: str,
    result: RiskDetectionResult,
    source_id: str | None = None,
) -> RiskAlert:
    """
    创建风险预警

    CRITICAL 等级会同时给用户发送 risk_alert 通知（站内 + 已开通的外部渠道）。
    不 commit，由调用方控制事务。
    """
    alert = RiskAlert(
        tenant_id=user.tenant_id,
        user_id=user.id,
        source=source,
        source_id=source_id,
        level=result.level,
        category=result.category,
        triggers=list(result.triggers),
        recommendation=result.recommendation,
    )
    session.add(alert)
    await session.flush()

    logger.info(
        f"风险预警已创建: {result.level} ({source})",
        extra={"alert_id": alert.id, "level": result.level, "category": result.category},
    )

    if result.level == "CRITICAL":
        from radar.services.notifications import notify

        await notify(
            session,
            user=user,
            title="Alerta de segurança",
            body=result.recommendation,
            category="risk_alert",
            whatsapp_template="risk_alert",
        )

    return alert


async def process_journal_entry(
    session: AsyncSession,
    *,
    user: User,
    entry_id: str,
    content: str,
    tags: list[str],
) -> tuple[RiskDetectionResult, RiskAlert | None]:
    """日记保存后的风险处理：检测标签和正文，必要时创建预警"""
    result = detect_risk(tags=tags, text=content)
    alert = None
    if result.detected and result.level != "LOW":
        alert = await create_risk_alert(
            session, user=user, source="diary", result=result, source_id=entry_id
        )
    return result, alert


async def process_chat_message(
    session: AsyncSession,
    *,
    user: User,
    message_id: str | None,
    content: str,
) -> tuple[RiskDetectionResult, RiskAlert | None]:
    """聊天消息的风险处理：只检测文本"""
    result = detect_risk_from_text(content)
    alert = None
    if result.detected and result.level != "LOW":
        alert = await create_risk_alert(
            session, user=user, source="chat", result=result, source_id=message_id
        )
    return result, alert
