"""
风险检测单元测试

测试 radar/services/risk.py 的纯函数：
- 标签词表匹配（CRITICAL / HIGH / MEDIUM）
- 文本正则匹配与命中次数升级
- 标签 + 文本组合取最严重结果
"""

from radar.services.risk import (
    detect_risk,
    detect_risk_from_tags,
    detect_risk_from_text,
    get_recommendation,
    is_more_severe,
)


class TestDetectFromTags:
    def test_critical_tag(self):
        result = detect_risk_from_tags(["bateu"])
        assert result.detected is True
        assert result.level == "CRITICAL"
        assert result.category == "PHYSICAL_VIOLENCE"
        assert result.triggers == ["bateu"]
        assert "190" in result.recommendation

    def test_high_tag_is_normalized(self):
        result = detect_risk_from_tags(["  Medo "])
        assert result.level == "HIGH"
        assert result.category == "PHYSICAL_VIOLENCE"
        assert result.triggers == ["medo"]

    def test_medium_tag(self):
        result = detect_risk_from_tags(["ciúmes"])
        assert result.level == "MEDIUM"
        assert result.category == "EMOTIONAL_ABUSE"

    def test_critical_wins_over_high(self):
        result = detect_risk_from_tags(["medo", "ameaça"])
        assert result.level == "CRITICAL"
        # 命中 CRITICAL 后不再收集低等级标签
        assert result.triggers == ["ameaça"]

    def test_no_risk(self):
        result = detect_risk_from_tags(["feliz", "trabalho"])
        assert result.detected is False
        assert result.level == "LOW"
        assert result.recommendation == ""


class TestDetectFromText:
    def test_single_physical_match_is_high(self):
        result = detect_risk_from_text("Ele me bateu ontem")
        assert result.level == "HIGH"
        assert result.category == "PHYSICAL_VIOLENCE"
        assert result.triggers == ["bateu"]

    def test_three_physical_matches_is_critical(self):
        result = detect_risk_from_text("ele bateu, tenho medo e pedi socorro")
        assert result.level == "CRITICAL"
        assert result.triggers == ["bateu", "medo", "socorro"]

    def test_emotional_only(self):
        result = detect_risk_from_text("ele grita e me humilha")
        assert result.level == "MEDIUM"
        assert result.category == "EMOTIONAL_ABUSE"

    def test_triggers_are_capped(self):
        text = " ".join(["medo"] * 10)
        result = detect_risk_from_text(text)
        assert result.level == "CRITICAL"
        assert result.triggers == ["medo"]

    def test_neutral_text(self):
        result = detect_risk_from_text("hoje foi um dia tranquilo")
        assert result.detected is False


class TestCombined:
    def test_most_severe_result_wins(self):
        result = detect_risk(tags=["ciúmes"], text="ele me bateu")
        assert result.level == "HIGH"
        assert result.category == "PHYSICAL_VIOLENCE"
        assert result.triggers == ["ciúmes", "bateu"]

    def test_tags_kept_when_text_is_less_severe(self):
        result = detect_risk(tags=["bateu"], text="ele grita comigo")
        assert result.level == "CRITICAL"
        assert result.triggers == ["bateu", "grita"]

    def test_empty_input(self):
        result = detect_risk()
        assert result.detected is False
        assert result.to_dict()["level"] == "LOW"


def test_recommendation_by_level():
    assert "Plano de Segurança" in get_recommendation("HIGH", "PHYSICAL_VIOLENCE")
    assert "alguém de confiança" in get_recommendation("HIGH", "EMOTIONAL_ABUSE")
    assert "não está sozinha" in get_recommendation("MEDIUM", "EMOTIONAL_ABUSE")


def test_is_more_severe():
    assert is_more_severe("HIGH", "MEDIUM")
    assert not is_more_severe("LOW", "LOW")
    assert is_more_severe("CRITICAL", "unknown")
