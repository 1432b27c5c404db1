"""
Fraud Scorer Tests

Tests for weights, the 100 cap, factor order and the annotation rules.
"""

import pytest

from visitguard.schemas import (
    BotResult,
    EventType,
    LocationResult,
    SuspiciousActivity,
    ThreatResult,
    Visit,
    VisitType,
)
from visitguard.scoring import HIGH_FRAUD_SCORE, FraudScorer

from .conftest import PUBLIC_IP

BOT = BotResult(is_bot=True, bot_type="crawler", confidence=95)
HUMAN = BotResult()


def _activity(kind: str = "ip_changed_mid_session") -> SuspiciousActivity:
    return SuspiciousActivity(type=kind, description=kind)


def make_visit(scorer: FraudScorer, threat: ThreatResult, bot: BotResult, activities=()) -> Visit:
    return Visit(
        tracking_code="TRK-TEST-001",
        website_id="site_1",
        owner_id="owner_1",
        website="https://example.com",
        domain="example.com",
        event_type=EventType.PAGE_VISIT,
        visit_type=VisitType.DIRECT,
        ip=PUBLIC_IP,
        ip_version="IPv4",
        session_id="sess-1",
        is_new_session=True,
        identity_source="new",
        location=LocationResult.unknown(),
        threat=threat,
        bot=bot,
        fraud=scorer.score(threat, bot, list(activities)),
        suspicious_activity=list(activities),
    )


@pytest.fixture
def scorer() -> FraudScorer:
    return FraudScorer(high_score_threshold=50)


class TestScore:
    """Tests for the additive score."""

    def test_clean_visit_scores_zero(self, scorer):
        assessment = scorer.score(ThreatResult(), HUMAN)

        assert assessment.score == 0
        assert assessment.factors == []

    @pytest.mark.parametrize("threat,bot,expected", [
        (ThreatResult(is_tor=True), HUMAN, 40),
        (ThreatResult(is_vpn=True), HUMAN, 30),
        (ThreatResult(is_proxy=True), HUMAN, 25),
        (ThreatResult(), BOT, 35),
        (ThreatResult(is_hosting=True), HUMAN, 15),
        (ThreatResult(is_vpn=True, is_proxy=True), HUMAN, 55),
    ])
    def test_weights(self, scorer, threat, bot, expected):
        assert scorer.score(threat, bot).score == expected

    def test_tor_bot_and_one_activity(self, scorer):
        assessment = scorer.score(ThreatResult(is_tor=True), BOT, [_activity()])

        assert assessment.score == 85
        assert [f.name for f in assessment.factors] == ["isTor", "isBot", "suspiciousActivity"]

    def test_capped_at_100(self, scorer):
        threat = ThreatResult(is_tor=True, is_vpn=True, is_proxy=True, is_hosting=True)

        assessment = scorer.score(threat, BOT, [_activity(), _activity("high_visit_frequency")])

        assert assessment.score == 100
        assert assessment.raw_total == 165

    def test_factor_order(self, scorer):
        threat = ThreatResult(is_tor=True, is_vpn=True, is_proxy=True, is_hosting=True)

        names = [f.name for f in scorer.score(threat, BOT, [_activity()]).factors]

        assert names == ["isTor", "isVpn", "isProxy", "isBot", "isHosting", "suspiciousActivity"]

    def test_activity_description_is_used(self, scorer):
        activity = SuspiciousActivity(type="x", description="IP changed within a session")

        factor = scorer.score(ThreatResult(), HUMAN, [activity]).factors[0]

        assert factor.weight == 10
        assert factor.description == "IP changed within a session"


class TestAnnotate:
    """Tests for appending suspicious activity."""

    def test_annotate_rescore_raises_score(self, scorer):
        visit = make_visit(scorer, ThreatResult(is_vpn=True), HUMAN)

        annotated = scorer.annotate(visit, _activity())

        assert annotated.fraud.score == 40
        assert len(annotated.suspicious_activity) == 1
        assert visit.fraud.score == 30
        assert visit.suspicious_activity == []

    def test_annotate_without_rescore(self, scorer):
        visit = make_visit(scorer, ThreatResult(is_vpn=True), HUMAN)

        annotated = scorer.annotate(visit, _activity(), rescore=False)

        assert annotated.fraud.score == 30

    def test_rescore_matches_scoring_from_scratch(self, scorer):
        visit = make_visit(scorer, ThreatResult(is_proxy=True), BOT)

        annotated = scorer.annotate(visit, _activity())

        assert annotated.fraud == scorer.score_visit(annotated)


class TestFlagHighScore:
    """Tests for the high_fraud_score annotation."""

    def test_below_threshold_is_unchanged(self, scorer):
        visit = make_visit(scorer, ThreatResult(is_vpn=True), HUMAN)

        assert scorer.flag_high_score(visit) is visit

    def test_threshold_is_exclusive(self, scorer):
        visit = make_visit(scorer, ThreatResult(), HUMAN, [_activity()] * 5)

        assert visit.fraud.score == 50
        assert scorer.flag_high_score(visit) is visit

    def test_high_score_is_flagged_without_rescoring(self, scorer):
        visit = make_visit(scorer, ThreatResult(is_tor=True), BOT)

        flagged = scorer.flag_high_score(visit)

        assert flagged.fraud.score == 75
        assert [a.type for a in flagged.suspicious_activity] == [HIGH_FRAUD_SCORE]

    def test_flagging_twice_adds_one_annotation(self, scorer):
        visit = make_visit(scorer, ThreatResult(is_tor=True), BOT)

        flagged = scorer.flag_high_score(scorer.flag_high_score(visit))

        assert len(flagged.suspicious_activity) == 1
        assert flagged.fraud.score == 75

    def test_alert_level_severity(self, scorer):
        visit = make_visit(scorer, ThreatResult(is_tor=True, is_vpn=True), BOT)

        flagged = scorer.flag_high_score(visit)

        assert flagged.suspicious_activity[-1].severity == "high"

    def test_severity_follows_given_alert_threshold(self, scorer):
        visit = make_visit(scorer, ThreatResult(is_tor=True, is_vpn=True), BOT)

        flagged = scorer.flag_high_score(visit, alert_threshold=100)

        assert flagged.fraud.score == 100
        assert flagged.suspicious_activity[-1].severity == "medium"
