"""
Fraud Scoring

Additive, explainable fraud score for a visit. Every contributing signal
becomes a RiskFactor so dashboards can show why a visit scored the way it
did. The sum is capped at 100.

Weights:
- Tor exit node        +40
- VPN                  +30
- Proxy                +25
- Bot                  +35
- Hosting/datacenter   +15
- Suspicious activity  +10 each
"""

from typing import Optional, Sequence

from ..config import settings
from ..metrics import metrics
from ..schemas import (
    BotResult,
    FraudAssessment,
    RiskFactor,
    SuspiciousActivity,
    ThreatResult,
    Visit,
)

TOR_WEIGHT = 40
VPN_WEIGHT = 30
PROXY_WEIGHT = 25
BOT_WEIGHT = 35
HOSTING_WEIGHT = 15
ACTIVITY_WEIGHT = 10

MAX_SCORE = 100

HIGH_FRAUD_SCORE = "high_fraud_score"


class FraudScorer:
    """
    Computes and maintains fraud assessments.

    Scores are a pure function of a visit's threat flags, bot verdict and
    suspicious-activity list, so rescoring after an annotation always
    agrees with scoring from scratch.
    """

    def __init__(self, high_score_threshold: Optional[int] = None):
        self.high_score_threshold = (
            high_score_threshold
            if high_score_threshold is not None
            else settings.high_fraud_score_threshold
        )

    def score(
        self,
        threat: ThreatResult,
        bot: BotResult,
        activities: Sequence[SuspiciousActivity] = (),
    ) -> FraudAssessment:
        factors: list[RiskFactor] = []

        if threat.is_tor:
            factors.append(RiskFactor(
                name="isTor",
                weight=TOR_WEIGHT,
                description="IP address is a Tor exit node",
            ))
        if threat.is_vpn:
            factors.append(RiskFactor(
                name="isVpn",
                weight=VPN_WEIGHT,
                description="IP address belongs to a VPN service",
            ))
        if threat.is_proxy:
            factors.append(RiskFactor(
                name="isProxy",
                weight=PROXY_WEIGHT,
                description="IP address detected as proxy",
            ))
        if bot.is_bot:
            factors.append(RiskFactor(
                name="isBot",
                weight=BOT_WEIGHT,
                description=f"Automated traffic ({bot.bot_type or 'unknown'})",
            ))
        if threat.is_hosting:
            factors.append(RiskFactor(
                name="isHosting",
                weight=HOSTING_WEIGHT,
                description="IP address from hosting/datacenter",
            ))
        for activity in activities:
            factors.append(RiskFactor(
                name="suspiciousActivity",
                weight=ACTIVITY_WEIGHT,
                description=activity.description or activity.type,
            ))

        total = sum(f.weight for f in factors)
        return FraudAssessment(score=min(MAX_SCORE, total), factors=factors)

    def score_visit(self, visit: Visit) -> FraudAssessment:
        return self.score(visit.threat, visit.bot, visit.suspicious_activity)

    def annotate(
        self,
        visit: Visit,
        activity: SuspiciousActivity,
        rescore: bool = True,
    ) -> Visit:
        """
        Append a suspicious activity, returning a new Visit.

        With rescore the fraud assessment is recomputed from the visit's
        own signals, so the score can only go up.
        """
        activities = [*visit.suspicious_activity, activity]
        update: dict = {"suspicious_activity": activities}
        if rescore:
            update["fraud"] = self.score(visit.threat, visit.bot, activities)
        return visit.model_copy(update=update)

    def flag_high_score(self, visit: Visit, alert_threshold: Optional[int] = None) -> Visit:
        """
        Annotate a visit scoring above the threshold.

        The annotation is not fed back into the score, so flagging never
        changes the score that triggered it. Its severity is high when the
        score also exceeds the alert threshold.
        """
        if alert_threshold is None:
            alert_threshold = settings.security_alert_threshold
        metrics.fraud_score_distribution.observe(visit.fraud.score)
        if visit.fraud.score <= self.high_score_threshold:
            return visit
        if any(a.type == HIGH_FRAUD_SCORE for a in visit.suspicious_activity):
            return visit
        return self.annotate(
            visit,
            SuspiciousActivity(
                type=HIGH_FRAUD_SCORE,
                description=f"Fraud score {visit.fraud.score} exceeds {self.high_score_threshold}",
                severity="high" if visit.fraud.score > alert_threshold else "medium",
            ),
            rescore=False,
        )
