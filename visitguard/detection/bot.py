"""
Bot and Automation Detection

Classifies a visit as automated from its user agent and, when the snippet
reports them, its behavioral counters.

Rules are evaluated in order and the first match wins:
1. Crawler token in the user agent       -> crawler (95)
2. Headless/automation token             -> automation (90)
3. No mouse, no clicks, page load < 50ms -> behavioral (60)
4. Otherwise                             -> not a bot (0)

Confidence is reported for display only; it never feeds the fraud score.
"""

import re
from typing import Optional

from ..metrics import metrics
from ..schemas import BotResult

CRAWLER_TOKENS = (
    "bot", "crawler", "crawling", "spider", "scraper", "slurp",
    "facebookexternalhit", "bingpreview", "mediapartners-google",
    "chrome-lighthouse", "gtmetrix", "pagespeed", "pingdom", "uptimerobot",
    "curl/", "wget/", "python-requests", "python-urllib", "go-http-client",
    "java/", "okhttp", "libwww-perl", "httpclient",
)

AUTOMATION_TOKENS = (
    "headless", "phantomjs", "selenium", "webdriver", "puppeteer", "playwright",
)

BEHAVIORAL_MAX_PAGE_LOAD_MS = 50


def _token_pattern(tokens: tuple[str, ...]) -> re.Pattern:
    return re.compile("|".join(re.escape(t) for t in tokens), re.IGNORECASE)


_CRAWLER_PATTERN = _token_pattern(CRAWLER_TOKENS)
_AUTOMATION_PATTERN = _token_pattern(AUTOMATION_TOKENS)


class BotDetector:
    """
    Stateless bot classifier.

    Safe to share across requests; detect() does no I/O.
    """

    def detect(
        self,
        user_agent: Optional[str],
        mouse_movements: Optional[int] = None,
        clicks: Optional[int] = None,
        page_load_time: Optional[float] = None,
    ) -> BotResult:
        ua = user_agent or ""

        # =======================================================================
        # Rule 1: Known crawlers and HTTP libraries
        # =======================================================================
        match = _CRAWLER_PATTERN.search(ua)
        if match:
            return self._verdict("crawler", 95, match.group(0).lower())

        # =======================================================================
        # Rule 2: Headless browsers and automation frameworks
        # =======================================================================
        match = _AUTOMATION_PATTERN.search(ua)
        if match:
            return self._verdict("automation", 90, match.group(0).lower())

        # =======================================================================
        # Rule 3: Zero interaction with an implausibly fast page load
        # Only applies when the snippet reported all three counters
        # =======================================================================
        if (
            mouse_movements is not None
            and clicks is not None
            and page_load_time is not None
            and mouse_movements == 0
            and clicks == 0
            and page_load_time < BEHAVIORAL_MAX_PAGE_LOAD_MS
        ):
            return self._verdict("behavioral", 60, "no_interaction_fast_load")

        return BotResult(is_bot=False, confidence=0)

    def _verdict(self, bot_type: str, confidence: int, matched: str) -> BotResult:
        metrics.bot_detections.labels(bot_type).inc()
        return BotResult(
            is_bot=True,
            bot_type=bot_type,
            confidence=confidence,
            matched=matched,
        )
