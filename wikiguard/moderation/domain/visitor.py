"""Request metadata helpers: client address, user agent and bot detection."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

USER_AGENT_MAX_LENGTH = 512

_BOT_SIGNATURES: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern), reason)
    for pattern, reason in (
        (r"googlebot", "Googlebot agent"),
        (r"bingbot", "Bingbot agent"),
        (r"duckduckbot", "DuckDuckBot agent"),
        (r"baiduspider", "Baidu agent"),
        (r"yandex(bot|images|video)", "Yandex agent"),
        (r"ahrefsbot", "Ahrefs agent"),
        (r"semrushbot", "Semrush agent"),
        (r"mj12bot", "MJ12 agent"),
        (r"dotbot", "DotBot agent"),
        (r"pinterestbot", "Pinterest agent"),
        (r"linkedinbot", "LinkedIn agent"),
        (r"slackbot", "Slack agent"),
        (r"discordbot", "Discord agent"),
        (r"telegrambot", "Telegram agent"),
        (r"whatsapp", "WhatsApp agent"),
        (r"applebot", "Applebot agent"),
        (r"facebookexternalhit", "Facebook agent"),
        (r"facebot", "Facebook agent"),
        (r"ia_archiver", "Alexa agent"),
        (r"lighthouse", "Lighthouse agent"),
        (r"headlesschrome", "Headless browser"),
        (r"phantomjs", "PhantomJS browser"),
        (r"google page speed insights", "PageSpeed Insights"),
        (r"bot\b", "bot keyword"),
        (r"crawler", "crawler keyword"),
        (r"spider", "spider keyword"),
        (r"scrap(er|ing)", "scrape keyword"),
        (r"scanner", "scanner keyword"),
        (r"validator", "validator keyword"),
        (r"preview", "preview keyword"),
        (r"monitor", "monitor keyword"),
        (r"uptimerobot", "UptimeRobot service"),
        (r"statuscake", "StatusCake service"),
        (r"pingdom", "Pingdom service"),
        (r"datadog", "Datadog service"),
        (r"newrelic", "NewRelic service"),
        (r"python-requests", "python-requests library"),
        (r"httpclient", "Generic HTTP client"),
        (r"libwww-perl", "libwww-perl client"),
        (r"curl/", "curl client"),
        (r"wget/", "wget client"),
        (r"okhttp", "OkHttp client"),
        (r"java/", "Java client"),
        (r"go-http-client", "Go client"),
        (r"node-fetch", "node-fetch client"),
        (r"axios/", "axios client"),
        (r"guzzlehttp", "Guzzle client"),
        (r"postmanruntime", "Postman client"),
    )
)


@dataclass(frozen=True)
class BotDetection:
    is_bot: bool
    reason: str | None
    user_agent: str | None


def client_address(headers: Mapping[str, str] | None, peer: str | None = None) -> str | None:
    """First hop of X-Forwarded-For, falling back to the socket peer."""

    forwarded = ""
    if headers:
        for key, value in headers.items():
            if key.lower() == "x-forwarded-for":
                forwarded = value or ""
                break
    first = forwarded.split(",")[0].strip()
    return first or peer or None


def normalize_user_agent(user_agent: Any) -> str | None:
    if not isinstance(user_agent, str):
        return None
    trimmed = user_agent.strip()
    if not trimmed:
        return None
    return trimmed[:USER_AGENT_MAX_LENGTH]


def detect_bot(user_agent: Any) -> BotDetection:
    normalized = normalize_user_agent(user_agent)
    if normalized is None:
        return BotDetection(is_bot=False, reason=None, user_agent=None)
    lower = normalized.lower()
    if lower == "-":
        return BotDetection(is_bot=True, reason="Missing agent (-)", user_agent=normalized)
    for pattern, reason in _BOT_SIGNATURES:
        if pattern.search(lower):
            return BotDetection(is_bot=True, reason=reason, user_agent=normalized)
    return BotDetection(is_bot=False, reason=None, user_agent=normalized)


def is_likely_bot(user_agent: Any) -> bool:
    return detect_bot(user_agent).is_bot
