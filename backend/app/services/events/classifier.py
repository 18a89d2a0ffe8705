"""
Headline Classification

Case-insensitive keyword matching with a fixed precedence order:
catastrophic > Fed/policy > geopolitical/tariff > macro prints >
political commentary > earnings > merger/retail sales > other.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern

from app.schemas.events import EventType

MEGA_CAP_TICKERS = ("aapl", "msft", "googl", "amzn", "meta", "nvda", "tsla")


def _words(*words: str) -> Pattern:
    """Compile a word-bounded alternation."""
    return re.compile(r"\b(?:" + "|".join(words) + r")\b")


@dataclass(frozen=True)
class _Rule:
    """
    One classification rule.

    A rule fires when its event type appears verbatim in the source tags, or
    when its trigger (keyword or stand-in tag) matches and every `all_of`
    pattern also matches the headline.
    """

    event_type: EventType
    any_of: Optional[Pattern] = None
    all_of: tuple = ()
    tags: frozenset = frozenset()

    def matches(self, text: str, tags: set) -> bool:
        if self.event_type.value.lower() in tags:
            return True

        triggered = bool(self.tags & tags) or (
            self.any_of is not None and self.any_of.search(text) is not None
        )
        return triggered and all(p.search(text) for p in self.all_of)


_MEGA_CAP = _words(*MEGA_CAP_TICKERS)
_EARNINGS = _words("earnings")

# Order is precedence. First match wins.
_RULES = (
    # Catastrophic
    _Rule(EventType.BLACK_SWAN, _words("black swan")),
    _Rule(
        EventType.DATACENTER_HALT,
        _words("halt", "halts", "halted"),
        (_words("datacenter", "data center", "trading"),),
    ),
    _Rule(
        EventType.GOVERNMENT_SHUTDOWN,
        _words("shutdown"),
        (_words("government", "gov't", "federal"),),
    ),
    _Rule(EventType.MAJOR_CRISIS, _words("crisis", "collapse", "emergency")),
    # Fed / policy
    _Rule(EventType.POWELL_SPEAK, _words("powell")),
    _Rule(EventType.FOMC),
    _Rule(
        EventType.FED_DECISION,
        _words("fomc", "fed", "federal reserve", "rate cut", "rate hike"),
    ),
    # Geopolitical / trade
    _Rule(EventType.TARIFFS, _words("tariff", "tariffs")),
    _Rule(EventType.CHINA_TRADE, _words("china"), (_words("trade"),)),
    _Rule(EventType.CONFLICT, _words("war", "attack", "attacks", "missile", "missiles", "invasion")),
    _Rule(EventType.GEOPOLITICAL, _words("sanctions", "geopolitical")),
    # Scheduled macro prints
    _Rule(EventType.CPI_PRINT, _words("cpi", "consumer price index")),
    _Rule(EventType.PCE_PRINT, _words("pce")),
    _Rule(EventType.NFP_PRINT, _words("nfp", "payrolls", "nonfarm")),
    _Rule(EventType.JOLTS, _words("jolts", "job openings")),
    _Rule(EventType.GDP_PRINT, _words("gdp")),
    _Rule(EventType.ISM_PRINT, _words("ism")),
    # Named political commentary
    _Rule(EventType.POLITICAL_COMMENTARY, _words("trump", "lutnick", "bessent")),
    # Earnings
    _Rule(EventType.EARNINGS_HIGH_IMPACT, _EARNINGS, (_MEGA_CAP,), frozenset({"earnings"})),
    _Rule(EventType.EARNINGS_MID_CAP, _EARNINGS, tags=frozenset({"earnings"})),
    # Merger / retail sales
    _Rule(EventType.MERGER, _words("merger", "acquisition", "acquire", "acquires")),
    _Rule(EventType.RETAIL_SALES, _words("retail sales")),
    _Rule(EventType.SECTOR_NEWS),
)


def classify(headline: Optional[str], source_tags: Optional[Iterable[str]] = None) -> EventType:
    """
    Classify a headline into an event type.

    Args:
        headline: Free-text headline (any case)
        source_tags: Tags attached by the upstream feed, e.g. "fedDecision"

    Returns:
        The highest-precedence matching EventType, or EventType.OTHER
    """
    text = (headline or "").lower()
    tags = {tag.strip().lower() for tag in (source_tags or ()) if tag}

    for rule in _RULES:
        if rule.matches(text, tags):
            return rule.event_type

    return EventType.OTHER
