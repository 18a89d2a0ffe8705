"""
Event Classifier

CONTRACT:
    Input:  headline text + source tags
    Output: EventType

RESPONSIBILITIES:
    - Map a free-text headline to one event category for the IV scorer
    - Apply a fixed precedence order when several categories match
    - Split earnings into high-impact (mega-cap) and mid-cap

PURE PYTHON - No I/O, no side effects.
Unmatched input always resolves to EventType.OTHER, never an error.
"""

from app.services.events.classifier import classify, MEGA_CAP_TICKERS

__all__ = [
    "classify",
    "MEGA_CAP_TICKERS",
]
