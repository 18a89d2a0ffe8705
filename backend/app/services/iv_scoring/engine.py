"""
IV Scoring Calculations

Pure functions turning events, VIX state, session, instrument and calendar
flags into a 0-10 score and a Rule-of-16 implied move.
NO I/O - Given the same inputs and `now`, output is identical.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence, Union

from app.core.market_hours import get_trading_session
from app.schemas.events import EventRecord, EventType
from app.schemas.iv_score import (
    ImpliedPoints,
    InstrumentProfile,
    IVScoreResult,
    ScoreLevel,
    ScoringFlags,
    VIXState,
)
from app.services.iv_scoring.instruments import get_instrument_profile


# =============================================================================
# CONSTANTS
# =============================================================================

MIN_SCORE = 0.0
MAX_SCORE = 10.0

EVENT_WEIGHTS: dict[EventType, float] = {
    # Catastrophic
    EventType.BLACK_SWAN: 10,
    EventType.DATACENTER_HALT: 10,
    EventType.GOVERNMENT_SHUTDOWN: 10,
    EventType.MAJOR_CRISIS: 10,
    # Fed / geopolitical
    EventType.FED_DECISION: 8,
    EventType.FOMC: 8,
    EventType.POWELL_SPEAK: 8,
    EventType.GEOPOLITICAL: 8,
    EventType.TARIFFS: 8,
    EventType.CHINA_TRADE: 8,
    EventType.CONFLICT: 8,
    # Tier-one prints
    EventType.CPI_PRINT: 7,
    EventType.PCE_PRINT: 7,
    EventType.NFP_PRINT: 7,
    EventType.JOLTS: 7,
    EventType.EARNINGS_HIGH_IMPACT: 7,
    # Tier-two prints
    EventType.GDP_PRINT: 6,
    EventType.ISM_PRINT: 6,
    EventType.POLITICAL_COMMENTARY: 6,
    EventType.EARNINGS_MID_CAP: 5,
    EventType.RETAIL_SALES: 5,
    # Background
    EventType.SECTOR_NEWS: 3,
    EventType.MERGER: 3,
    EventType.OTHER: 3,
}
DEFAULT_EVENT_WEIGHT = 3.0

# Minutes for a decayed weight to halve
HALF_LIFE_MINUTES: dict[EventType, float] = {
    # Rates / inflation / employment
    EventType.FED_DECISION: 120,
    EventType.FOMC: 120,
    EventType.POWELL_SPEAK: 120,
    EventType.CPI_PRINT: 120,
    EventType.PCE_PRINT: 120,
    EventType.NFP_PRINT: 120,
    EventType.JOLTS: 120,
    # Geopolitical / political
    EventType.GEOPOLITICAL: 90,
    EventType.TARIFFS: 90,
    EventType.CHINA_TRADE: 90,
    EventType.CONFLICT: 90,
    EventType.POLITICAL_COMMENTARY: 90,
    # Earnings
    EventType.EARNINGS_HIGH_IMPACT: 60,
    EventType.EARNINGS_MID_CAP: 60,
}
DEFAULT_HALF_LIFE_MINUTES = 30.0

SYNERGY_WINDOW_MINUTES = 30.0
SYNERGY_MULTIPLIER = 1.2
VIX_BASELINE_DIVISOR = 3.0

# (upper bound exclusive, multiplier, label); anything above the last bound is high fear
VIX_TIERS = (
    (15.0, 0.8, "Low fear"),
    (20.0, 1.0, "Neutral"),
    (30.0, 1.2, "Elevated"),
)
VIX_TOP_TIER = (1.5, "High fear")

SPIKE_WINDOW_MINUTES = 15.0
SPIKE_THRESHOLD_PCT = 5.0
SPIKE_RISE_ADJUSTMENT = 2.0
SPIKE_DROP_ADJUSTMENT = -1.0

SPILLOVER_RATE = 0.2

HIGH_ACTIVITY_BASELINE = 4.0
LOW_ACTIVITY_BASELINE = 1.0
HIGH_ACTIVITY_EVENT_COUNT = 3

EXTREME_VIX_LEVEL = 50.0
LONG_HOLD_VIX_LEVEL = 25.0
LONG_HOLD_MINUTES = 60
SHORT_HOLD_MINUTES = 30
MARKET_CLOSED_DECAY = 0.5

RULE_OF_16 = 16.0
ALERT_THRESHOLD = 8.0
FOCUS_ALERT = "Get focused 'cause this one of them ones"
EXTREME_VIX_ALERT = f"{FOCUS_ALERT} - Extreme VIX"


# =============================================================================
# PER-STEP CALCULATIONS
# =============================================================================


@dataclass(frozen=True)
class EdgeCase:
    """A condition that forces the maximum score."""

    score: float
    message: str
    hold_minutes: int


def check_edge_cases(events: Sequence[EventRecord], vix: VIXState) -> Optional[EdgeCase]:
    """Catastrophic events and extreme VIX short-circuit to 10."""
    hold = LONG_HOLD_MINUTES if vix.level > LONG_HOLD_VIX_LEVEL else SHORT_HOLD_MINUTES

    if any(event.is_catastrophic for event in events):
        return EdgeCase(score=MAX_SCORE, message=FOCUS_ALERT, hold_minutes=hold)
    if vix.level > EXTREME_VIX_LEVEL:
        return EdgeCase(score=MAX_SCORE, message=EXTREME_VIX_ALERT, hold_minutes=hold)
    return None


def get_event_weight(event_type: EventType) -> float:
    return float(EVENT_WEIGHTS.get(event_type, DEFAULT_EVENT_WEIGHT))


def get_half_life(event_type: EventType) -> float:
    return float(HALF_LIFE_MINUTES.get(event_type, DEFAULT_HALF_LIFE_MINUTES))


def minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60.0


def decay_event_score(event: EventRecord, now: datetime) -> float:
    """base x 0.5^(minutes elapsed / half-life). Future timestamps count as fresh."""
    elapsed = max(0.0, minutes_between(event.timestamp, now))
    return get_event_weight(event.event_type) * 0.5 ** (elapsed / get_half_life(event.event_type))


def has_synergy(events: Sequence[EventRecord]) -> bool:
    """True if any two events landed within the synergy window of each other."""
    ordered = sorted(events, key=lambda e: e.timestamp)
    return any(
        minutes_between(a.timestamp, b.timestamp) < SYNERGY_WINDOW_MINUTES
        for a, b in zip(ordered, ordered[1:])
    )


def stack_event_scores(events: Sequence[EventRecord], now: datetime) -> tuple[float, bool]:
    """Sum of decayed scores, with the synergy bonus when events cluster."""
    total = sum(decay_event_score(event, now) for event in events)
    synergy = len(events) >= 2 and has_synergy(events)
    if synergy:
        total *= SYNERGY_MULTIPLIER
    return total, synergy


def vix_baseline(level: float) -> float:
    """Score used when there are no events."""
    return min(MAX_SCORE, level / VIX_BASELINE_DIVISOR)


def get_vix_multiplier(level: float) -> tuple[float, str]:
    for upper, multiplier, label in VIX_TIERS:
        if level < upper:
            return multiplier, label
    return VIX_TOP_TIER


def vix_spike_adjustment(vix: VIXState) -> float:
    """+2 for a >5% rise, -1 for a >5% drop, only for fresh readings."""
    if vix.minutes_since_update > SPIKE_WINDOW_MINUTES or vix.previous_level <= 0:
        return 0.0

    change_pct = (vix.level - vix.previous_level) / vix.previous_level * 100
    if change_pct > SPIKE_THRESHOLD_PCT:
        return SPIKE_RISE_ADJUSTMENT
    if change_pct < -SPIKE_THRESHOLD_PCT:
        return SPIKE_DROP_ADJUSTMENT
    return 0.0


def spillover(previous_session_score: float) -> float:
    return max(0.0, previous_session_score) * SPILLOVER_RATE


def activity_baseline(event_count: int, flags: ScoringFlags) -> float:
    if event_count >= HIGH_ACTIVITY_EVENT_COUNT or flags.is_earnings_season or flags.is_fomc_week:
        return HIGH_ACTIVITY_BASELINE
    return LOW_ACTIVITY_BASELINE


def calculate_implied_points(
    vix_level: float,
    profile: InstrumentProfile,
    reference_price: Optional[float] = None,
) -> ImpliedPoints:
    """Rule of 16: expected daily move from annualised VIX, scaled by beta."""
    price = reference_price if reference_price is not None else profile.reference_price
    pct_move = vix_level / RULE_OF_16
    base_points = price * pct_move / 100
    adjusted_points = base_points * abs(profile.beta)
    ticks = int(round(adjusted_points / profile.tick_size))

    return ImpliedPoints(
        pct_move=pct_move,
        base_points=base_points,
        adjusted_points=adjusted_points,
        ticks=ticks,
        dollar_risk=ticks * profile.tick_value,
    )


def score_to_level(score: float) -> ScoreLevel:
    if score < 4:
        return ScoreLevel.LOW
    if score < 7:
        return ScoreLevel.MEDIUM
    if score <= 8:
        return ScoreLevel.GOOD
    return ScoreLevel.HIGH


# =============================================================================
# COMPOSITE SCORE
# =============================================================================


def calculate_iv_score(
    events: Sequence[EventRecord],
    vix: VIXState,
    instrument: Union[str, InstrumentProfile],
    reference_price: Optional[float] = None,
    flags: Optional[ScoringFlags] = None,
    previous_session_score: float = 0.0,
    now: Optional[datetime] = None,
) -> IVScoreResult:
    """
    Score market conditions for one instrument.

    Steps run in a fixed order, each appending to the rationale:
        1. edge cases (catastrophic event / extreme VIX -> 10)
        2. per-event exponential decay
        3. stacking with synergy, or the VIX-only baseline
        4. session multiplier
        5. VIX tier multiplier
        6. VIX spike adjustment
        7. spillover from the previous session
        8. clamp to [0, 10], then floor at the activity baseline
        9. implied move envelope
        10. alert at >= 8

    Args:
        events: Classified events for the current window
        vix: Latest VIX reading
        instrument: Symbol or profile; unknown symbols use a default profile
        reference_price: Price for the implied move (profile price if None)
        flags: Calendar flags
        previous_session_score: Final score of the previous session
        now: Evaluation time (UTC now if None)

    Returns:
        IVScoreResult
    """
    flags = flags or ScoringFlags()
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    profile = instrument if isinstance(instrument, InstrumentProfile) else get_instrument_profile(instrument)

    session = get_trading_session(now)
    vix_mult, vix_tier = get_vix_multiplier(vix.level)
    baseline = activity_baseline(len(events), flags)
    implied = calculate_implied_points(vix.level, profile, reference_price)
    rationale: list[str] = []

    # 1. Edge cases
    edge = check_edge_cases(events, vix)
    if edge is not None:
        rationale.append(edge.message)
        rationale.append(f"Hold for {edge.hold_minutes} minutes")
        return IVScoreResult(
            symbol=profile.symbol,
            score=edge.score,
            implied_points=implied,
            session=session,
            vix_level=vix.level,
            vix_multiplier=vix_mult,
            vix_tier=vix_tier,
            activity_baseline=baseline,
            stacked_event_count=len(events),
            synergy_applied=False,
            daily_decay_multiplier=MARKET_CLOSED_DECAY if flags.is_market_closed else 1.0,
            hold_minutes=edge.hold_minutes,
            rationale=rationale,
            alert=edge.message,
            calculated_at=now,
        )

    daily_decay = 1.0
    if flags.is_market_closed:
        daily_decay = MARKET_CLOSED_DECAY
        rationale.append(f"Market closed - using last close VIX with {MARKET_CLOSED_DECAY} daily decay")

    # 2-3. Decay and stacking
    synergy = False
    if events:
        for event in events:
            rationale.append(
                f"{event.event_type.value}: weight {get_event_weight(event.event_type):g} "
                f"decayed to {decay_event_score(event, now):.2f}"
            )
        score, synergy = stack_event_scores(events, now)
        if synergy:
            rationale.append(f"Synergy: events within {SYNERGY_WINDOW_MINUTES:g} min (x{SYNERGY_MULTIPLIER})")
        rationale.append(f"Stacked score ({len(events)} events): {score:.2f}")
    else:
        score = vix_baseline(vix.level)
        rationale.append(f"No events, VIX baseline {vix.level:.1f}/{VIX_BASELINE_DIVISOR:g} = {score:.2f}")

    # 4. Session
    score *= session.multiplier
    rationale.append(f"Session {session.name.value} x{session.multiplier}: {score:.2f}")

    # 5. VIX tier
    score *= vix_mult
    rationale.append(f"VIX {vix.level:.1f} ({vix_tier}) x{vix_mult}: {score:.2f}")

    # 6. Spike
    spike = vix_spike_adjustment(vix)
    if spike:
        score += spike
        rationale.append(f"VIX spike adjustment {spike:+g}: {score:.2f}")

    # 7. Spillover
    carry = spillover(previous_session_score)
    if carry:
        score += carry
        rationale.append(f"Spillover from previous session +{carry:.2f}: {score:.2f}")

    # 8. Clamp and floor
    score = max(MIN_SCORE, min(MAX_SCORE, score))
    if score < baseline:
        rationale.append(f"Floored at activity baseline {baseline:g}")
        score = baseline
    rationale.append(f"Final score: {score:.1f}")

    # 9. Implied move
    rationale.append(
        f"Implied move: {implied.adjusted_points:.2f} points, {implied.ticks} ticks, "
        f"${implied.dollar_risk:,.2f} per contract ({profile.symbol}, beta {profile.beta:g})"
    )

    # 10. Alert
    alert = FOCUS_ALERT if score >= ALERT_THRESHOLD else None

    return IVScoreResult(
        symbol=profile.symbol,
        score=score,
        implied_points=implied,
        session=session,
        vix_level=vix.level,
        vix_multiplier=vix_mult,
        vix_tier=vix_tier,
        activity_baseline=baseline,
        stacked_event_count=len(events),
        synergy_applied=synergy,
        daily_decay_multiplier=daily_decay,
        rationale=rationale,
        alert=alert,
        calculated_at=now,
    )
