from datetime import datetime, timedelta, timezone

import pytest

from app.schemas.events import CATASTROPHIC_EVENT_TYPES, EventRecord, EventType
from app.schemas.iv_score import ScoreLevel, ScoringFlags, TradingSession, VIXState
from app.services.iv_scoring.engine import (
    EXTREME_VIX_ALERT,
    FOCUS_ALERT,
    activity_baseline,
    calculate_implied_points,
    calculate_iv_score,
    check_edge_cases,
    decay_event_score,
    get_vix_multiplier,
    has_synergy,
    score_to_level,
    spillover,
    stack_event_scores,
    vix_baseline,
    vix_spike_adjustment,
)
from app.services.iv_scoring.instruments import get_instrument_profile

NOW = datetime(2026, 1, 14, 15, 0, tzinfo=timezone.utc)  # 10:00 ET, New York


def event(event_type: EventType, minutes_ago: float = 0) -> EventRecord:
    return EventRecord(event_type=event_type, timestamp=NOW - timedelta(minutes=minutes_ago))


def score(events=(), level=20.0, previous_level=0.0, minutes_since_update=0.0, **kwargs):
    vix = VIXState(level=level, previous_level=previous_level, minutes_since_update=minutes_since_update)
    kwargs.setdefault("now", NOW)
    kwargs.setdefault("instrument", "/ES")
    return calculate_iv_score(events=list(events), vix=vix, **kwargs)


# =============================================================================
# EDGE CASES
# =============================================================================


class TestEdgeCases:
    @pytest.mark.parametrize("event_type", sorted(CATASTROPHIC_EVENT_TYPES, key=lambda e: e.value))
    def test_every_catastrophic_type_forces_max(self, event_type):
        result = score([event(event_type)], level=18)

        assert result.score == 10.0
        assert result.alert == FOCUS_ALERT
        assert result.hold_minutes == 30

    def test_hold_extends_when_vix_above_25(self):
        assert check_edge_cases([event(EventType.BLACK_SWAN)], VIXState(level=25.01)).hold_minutes == 60
        assert check_edge_cases([event(EventType.BLACK_SWAN)], VIXState(level=25.0)).hold_minutes == 30

    def test_extreme_vix_without_events(self):
        result = score([], level=51)

        assert result.score == 10.0
        assert result.alert == EXTREME_VIX_ALERT
        assert result.hold_minutes == 60

    def test_vix_at_50_is_not_extreme(self):
        assert check_edge_cases([], VIXState(level=50.0)) is None

    def test_non_catastrophic_event_is_not_edge(self):
        assert check_edge_cases([event(EventType.FED_DECISION)], VIXState(level=20)) is None

    def test_edge_case_still_reports_implied_move(self):
        result = score([event(EventType.MAJOR_CRISIS)], level=20)
        assert result.implied_points.ticks == 300


# =============================================================================
# DECAY AND STACKING
# =============================================================================


class TestDecay:
    def test_fresh_event_has_full_weight(self):
        assert decay_event_score(event(EventType.CPI_PRINT), NOW) == pytest.approx(7.0)

    def test_one_half_life_halves_weight(self):
        assert decay_event_score(event(EventType.FED_DECISION, 120), NOW) == pytest.approx(4.0)
        assert decay_event_score(event(EventType.TARIFFS, 90), NOW) == pytest.approx(4.0)
        assert decay_event_score(event(EventType.EARNINGS_HIGH_IMPACT, 60), NOW) == pytest.approx(3.5)

    def test_jolts_uses_rates_half_life(self):
        assert decay_event_score(event(EventType.JOLTS, 120), NOW) == pytest.approx(3.5)

    def test_default_half_life_is_30_minutes(self):
        assert decay_event_score(event(EventType.OTHER, 30), NOW) == pytest.approx(1.5)
        assert decay_event_score(event(EventType.MERGER, 60), NOW) == pytest.approx(0.75)

    def test_future_event_counts_as_fresh(self):
        assert decay_event_score(event(EventType.CPI_PRINT, -10), NOW) == pytest.approx(7.0)


class TestStacking:
    def test_synergy_window_is_strict(self):
        assert has_synergy([event(EventType.CPI_PRINT, 29), event(EventType.FED_DECISION, 0)])
        assert not has_synergy([event(EventType.CPI_PRINT, 30), event(EventType.FED_DECISION, 0)])

    def test_synergy_checks_adjacent_pairs_in_time_order(self):
        events = [
            event(EventType.CPI_PRINT, 100),
            event(EventType.FED_DECISION, 0),
            event(EventType.TARIFFS, 10),
        ]
        assert has_synergy(events)

    def test_clustered_events_get_bonus(self):
        total, synergy = stack_event_scores([event(EventType.CPI_PRINT), event(EventType.NFP_PRINT)], NOW)

        assert synergy is True
        assert total == pytest.approx(14 * 1.2)

    def test_single_event_has_no_bonus(self):
        total, synergy = stack_event_scores([event(EventType.CPI_PRINT)], NOW)

        assert synergy is False
        assert total == pytest.approx(7.0)

    def test_no_cap_before_clamp(self):
        total, _ = stack_event_scores([event(EventType.FED_DECISION), event(EventType.POWELL_SPEAK)], NOW)
        assert total > 10


# =============================================================================
# VIX
# =============================================================================


class TestVIX:
    def test_baseline_is_level_over_three(self):
        assert vix_baseline(21) == pytest.approx(7.0)
        assert vix_baseline(45) == 10.0

    @pytest.mark.parametrize(
        "level,multiplier,label",
        [
            (14.99, 0.8, "Low fear"),
            (15.0, 1.0, "Neutral"),
            (19.99, 1.0, "Neutral"),
            (20.0, 1.2, "Elevated"),
            (29.99, 1.2, "Elevated"),
            (30.0, 1.5, "High fear"),
        ],
    )
    def test_tier_boundaries(self, level, multiplier, label):
        assert get_vix_multiplier(level) == (multiplier, label)

    def test_spike_up(self):
        assert vix_spike_adjustment(VIXState(level=22, previous_level=20)) == 2.0

    def test_spike_down(self):
        assert vix_spike_adjustment(VIXState(level=18, previous_level=20)) == -1.0

    def test_exactly_five_percent_is_not_a_spike(self):
        assert vix_spike_adjustment(VIXState(level=21, previous_level=20)) == 0.0
        assert vix_spike_adjustment(VIXState(level=19, previous_level=20)) == 0.0

    def test_stale_reading_ignored(self):
        assert vix_spike_adjustment(VIXState(level=22, previous_level=20, minutes_since_update=15)) == 2.0
        assert vix_spike_adjustment(VIXState(level=22, previous_level=20, minutes_since_update=16)) == 0.0

    def test_no_previous_reading(self):
        assert vix_spike_adjustment(VIXState(level=22, previous_level=0)) == 0.0


# =============================================================================
# SPILLOVER / BASELINE / IMPLIED MOVE / LEVELS
# =============================================================================


def test_spillover_is_twenty_percent():
    assert spillover(6.0) == pytest.approx(1.2)
    assert spillover(0.0) == 0.0


@pytest.mark.parametrize(
    "count,flags,expected",
    [
        (0, ScoringFlags(), 1.0),
        (2, ScoringFlags(), 1.0),
        (3, ScoringFlags(), 4.0),
        (0, ScoringFlags(is_earnings_season=True), 4.0),
        (0, ScoringFlags(is_fomc_week=True), 4.0),
    ],
)
def test_activity_baseline(count, flags, expected):
    assert activity_baseline(count, flags) == expected


class TestImpliedPoints:
    def test_es_at_vix_20(self):
        implied = calculate_implied_points(20, get_instrument_profile("/ES"))

        assert implied.pct_move == pytest.approx(1.25)
        assert implied.base_points == pytest.approx(75.0)
        assert implied.adjusted_points == pytest.approx(75.0)
        assert implied.ticks == 300
        assert implied.dollar_risk == pytest.approx(3750.0)

    def test_beta_scales_points(self):
        implied = calculate_implied_points(16, get_instrument_profile("/NQ"))

        assert implied.base_points == pytest.approx(210.0)
        assert implied.adjusted_points == pytest.approx(252.0)
        assert implied.ticks == 1008
        assert implied.dollar_risk == pytest.approx(5040.0)

    def test_negative_beta_uses_magnitude(self):
        implied = calculate_implied_points(16, get_instrument_profile("/ZB"))

        assert implied.adjusted_points == pytest.approx(0.354)
        assert implied.ticks == 11
        assert implied.dollar_risk == pytest.approx(343.75)

    def test_reference_price_override(self):
        implied = calculate_implied_points(16, get_instrument_profile("/ES"), reference_price=5000)

        assert implied.ticks == 200
        assert implied.dollar_risk == pytest.approx(2500.0)

    def test_unknown_symbol_uses_default_profile(self):
        profile = get_instrument_profile("xyz")
        implied = calculate_implied_points(16, profile)

        assert profile.symbol == "/XYZ"
        assert profile.beta == 1.0
        assert implied.ticks == 240
        assert implied.dollar_risk == pytest.approx(240.0)


@pytest.mark.parametrize(
    "value,level",
    [
        (0.0, ScoreLevel.LOW),
        (3.99, ScoreLevel.LOW),
        (4.0, ScoreLevel.MEDIUM),
        (6.99, ScoreLevel.MEDIUM),
        (7.0, ScoreLevel.GOOD),
        (8.0, ScoreLevel.GOOD),
        (8.01, ScoreLevel.HIGH),
        (10.0, ScoreLevel.HIGH),
    ],
)
def test_score_levels(value, level):
    assert score_to_level(value) == level


# =============================================================================
# COMPOSITE SCORE
# =============================================================================


class TestCompositeScore:
    def test_vix_only_new_york_es(self):
        result = score([], level=20)

        assert result.symbol == "/ES"
        assert result.session.name == TradingSession.NEW_YORK
        assert result.vix_multiplier == 1.2
        assert result.score == pytest.approx(8.0)
        assert result.alert == FOCUS_ALERT
        assert result.hold_minutes is None
        assert result.implied_points.ticks == 300
        assert result.implied_points.dollar_risk == pytest.approx(3750.0)

    @pytest.mark.parametrize(
        "now,session,expected",
        [
            (datetime(2026, 1, 14, 15, 0, tzinfo=timezone.utc), TradingSession.NEW_YORK, 6.0),
            (datetime(2026, 1, 14, 6, 0, tzinfo=timezone.utc), TradingSession.ASIAN, 3.6),
            (datetime(2026, 1, 14, 8, 0, tzinfo=timezone.utc), TradingSession.LONDON, 4.8),
            (datetime(2026, 1, 14, 22, 0, tzinfo=timezone.utc), TradingSession.AFTER_HOURS, 4.2),
        ],
    )
    def test_session_multiplier(self, now, session, expected):
        result = score([], level=18, now=now)

        assert result.session.name == session
        assert result.score == pytest.approx(expected)

    def test_clustered_events_clamp_to_ten(self):
        result = score([event(EventType.FED_DECISION), event(EventType.POWELL_SPEAK, 5)], level=18)

        assert result.synergy_applied is True
        assert result.score == 10.0
        assert any("Synergy" in line for line in result.rationale)

    def test_single_event_decays_with_age(self):
        ages = [0, 30, 60, 120, 240]

        scores = [score([event(EventType.CPI_PRINT, age)], level=18).score for age in ages]

        assert scores[0] == pytest.approx(7.0)
        assert scores[3] == pytest.approx(3.5)
        assert all(later < earlier for earlier, later in zip(scores, scores[1:]))

    def test_clustered_pair_outscores_spread_pair(self):
        clustered = score([event(EventType.OTHER), event(EventType.OTHER, 25)], level=18)
        spread = score([event(EventType.OTHER), event(EventType.OTHER, 45)], level=18)

        assert clustered.synergy_applied is True
        assert spread.synergy_applied is False
        assert clustered.score == pytest.approx((3 + 3 * 0.5 ** (25 / 30)) * 1.2)
        assert spread.score == pytest.approx(3 + 3 * 0.5 ** 1.5)
        assert clustered.score > spread.score

    def test_spike_added_after_multipliers(self):
        result = score([], level=18, previous_level=20)
        assert result.score == pytest.approx(5.0)

    def test_spillover_added(self):
        result = score([], level=12, previous_session_score=5.0)

        assert result.score == pytest.approx(4.0 * 0.8 + 1.0)
        assert any("Spillover" in line for line in result.rationale)

    def test_floored_at_activity_baseline(self):
        stale = [event(EventType.OTHER, 240)]

        quiet = score(stale, level=3)
        busy = score(stale, level=3, flags=ScoringFlags(is_earnings_season=True))

        assert quiet.score == 1.0
        assert busy.score == 4.0
        assert any("Floored at activity baseline" in line for line in busy.rationale)

    def test_market_closed_reports_decay(self):
        result = score([], level=18, flags=ScoringFlags(is_market_closed=True))

        assert result.daily_decay_multiplier == 0.5
        assert any("Market closed" in line for line in result.rationale)

    def test_rationale_ends_with_implied_move(self):
        result = score([event(EventType.CPI_PRINT)], level=18)

        assert result.rationale[0].startswith("cpiPrint: weight 7")
        assert result.rationale[-1].startswith("Implied move:")

    def test_no_alert_below_eight(self):
        assert score([], level=18).alert is None

    def test_naive_now_treated_as_utc(self):
        naive = score([], level=18, now=NOW.replace(tzinfo=None))
        assert naive.score == score([], level=18).score

    def test_same_inputs_same_result(self):
        events = [event(EventType.CPI_PRINT, 12), event(EventType.TARIFFS, 40)]
        first = score(events, level=23, previous_level=21, previous_session_score=3.0)
        second = score(events, level=23, previous_level=21, previous_session_score=3.0)

        assert first == second

    @pytest.mark.parametrize("level", [0, 9, 15, 22, 35, 49])
    @pytest.mark.parametrize("previous_session_score", [0.0, 10.0])
    def test_score_stays_in_range_and_above_baseline(self, level, previous_session_score):
        events = [event(EventType.FED_DECISION, 5), event(EventType.CPI_PRINT, 15), event(EventType.OTHER)]
        result = score(
            events,
            level=level,
            previous_level=level * 2,
            previous_session_score=previous_session_score,
        )

        assert 0.0 <= result.score <= 10.0
        assert result.score >= result.activity_baseline
