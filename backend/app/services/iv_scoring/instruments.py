"""
Futures Instrument Reference Table

Beta to the S&P 500, tick size, tick value (USD per tick per contract)
and a reference price used when the caller does not supply one.
"""

from app.schemas.iv_score import InstrumentProfile


def _profile(symbol, beta, tick_value, tick_size, reference_price, description):
    return InstrumentProfile(
        symbol=symbol,
        beta=beta,
        tick_value=tick_value,
        tick_size=tick_size,
        reference_price=reference_price,
        description=description,
    )


INSTRUMENT_PROFILES: dict[str, InstrumentProfile] = {
    p.symbol: p
    for p in (
        # Equity index
        _profile("/ES", 1.0, 12.50, 0.25, 6000, "E-mini S&P 500"),
        _profile("/MES", 1.0, 1.25, 0.25, 6000, "Micro E-mini S&P 500"),
        _profile("/NQ", 1.2, 5.00, 0.25, 21000, "E-mini Nasdaq-100"),
        _profile("/MNQ", 1.2, 0.50, 0.25, 21000, "Micro E-mini Nasdaq-100"),
        _profile("/YM", 0.95, 5.00, 1.0, 44000, "E-mini Dow"),
        _profile("/MYM", 0.95, 0.50, 1.0, 44000, "Micro E-mini Dow"),
        _profile("/RTY", 1.1, 5.00, 0.10, 2200, "E-mini Russell 2000"),
        _profile("/M2K", 1.1, 0.50, 0.10, 2200, "Micro E-mini Russell 2000"),
        # Energy
        _profile("/CL", 0.6, 10.00, 0.01, 75, "Crude Oil"),
        _profile("/MCL", 0.6, 1.00, 0.01, 75, "Micro Crude Oil"),
        _profile("/NG", 0.5, 10.00, 0.001, 3.50, "Natural Gas"),
        # Metals
        _profile("/GC", 0.2, 10.00, 0.10, 2650, "Gold"),
        _profile("/MGC", 0.2, 1.00, 0.10, 2650, "Micro Gold"),
        _profile("/SI", 0.4, 25.00, 0.005, 30, "Silver"),
        _profile("/SIL", 0.4, 2.50, 0.005, 30, "Micro Silver"),
        # Currencies
        _profile("/6E", 0.3, 12.50, 0.00005, 1.08, "Euro FX"),
        _profile("/6J", 0.25, 12.50, 0.0000005, 0.0067, "Japanese Yen"),
        _profile("/6B", 0.35, 6.25, 0.0001, 1.27, "British Pound"),
        # Treasuries (inverse to equities)
        _profile("/ZB", -0.3, 31.25, 0.03125, 118, "30-Year T-Bond"),
        _profile("/ZN", -0.25, 15.625, 0.015625, 110, "10-Year T-Note"),
    )
}

DEFAULT_BETA = 1.0
DEFAULT_TICK_VALUE = 1.0
DEFAULT_TICK_SIZE = 0.25
DEFAULT_REFERENCE_PRICE = 6000.0


def normalize_symbol(symbol: str) -> str:
    """'es' -> '/ES'."""
    symbol = (symbol or "").strip().upper()
    if symbol and not symbol.startswith("/"):
        symbol = f"/{symbol}"
    return symbol


def get_instrument_profile(symbol: str) -> InstrumentProfile:
    """Look up an instrument, falling back to a beta-1.0 default for unknown symbols."""
    symbol = normalize_symbol(symbol)
    profile = INSTRUMENT_PROFILES.get(symbol)
    if profile is not None:
        return profile

    return InstrumentProfile(
        symbol=symbol or "UNKNOWN",
        beta=DEFAULT_BETA,
        tick_value=DEFAULT_TICK_VALUE,
        tick_size=DEFAULT_TICK_SIZE,
        reference_price=DEFAULT_REFERENCE_PRICE,
        description="Unknown instrument (default profile)",
    )