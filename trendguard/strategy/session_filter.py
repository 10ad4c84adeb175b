"""Session filter — pure function, checks if a UTC hour is within the trading window."""


def is_in_session(
    utc_hour: int,
    session_start: int = 0,
    session_end: int = 24,
) -> bool:
    """Return True if *utc_hour* falls within the configured trading window.

    Both bounds are inclusive, so ``8 → 16`` still trades during the 16:00
    hour.  Default window: 00:00–24:00 UTC, i.e. always open.  A window
    whose end is before its start wraps past midnight (``22 → 6``).

    Args:
        utc_hour: The hour in UTC (0–23).
        session_start: Window start hour (inclusive).
        session_end: Window end hour (inclusive).
    """
    if session_start <= session_end:
        return session_start <= utc_hour <= session_end
    return utc_hour >= session_start or utc_hour <= session_end
