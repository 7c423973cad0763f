"""Support/Resistance level detection from swing points — pure functions."""

from signalforge.analysis.models import Candle, SRLevel


def find_swing_highs(candles: list[Candle], window: int = 2) -> list[int]:
    """Indices of swing highs.

    A swing high is a candle whose high is strictly higher than the highs
    of the *window* candles on each side.
    """
    indices: list[int] = []
    for i in range(window, len(candles) - window):
        high = candles[i].high
        is_swing = True
        for j in range(1, window + 1):
            if candles[i - j].high >= high or candles[i + j].high >= high:
                is_swing = False
                break
        if is_swing:
            indices.append(i)
    return indices


def find_swing_lows(candles: list[Candle], window: int = 2) -> list[int]:
    """Indices of swing lows (mirror of :func:`find_swing_highs`)."""
    indices: list[int] = []
    for i in range(window, len(candles) - window):
        low = candles[i].low
        is_swing = True
        for j in range(1, window + 1):
            if candles[i - j].low <= low or candles[i + j].low <= low:
                is_swing = False
                break
        if is_swing:
            indices.append(i)
    return indices


def _cluster_levels(
    levels: list[float], tolerance_pct: float = 0.5
) -> list[tuple[float, int]]:
    """Cluster nearby price levels.

    Groups levels within *tolerance_pct* percent of the previous level in
    the cluster.  Returns ``(average_price, touch_count)`` tuples sorted by
    price.
    """
    if not levels:
        return []

    sorted_levels = sorted(levels)
    clusters: list[list[float]] = []
    current_cluster: list[float] = [sorted_levels[0]]

    for level in sorted_levels[1:]:
        tolerance = current_cluster[-1] * tolerance_pct / 100.0
        if abs(level - current_cluster[-1]) <= tolerance:
            current_cluster.append(level)
        else:
            clusters.append(current_cluster)
            current_cluster = [level]
    clusters.append(current_cluster)

    return [(sum(c) / len(c), len(c)) for c in clusters]


def detect_sr_levels(
    candles: list[Candle],
    lookback: int = 100,
    swing_window: int = 3,
    tolerance_pct: float = 0.5,
) -> list[SRLevel]:
    """Detect horizontal support and resistance levels.

    Args:
        candles: Candle data, oldest-first.
        lookback: Number of most-recent candles to analyse.
        swing_window: Half-window size for swing detection.
        tolerance_pct: Clustering tolerance as a percent of price.

    Returns:
        List of ``SRLevel`` objects sorted by price.
    """
    recent = candles[-lookback:] if len(candles) > lookback else candles

    highs = [recent[i].high for i in find_swing_highs(recent, window=swing_window)]
    lows = [recent[i].low for i in find_swing_lows(recent, window=swing_window)]

    levels: list[SRLevel] = []
    for price, strength in _cluster_levels(highs, tolerance_pct):
        levels.append(SRLevel(level_type="resistance", price=price, strength=strength))
    for price, strength in _cluster_levels(lows, tolerance_pct):
        levels.append(SRLevel(level_type="support", price=price, strength=strength))

    levels.sort(key=lambda lv: lv.price)
    return levels


def split_levels(
    levels: list[SRLevel],
    current_price: float,
    max_levels: int = 3,
) -> tuple[tuple[float, ...], tuple[float, ...]]:
    """Split levels into supports below and resistances above *current_price*.

    A level's role follows its position relative to price, not its original
    swing type, so a broken resistance below price counts as support.
    Each side keeps the *max_levels* closest prices, nearest first.
    """
    below = sorted({lv.price for lv in levels if lv.price < current_price}, reverse=True)
    above = sorted({lv.price for lv in levels if lv.price > current_price})
    return tuple(below[:max_levels]), tuple(above[:max_levels])
