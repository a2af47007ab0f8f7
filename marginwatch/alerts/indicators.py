"""Core indicator functions — pure computations on daily OHLCV data."""

from __future__ import annotations

import numpy as np
import pandas as pd


def ema(series: pd.Series, period: int) -> pd.Series:
    return series.ewm(span=period, adjust=False).mean()


def sma(series: pd.Series, period: int) -> float:
    return float(series.rolling(period).mean().iloc[-1])


def rsi(series: pd.Series, period: int = 14) -> float:
    delta = series.diff()
    gain = delta.where(delta > 0, 0.0)
    loss = -delta.where(delta < 0, 0.0)
    avg_gain = gain.rolling(window=period).mean()
    avg_loss = loss.rolling(window=period).mean()
    rs = avg_gain / avg_loss.replace(0, np.nan)
    rsi_values = 100 - (100 / (1 + rs))
    # No losses in the window: pinned high, or neutral when flat
    no_loss = avg_loss == 0
    rsi_values = rsi_values.mask(no_loss & (avg_gain > 0), 100.0).mask(no_loss & (avg_gain == 0), 50.0)
    return float(rsi_values.iloc[-1]) if len(rsi_values) > 0 else 50.0


def bollinger_bands(series: pd.Series, period: int = 20, std_dev: float = 2.0) -> tuple[float, float, float]:
    """Returns (upper, middle, lower) band values."""
    middle = series.rolling(period).mean()
    std = series.rolling(period).std()
    upper = middle + std_dev * std
    lower = middle - std_dev * std
    return float(upper.iloc[-1]), float(middle.iloc[-1]), float(lower.iloc[-1])


def macd_series(series: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> tuple[pd.Series, pd.Series]:
    """Returns (macd_line, signal_line) series."""
    macd_line = ema(series, fast) - ema(series, slow)
    signal_line = macd_line.ewm(span=signal, adjust=False).mean()
    return macd_line, signal_line


def crossed_above(fast: pd.Series, slow: pd.Series) -> bool:
    """True when fast moved from at-or-below slow to above it on the last bar."""
    if len(fast) < 2 or len(slow) < 2:
        return False
    return bool(fast.iloc[-2] <= slow.iloc[-2] and fast.iloc[-1] > slow.iloc[-1])


def ma_cross(series: pd.Series, short: int = 50, long: int = 200) -> bool:
    """Golden cross of simple moving averages on the last bar."""
    if len(series) < long + 1:
        return False
    return crossed_above(series.rolling(short).mean(), series.rolling(long).mean())


def atr(df: pd.DataFrame, period: int = 14) -> float:
    """Average True Range."""
    high = df["high"]
    low = df["low"]
    close = df["close"]
    tr = pd.concat([
        high - low,
        (high - close.shift()).abs(),
        (low - close.shift()).abs(),
    ], axis=1).max(axis=1)
    return float(tr.rolling(period).mean().iloc[-1])


def classify_regime(df: pd.DataFrame) -> str:
    """Classify market regime from the last 30 closes."""
    if len(df) < 30:
        return "unknown"

    close = df["close"].tail(30)
    returns = close.pct_change().dropna()

    volatility = float(returns.std())
    trend = float((close.iloc[-1] - close.iloc[0]) / close.iloc[0])

    if volatility > 0.03:
        return "volatile"
    elif abs(trend) > 0.05:
        if trend > 0:
            return "trending_up"
        else:
            return "trending_down"
    elif abs(trend) < 0.01:
        return "ranging"
    else:
        return "breakout"


def return_correlations(closes: dict[str, pd.Series], min_overlap: int = 20) -> pd.DataFrame:
    """Pairwise correlation of daily returns. Symbols with too little overlap are dropped."""
    if len(closes) < 2:
        return pd.DataFrame()
    returns = pd.DataFrame({sym: s.pct_change() for sym, s in closes.items()}).dropna()
    if len(returns) < min_overlap:
        return pd.DataFrame()
    return returns.corr()


def pairwise_values(corr: pd.DataFrame) -> list[float]:
    """Upper-triangle entries of a correlation matrix."""
    if corr.empty:
        return []
    values = corr.to_numpy()
    idx = np.triu_indices_from(values, k=1)
    return [float(v) for v in values[idx] if not np.isnan(v)]
