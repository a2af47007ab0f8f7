"""Alert evaluators — one function per supported alert type.

Each evaluator looks at the configuration, the candidate positions and the
market context and returns at most one Signal. Position-level evaluators stop
at the first matching position; later matches surface on the next pass once
the earlier alert has been handled.

Types without an evaluator are listed in UNSUPPORTED_TYPES and never fire.
Most need data this system does not collect (fundamentals, news, sectors,
earnings calendars, options, trade journals) or are calendar reminders. The
oscillators, channel indicators and return statistics in
HISTORY_ONLY_UNSUPPORTED could be computed from the daily bars already
fetched, but no trigger rule is defined for them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

import pandas as pd

from marginwatch.alerts import indicators
from marginwatch.shell.contract import (
    AlertConfiguration, AlertType, MarketConditions, Severity, StockQuote,
    TrackedPosition, parse_ts, utcnow,
)

ROUND_NUMBERS = [50, 100, 150, 200, 250, 300, 500, 1000]
ROUND_NUMBER_BAND = 0.02
MARKET_CLOSE = time(16, 0)
END_OF_DAY_WINDOW_MINUTES = 30
RSI_OVERBOUGHT = 70
RSI_OVERSOLD = 30


@dataclass
class EvalContext:
    """Market inputs available to evaluators for one pass."""
    quotes: dict[str, StockQuote] = field(default_factory=dict)
    history: dict[str, pd.DataFrame] = field(default_factory=dict)
    market: Optional[MarketConditions] = None
    now: datetime = field(default_factory=utcnow)
    timezone: str = "America/New_York"

    def closes(self, symbol: str, min_len: int) -> pd.Series | None:
        df = self.history.get(symbol)
        if df is None or len(df) < min_len:
            return None
        return df["close"]


@dataclass
class Signal:
    """What an evaluator found; the engine turns it into a TriggeredAlert."""
    title: str
    message: str
    symbol: Optional[str] = None
    current_value: Optional[float] = None
    target_value: Optional[float] = None
    severity: Optional[Severity] = None
    metadata: Optional[dict[str, Any]] = None


Evaluator = Callable[[AlertConfiguration, list[TrackedPosition], EvalContext], Optional[Signal]]


def _num(config: AlertConfiguration, name: str, default: float = 0) -> float:
    value = config.condition_value(name, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def _fmt(value: float) -> str:
    """Threshold for titles: 5.0 -> '5', 2.5 -> '2.5'."""
    return f"{value:g}"


def _priced(positions: list[TrackedPosition]) -> list[TrackedPosition]:
    """Active positions with a known price."""
    return [p for p in positions if p.current_price and p.is_active]


def _holding_days(position: TrackedPosition, now: datetime) -> int:
    entry = parse_ts(position.entry_date) or now
    return math.floor((now - entry).total_seconds() / 86400)


def _market_value(positions: list[TrackedPosition]) -> float:
    return sum((p.current_price or p.entry_price) * p.shares for p in positions)


# --- Profit taking ---

def percentage_gain(config, positions, ctx):
    threshold = _num(config, "percentage_gain")
    for p in _priced(positions):
        gain = (p.current_price - p.entry_price) / p.entry_price * 100 if p.entry_price else 0.0
        if gain >= threshold:
            return Signal(
                title=f"{_fmt(threshold)}% Profit Target Reached",
                message=f"{p.symbol} has gained {gain:.2f}% (Target: {_fmt(threshold)}%)",
                symbol=p.symbol,
                current_value=gain,
                target_value=threshold,
                metadata={
                    "entry_price": p.entry_price,
                    "current_price": p.current_price,
                    "profit_amount": (p.current_price - p.entry_price) * p.shares,
                },
            )
    return None


def dollar_profit(config, positions, ctx):
    threshold = _num(config, "dollar_profit")
    for p in _priced(positions):
        profit = (p.current_price - p.entry_price) * p.shares
        if profit >= threshold:
            return Signal(
                title=f"${_fmt(threshold)} Profit Target Reached",
                message=f"{p.symbol} profit: ${profit:.2f} (Target: ${_fmt(threshold)})",
                symbol=p.symbol,
                current_value=profit,
                target_value=threshold,
                metadata={"entry_price": p.entry_price, "current_price": p.current_price, "shares": p.shares},
            )
    return None


def risk_reward_ratio(config, positions, ctx):
    target = _num(config, "risk_reward_ratio")
    for p in _priced(positions):
        risk = p.entry_price - p.stop_loss
        if risk <= 0:
            continue
        ratio = (p.current_price - p.entry_price) / risk
        if ratio >= target:
            return Signal(
                title=f"{_fmt(target)}:1 Risk-Reward Ratio Achieved",
                message=f"{p.symbol} R:R ratio: {ratio:.2f}:1",
                symbol=p.symbol,
                current_value=ratio,
                target_value=target,
            )
    return None


def price_target(config, positions, ctx):
    target = _num(config, "price_target")
    for p in _priced(positions):
        if p.current_price >= target:
            return Signal(
                title="Price Target Reached",
                message=f"{p.symbol} reached ${p.current_price:.2f} (Target: ${_fmt(target)})",
                symbol=p.symbol,
                current_value=p.current_price,
                target_value=target,
            )
    return None


def resistance_breach(config, positions, ctx):
    level = _num(config, "resistance_level")
    for p in _priced(positions):
        if p.current_price >= level:
            return Signal(
                title="Resistance Level Breached",
                message=f"{p.symbol} broke resistance at ${_fmt(level)}",
                symbol=p.symbol,
                current_value=p.current_price,
                target_value=level,
            )
    return None


def round_number(config, positions, ctx):
    for p in _priced(positions):
        nearest = next((n for n in ROUND_NUMBERS if abs(p.current_price - n) / n < ROUND_NUMBER_BAND), None)
        if nearest is not None:
            return Signal(
                title="Round Number Alert",
                message=f"{p.symbol} approaching round number ${nearest}",
                symbol=p.symbol,
                current_value=p.current_price,
                target_value=nearest,
            )
    return None


def trailing_stop(config, positions, ctx):
    trail = _num(config, "trail_percent", 5)
    for p in _priced(positions):
        highest = max(p.entry_price, p.current_price)
        df = ctx.history.get(p.symbol)
        entry = parse_ts(p.entry_date)
        if df is not None and entry and isinstance(df.index, pd.DatetimeIndex):
            since = df[df.index >= entry.astimezone(timezone.utc).replace(tzinfo=None)]
            if not since.empty:
                highest = max(highest, float(since["high"].max()))
        level = highest * (1 - trail / 100)
        if p.current_price <= level:
            return Signal(
                title="Trailing Stop Triggered",
                message=f"{p.symbol} hit trailing stop at ${level:.2f}",
                symbol=p.symbol,
                current_value=p.current_price,
                target_value=level,
                severity=Severity.HIGH,
            )
    return None


def fibonacci_profit(config, positions, ctx):
    fib = _num(config, "fib_level", 61.8)
    for p in _priced(positions):
        target = p.entry_price + abs(p.entry_price - p.stop_loss) * fib / 100
        if p.current_price >= target:
            return Signal(
                title="Fibonacci Level Reached",
                message=f"{p.symbol} hit {_fmt(fib)}% fib level at ${target:.2f}",
                symbol=p.symbol,
                current_value=p.current_price,
                target_value=target,
            )
    return None


def ma_profit(config, positions, ctx):
    """Price in profit but back under its moving average."""
    period = int(_num(config, "ma_period", 20))
    for p in _priced(positions):
        closes = ctx.closes(p.symbol, period)
        if closes is None:
            continue
        ma = indicators.sma(closes, period)
        if p.current_price > p.entry_price and p.current_price <= ma:
            return Signal(
                title="Moving Average Profit Signal",
                message=f"{p.symbol} below {period}-period MA",
                symbol=p.symbol,
                current_value=p.current_price,
                target_value=ma,
            )
    return None


# --- Position closing ---

def percentage_loss(config, positions, ctx):
    threshold = abs(_num(config, "percentage_loss"))
    for p in _priced(positions):
        loss = (p.entry_price - p.current_price) / p.entry_price * 100 if p.entry_price else 0.0
        if loss >= threshold:
            return Signal(
                title=f"{_fmt(threshold)}% Stop Loss Triggered",
                message=f"{p.symbol} down {loss:.2f}% from entry",
                symbol=p.symbol,
                current_value=loss,
                target_value=threshold,
                severity=Severity.HIGH,
            )
    return None


def dollar_loss(config, positions, ctx):
    threshold = abs(_num(config, "dollar_loss"))
    for p in _priced(positions):
        loss = (p.entry_price - p.current_price) * p.shares
        if loss >= threshold:
            return Signal(
                title=f"${_fmt(threshold)} Stop Loss Triggered",
                message=f"{p.symbol} loss: ${loss:.2f}",
                symbol=p.symbol,
                current_value=loss,
                target_value=threshold,
                severity=Severity.HIGH,
            )
    return None


def atr_stop(config, positions, ctx):
    multiplier = _num(config, "atr_multiplier", 2)
    for p in _priced(positions):
        df = ctx.history.get(p.symbol)
        if df is None or len(df) < 15:
            continue
        value = indicators.atr(df, 14)
        if math.isnan(value):
            continue
        level = p.entry_price - value * multiplier
        if p.current_price <= level:
            return Signal(
                title="ATR Stop Loss Triggered",
                message=f"{p.symbol} hit ATR stop at ${level:.2f}",
                symbol=p.symbol,
                current_value=p.current_price,
                target_value=level,
                severity=Severity.HIGH,
                metadata={"atr": value},
            )
    return None


def support_break(config, positions, ctx):
    level = _num(config, "support_level")
    for p in _priced(positions):
        if p.current_price <= level:
            return Signal(
                title="Support Level Broken",
                message=f"{p.symbol} broke support at ${_fmt(level)}",
                symbol=p.symbol,
                current_value=p.current_price,
                target_value=level,
                severity=Severity.HIGH,
            )
    return None


def ma_stop(config, positions, ctx):
    period = int(_num(config, "ma_period", 20))
    for p in _priced(positions):
        closes = ctx.closes(p.symbol, period)
        if closes is None:
            continue
        ma = indicators.sma(closes, period)
        if p.current_price <= ma and p.current_price <= p.entry_price:
            return Signal(
                title="MA Stop Loss Triggered",
                message=f"{p.symbol} below {period}-period MA stop",
                symbol=p.symbol,
                current_value=p.current_price,
                target_value=ma,
                severity=Severity.HIGH,
            )
    return None


def position_size_risk(config, positions, ctx):
    max_pct = _num(config, "max_position_percent", 10)
    total = _market_value(positions)
    if total <= 0:
        return None
    for p in _priced(positions):
        pct = p.current_price * p.shares / total * 100
        if pct > max_pct:
            return Signal(
                title="Position Size Risk",
                message=f"{p.symbol} is {pct:.1f}% of portfolio (Max: {_fmt(max_pct)}%)",
                symbol=p.symbol,
                current_value=pct,
                target_value=max_pct,
                severity=Severity.MEDIUM,
            )
    return None


def portfolio_heat(config, positions, ctx):
    max_heat = _num(config, "portfolio_heat")
    total = _market_value(positions)
    if total <= 0:
        return None
    risk = sum(max(0.0, (p.entry_price - p.stop_loss) * p.shares) for p in positions if p.current_price)
    heat = risk / total * 100
    if heat > max_heat:
        return Signal(
            title="Portfolio Heat Warning",
            message=f"Portfolio risk at {heat:.2f}% (Max: {_fmt(max_heat)}%)",
            current_value=heat,
            target_value=max_heat,
            severity=Severity.HIGH,
        )
    return None


def margin_call_risk(config, positions, ctx):
    threshold = _num(config, "margin_risk", 25)
    for p in positions:
        if not p.current_price or p.margin_used == 0 or p.shares <= 0:
            continue
        value = p.current_price * p.shares
        equity_pct = (value - p.margin_used) / value * 100
        if equity_pct <= threshold:
            return Signal(
                title="Margin Call Risk",
                message=f"{p.symbol} margin equity at {equity_pct:.2f}%",
                symbol=p.symbol,
                current_value=equity_pct,
                target_value=threshold,
                severity=Severity.CRITICAL,
            )
    return None


def correlation_risk(config, positions, ctx):
    """Any pair of held symbols whose daily returns move together too closely."""
    max_corr = _num(config, "max_correlation", 0.7)
    closes = {}
    for p in positions:
        series = ctx.closes(p.symbol, 21)
        if series is not None:
            closes[p.symbol] = series
    corr = indicators.return_correlations(closes)
    pairs = indicators.pairwise_values(corr)
    if not pairs:
        return None
    highest = max(pairs)
    if highest > max_corr:
        return Signal(
            title="High Correlation Risk",
            message=f"Portfolio correlation risk at {highest * 100:.1f}%",
            current_value=highest,
            target_value=max_corr,
            severity=Severity.MEDIUM,
        )
    return None


# --- Time based ---

def holding_period(config, positions, ctx):
    target = _num(config, "holding_days")
    for p in positions:
        if not p.is_active:
            continue
        days = _holding_days(p, ctx.now)
        if days >= target:
            return Signal(
                title="Holding Period Review",
                message=f"{p.symbol} held for {days} days",
                symbol=p.symbol,
                current_value=days,
                target_value=target,
            )
    return None


def max_hold_time(config, positions, ctx):
    max_days = _num(config, "max_days", 30)
    for p in positions:
        if not p.is_active:
            continue
        days = _holding_days(p, ctx.now)
        if days >= max_days:
            return Signal(
                title="Maximum Hold Time Exceeded",
                message=f"{p.symbol} held for {days} days (Max: {_fmt(max_days)})",
                symbol=p.symbol,
                current_value=days,
                target_value=max_days,
                severity=Severity.MEDIUM,
            )
    return None


def end_of_day(config, positions, ctx):
    local = ctx.now.astimezone(ZoneInfo(ctx.timezone))
    close = datetime.combine(local.date(), MARKET_CLOSE, tzinfo=local.tzinfo)
    minutes = (close - local) / timedelta(minutes=1)
    if not 0 < minutes <= END_OF_DAY_WINDOW_MINUTES:
        return None
    active = [p for p in positions if p.is_active]
    if not active:
        return None
    return Signal(
        title="End of Day Position Review",
        message=f"Market closes in {round(minutes)} minutes. {len(active)} active positions.",
        current_value=minutes,
        target_value=END_OF_DAY_WINDOW_MINUTES,
    )


def weekend_risk(config, positions, ctx):
    local = ctx.now.astimezone(ZoneInfo(ctx.timezone))
    if local.weekday() != 4:
        return None
    active = [p for p in positions if p.is_active]
    if not active:
        return None
    return Signal(
        title="Weekend Risk Warning",
        message=f"{len(active)} positions will be held over weekend",
        current_value=len(active),
        target_value=0,
        severity=Severity.LOW,
    )


# --- Technical ---

def _rsi(config, positions, ctx, overbought: bool):
    threshold = _num(config, "rsi_threshold", RSI_OVERBOUGHT if overbought else RSI_OVERSOLD)
    for p in positions:
        closes = ctx.closes(p.symbol, 15)
        if closes is None:
            continue
        value = indicators.rsi(closes, 14)
        if math.isnan(value):
            continue
        if overbought and value >= threshold:
            return Signal(
                title="RSI Overbought",
                message=f"{p.symbol} RSI: {value:.2f} (Overbought at {_fmt(threshold)})",
                symbol=p.symbol, current_value=value, target_value=threshold,
            )
        if not overbought and value <= threshold:
            return Signal(
                title="RSI Oversold",
                message=f"{p.symbol} RSI: {value:.2f} (Oversold at {_fmt(threshold)})",
                symbol=p.symbol, current_value=value, target_value=threshold,
            )
    return None


def rsi_overbought(config, positions, ctx):
    return _rsi(config, positions, ctx, overbought=True)


def rsi_oversold(config, positions, ctx):
    return _rsi(config, positions, ctx, overbought=False)


def macd_cross(config, positions, ctx):
    for p in _priced(positions):
        closes = ctx.closes(p.symbol, 35)
        if closes is None:
            continue
        line, signal = indicators.macd_series(closes)
        if indicators.crossed_above(line, signal):
            return Signal(
                title="MACD Bullish Cross",
                message=f"{p.symbol} MACD crossed above signal line",
                symbol=p.symbol,
                current_value=float(line.iloc[-1]),
                target_value=float(signal.iloc[-1]),
            )
    return None


def ma_cross(config, positions, ctx):
    short = int(_num(config, "short_period", 50))
    long = int(_num(config, "long_period", 200))
    for p in _priced(positions):
        closes = ctx.closes(p.symbol, long + 1)
        if closes is None:
            continue
        if indicators.ma_cross(closes, short, long):
            short_ma = indicators.sma(closes, short)
            return Signal(
                title="MA Golden Cross",
                message=f"{p.symbol} moving averages crossed bullishly",
                symbol=p.symbol,
                current_value=p.current_price,
                target_value=short_ma,
            )
    return None


def bollinger_signal(config, positions, ctx):
    for p in _priced(positions):
        closes = ctx.closes(p.symbol, 20)
        if closes is None:
            continue
        upper, _, _ = indicators.bollinger_bands(closes, 20, 2.0)
        if p.current_price >= upper:
            return Signal(
                title="Bollinger Upper Band Hit",
                message=f"{p.symbol} touched upper Bollinger Band",
                symbol=p.symbol,
                current_value=p.current_price,
                target_value=upper,
            )
    return None


# --- Volume ---

def _volume_ratio(ctx: EvalContext, symbol: str) -> float | None:
    quote = ctx.quotes.get(symbol)
    if not quote or not quote.average_volume:
        return None
    return quote.volume / quote.average_volume


def volume_spike(config, positions, ctx):
    multiplier = _num(config, "volume_multiplier", 2)
    for p in positions:
        ratio = _volume_ratio(ctx, p.symbol)
        if ratio is not None and ratio >= multiplier:
            return Signal(
                title="Volume Spike Alert",
                message=f"{p.symbol} volume {ratio:.1f}x average",
                symbol=p.symbol,
                current_value=ratio,
                target_value=multiplier,
            )
    return None


def volume_dryup(config, positions, ctx):
    threshold = _num(config, "volume_threshold", 0.5)
    for p in positions:
        ratio = _volume_ratio(ctx, p.symbol)
        if ratio is not None and ratio <= threshold:
            return Signal(
                title="Volume Dry-up Alert",
                message=f"{p.symbol} volume only {ratio * 100:.0f}% of average",
                symbol=p.symbol,
                current_value=ratio,
                target_value=threshold,
                severity=Severity.LOW,
            )
    return None


# --- Market conditions ---

def vix_spike(config, positions, ctx):
    if not ctx.market:
        return None
    threshold = _num(config, "vix_threshold", 25)
    if ctx.market.vix >= threshold:
        return Signal(
            title="VIX Spike Alert",
            message=f"VIX at {ctx.market.vix:.2f} (Threshold: {_fmt(threshold)})",
            symbol="VIX",
            current_value=ctx.market.vix,
            target_value=threshold,
            severity=Severity.HIGH,
        )
    return None


def volatility_expansion(config, positions, ctx):
    if not ctx.market:
        return None
    threshold = _num(config, "volatility_threshold", 20)
    if ctx.market.volatility_regime == "high":
        return Signal(
            title="Volatility Expansion Alert",
            message="Market volatility has expanded significantly",
            current_value=ctx.market.vix,
            target_value=threshold,
            severity=Severity.MEDIUM,
        )
    return None


def market_regime_change(config, positions, ctx):
    if not ctx.market:
        return None
    if ctx.market.market_trend != "bullish":
        return Signal(
            title="Market Regime Change",
            message=f"Market trend changed to {ctx.market.market_trend}",
            current_value=1,
            target_value=0,
            severity=Severity.MEDIUM,
        )
    return None


# --- Advanced risk ---

def max_drawdown(config, positions, ctx):
    max_dd = _num(config, "max_drawdown", 10)
    cost = sum(p.entry_price * p.shares for p in positions)
    if cost <= 0:
        return None
    drawdown = (cost - _market_value(positions)) / cost * 100
    if drawdown >= max_dd:
        return Signal(
            title="Maximum Drawdown Alert",
            message=f"Portfolio drawdown: {drawdown:.2f}% (Max: {_fmt(max_dd)}%)",
            current_value=drawdown,
            target_value=max_dd,
            severity=Severity.CRITICAL,
        )
    return None


def portfolio_correlation(config, positions, ctx):
    """Average pairwise return correlation across held symbols."""
    max_corr = _num(config, "max_correlation", 0.8)
    closes = {}
    for p in positions:
        series = ctx.closes(p.symbol, 21)
        if series is not None:
            closes[p.symbol] = series
    pairs = indicators.pairwise_values(indicators.return_correlations(closes))
    if not pairs:
        return None
    average = sum(pairs) / len(pairs)
    if average > max_corr:
        return Signal(
            title="High Portfolio Correlation",
            message=f"Portfolio correlation estimated at {average * 100:.0f}%",
            current_value=average,
            target_value=max_corr,
            severity=Severity.MEDIUM,
        )
    return None


EVALUATORS: dict[AlertType, Evaluator] = {
    AlertType.PERCENTAGE_GAIN: percentage_gain,
    AlertType.DOLLAR_PROFIT: dollar_profit,
    AlertType.RISK_REWARD_RATIO: risk_reward_ratio,
    AlertType.PRICE_TARGET: price_target,
    AlertType.RESISTANCE_BREACH: resistance_breach,
    AlertType.ROUND_NUMBER: round_number,
    AlertType.TRAILING_STOP: trailing_stop,
    AlertType.FIBONACCI_PROFIT: fibonacci_profit,
    AlertType.MA_PROFIT: ma_profit,
    AlertType.PERCENTAGE_LOSS: percentage_loss,
    AlertType.DOLLAR_LOSS: dollar_loss,
    AlertType.ATR_STOP: atr_stop,
    AlertType.SUPPORT_BREAK: support_break,
    AlertType.MA_STOP: ma_stop,
    AlertType.POSITION_SIZE_RISK: position_size_risk,
    AlertType.PORTFOLIO_HEAT: portfolio_heat,
    AlertType.MARGIN_CALL_RISK: margin_call_risk,
    AlertType.CORRELATION_RISK: correlation_risk,
    AlertType.HOLDING_PERIOD: holding_period,
    AlertType.END_OF_DAY: end_of_day,
    AlertType.MAX_HOLD_TIME: max_hold_time,
    AlertType.WEEKEND_RISK: weekend_risk,
    AlertType.RSI_OVERBOUGHT: rsi_overbought,
    AlertType.RSI_OVERSOLD: rsi_oversold,
    AlertType.MACD_CROSS: macd_cross,
    AlertType.MA_CROSS: ma_cross,
    AlertType.BOLLINGER_SIGNAL: bollinger_signal,
    AlertType.VOLUME_SPIKE: volume_spike,
    AlertType.VOLUME_DRYUP: volume_dryup,
    AlertType.VIX_SPIKE: vix_spike,
    AlertType.VOLATILITY_EXPANSION: volatility_expansion,
    AlertType.MARKET_REGIME_CHANGE: market_regime_change,
    AlertType.MAX_DRAWDOWN: max_drawdown,
    AlertType.PORTFOLIO_CORRELATION: portfolio_correlation,
}

# Evaluated against every position regardless of the configuration's symbol
PORTFOLIO_WIDE: set[AlertType] = {
    AlertType.PORTFOLIO_HEAT, AlertType.CORRELATION_RISK,
    AlertType.MAX_DRAWDOWN, AlertType.PORTFOLIO_CORRELATION,
}

# Need daily history for each position's symbol
NEEDS_HISTORY: set[AlertType] = {
    AlertType.TRAILING_STOP, AlertType.MA_PROFIT, AlertType.ATR_STOP, AlertType.MA_STOP,
    AlertType.CORRELATION_RISK, AlertType.RSI_OVERBOUGHT, AlertType.RSI_OVERSOLD,
    AlertType.MACD_CROSS, AlertType.MA_CROSS, AlertType.BOLLINGER_SIGNAL,
    AlertType.PORTFOLIO_CORRELATION,
}

NEEDS_MARKET: set[AlertType] = {
    AlertType.VIX_SPIKE, AlertType.VOLATILITY_EXPANSION, AlertType.MARKET_REGIME_CHANGE,
}

# Computable from the daily bars already fetched (beta against the index); no trigger rule defined
HISTORY_ONLY_UNSUPPORTED: frozenset[AlertType] = frozenset({
    AlertType.STOCHASTIC_SIGNAL,
    AlertType.WILLIAMS_R,
    AlertType.CCI_EXTREME,
    AlertType.DONCHIAN_BREAK,
    AlertType.OBV_DIVERGENCE,
    AlertType.MFI_SIGNAL,
    AlertType.VWAP_ALERT,
    AlertType.ATR_EXPANSION,
    AlertType.PARABOLIC_SAR,
    AlertType.TREND_BREAK,
    AlertType.CHANNEL_BREAK,
    AlertType.SHARPE_DETERIORATION,
    AlertType.BETA_CHANGE,
    AlertType.VAR_BREACH,
    AlertType.EXPECTED_SHORTFALL,
})

# Configurations of these types are stored but never fire
UNSUPPORTED_TYPES: frozenset[AlertType] = HISTORY_ONLY_UNSUPPORTED | frozenset({
    AlertType.SECTOR_CONCENTRATION,
    AlertType.WEEKLY_REVIEW,
    AlertType.MONTHLY_REVIEW,
    AlertType.HOLIDAY_RISK,
    AlertType.EARNINGS_DATE,
    AlertType.IV_CHANGE,
    AlertType.SECTOR_ROTATION,
    AlertType.MARKET_BREADTH,
    AlertType.INDEX_DIVERGENCE,
    AlertType.EARNINGS_SURPRISE,
    AlertType.REVENUE_GROWTH,
    AlertType.INSIDER_TRADING,
    AlertType.ANALYST_RATING,
    AlertType.SHORT_INTEREST,
    AlertType.ECONOMIC_DATA,
    AlertType.FED_DECISION,
    AlertType.CURRENCY_MOVEMENT,
    AlertType.KELLY_CRITERION,
    AlertType.REVENGE_TRADING,
    AlertType.FOMO_WARNING,
    AlertType.OVERCONFIDENCE,
    AlertType.ANALYSIS_PARALYSIS,
})
