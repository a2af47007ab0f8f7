"""Data contract — the records shared by tracking, alerting and the API.

Plain dataclasses with explicit JSON round-tripping. Timestamps are ISO-8601
strings (UTC) so records can be persisted and served without conversion.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


# --- Enums ---

class PositionStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    STOPPED = "stopped"
    EXPIRED = "expired"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(Enum):
    ACTIVE = "active"
    TRIGGERED = "triggered"
    ACKNOWLEDGED = "acknowledged"
    DISMISSED = "dismissed"
    EXPIRED = "expired"  # never produced by evaluation


class RiskAlertType(Enum):
    SUDDEN_LOSS = "sudden_loss"
    HIGH_VOLATILITY = "high_volatility"
    MARGIN_RISK = "margin_risk"
    PROFIT_DECLINE = "profit_decline"


class AlertCategory(Enum):
    PROFIT_TAKING = "profit_taking"
    STOP_LOSS = "stop_loss"
    TIME_BASED = "time_based"
    TECHNICAL = "technical"
    VOLUME = "volume"
    MARKET_CONDITION = "market_condition"
    FUNDAMENTAL = "fundamental"
    ADVANCED_RISK = "advanced_risk"
    BEHAVIORAL = "behavioral"


class AlertType(Enum):
    # Profit-taking
    PERCENTAGE_GAIN = "percentage_gain"
    DOLLAR_PROFIT = "dollar_profit"
    RISK_REWARD_RATIO = "risk_reward_ratio"
    PRICE_TARGET = "price_target"
    RESISTANCE_BREACH = "resistance_breach"
    ROUND_NUMBER = "round_number"
    TRAILING_STOP = "trailing_stop"
    PARABOLIC_SAR = "parabolic_sar"
    FIBONACCI_PROFIT = "fibonacci_profit"
    MA_PROFIT = "ma_profit"

    # Position closing
    PERCENTAGE_LOSS = "percentage_loss"
    DOLLAR_LOSS = "dollar_loss"
    ATR_STOP = "atr_stop"
    SUPPORT_BREAK = "support_break"
    MA_STOP = "ma_stop"
    POSITION_SIZE_RISK = "position_size_risk"
    PORTFOLIO_HEAT = "portfolio_heat"
    MARGIN_CALL_RISK = "margin_call_risk"
    CORRELATION_RISK = "correlation_risk"
    SECTOR_CONCENTRATION = "sector_concentration"

    # Time-based
    HOLDING_PERIOD = "holding_period"
    END_OF_DAY = "end_of_day"
    WEEKLY_REVIEW = "weekly_review"
    MONTHLY_REVIEW = "monthly_review"
    MAX_HOLD_TIME = "max_hold_time"
    WEEKEND_RISK = "weekend_risk"
    HOLIDAY_RISK = "holiday_risk"
    EARNINGS_DATE = "earnings_date"

    # Technical indicators
    RSI_OVERBOUGHT = "rsi_overbought"
    RSI_OVERSOLD = "rsi_oversold"
    MACD_CROSS = "macd_cross"
    STOCHASTIC_SIGNAL = "stochastic_signal"
    WILLIAMS_R = "williams_r"
    CCI_EXTREME = "cci_extreme"
    MA_CROSS = "ma_cross"
    TREND_BREAK = "trend_break"
    CHANNEL_BREAK = "channel_break"
    BOLLINGER_SIGNAL = "bollinger_signal"
    DONCHIAN_BREAK = "donchian_break"

    # Volume
    VOLUME_SPIKE = "volume_spike"
    VOLUME_DRYUP = "volume_dryup"
    OBV_DIVERGENCE = "obv_divergence"
    MFI_SIGNAL = "mfi_signal"
    VWAP_ALERT = "vwap_alert"

    # Market conditions
    VIX_SPIKE = "vix_spike"
    VOLATILITY_EXPANSION = "volatility_expansion"
    IV_CHANGE = "iv_change"
    ATR_EXPANSION = "atr_expansion"
    MARKET_REGIME_CHANGE = "market_regime_change"
    SECTOR_ROTATION = "sector_rotation"
    MARKET_BREADTH = "market_breadth"
    INDEX_DIVERGENCE = "index_divergence"

    # Fundamental & news
    EARNINGS_SURPRISE = "earnings_surprise"
    REVENUE_GROWTH = "revenue_growth"
    INSIDER_TRADING = "insider_trading"
    ANALYST_RATING = "analyst_rating"
    SHORT_INTEREST = "short_interest"
    ECONOMIC_DATA = "economic_data"
    FED_DECISION = "fed_decision"
    CURRENCY_MOVEMENT = "currency_movement"

    # Advanced risk
    MAX_DRAWDOWN = "max_drawdown"
    SHARPE_DETERIORATION = "sharpe_deterioration"
    BETA_CHANGE = "beta_change"
    VAR_BREACH = "var_breach"
    EXPECTED_SHORTFALL = "expected_shortfall"
    KELLY_CRITERION = "kelly_criterion"
    PORTFOLIO_CORRELATION = "portfolio_correlation"

    # Behavioral
    REVENGE_TRADING = "revenge_trading"
    FOMO_WARNING = "fomo_warning"
    OVERCONFIDENCE = "overconfidence"
    ANALYSIS_PARALYSIS = "analysis_paralysis"


def _category_map() -> dict[AlertType, AlertCategory]:
    groups = {
        AlertCategory.PROFIT_TAKING: "percentage_gain dollar_profit risk_reward_ratio price_target "
                                     "resistance_breach round_number trailing_stop parabolic_sar "
                                     "fibonacci_profit ma_profit",
        AlertCategory.STOP_LOSS: "percentage_loss dollar_loss atr_stop support_break ma_stop "
                                 "position_size_risk portfolio_heat margin_call_risk "
                                 "correlation_risk sector_concentration",
        AlertCategory.TIME_BASED: "holding_period end_of_day weekly_review monthly_review "
                                  "max_hold_time weekend_risk holiday_risk earnings_date",
        AlertCategory.TECHNICAL: "rsi_overbought rsi_oversold macd_cross stochastic_signal williams_r "
                                 "cci_extreme ma_cross trend_break channel_break bollinger_signal "
                                 "donchian_break",
        AlertCategory.VOLUME: "volume_spike volume_dryup obv_divergence mfi_signal vwap_alert",
        AlertCategory.MARKET_CONDITION: "vix_spike volatility_expansion iv_change atr_expansion "
                                        "market_regime_change sector_rotation market_breadth "
                                        "index_divergence",
        AlertCategory.FUNDAMENTAL: "earnings_surprise revenue_growth insider_trading analyst_rating "
                                   "short_interest economic_data fed_decision currency_movement",
        AlertCategory.ADVANCED_RISK: "max_drawdown sharpe_deterioration beta_change var_breach "
                                     "expected_shortfall kelly_criterion portfolio_correlation",
        AlertCategory.BEHAVIORAL: "revenge_trading fomo_warning overconfidence analysis_paralysis",
    }
    return {AlertType(name): cat for cat, names in groups.items() for name in names.split()}


ALERT_CATEGORIES: dict[AlertType, AlertCategory] = _category_map()


def alert_category(alert_type: AlertType) -> AlertCategory:
    return ALERT_CATEGORIES[alert_type]


# --- Helpers ---

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_ts(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp; naive values are treated as UTC."""
    if value is None or value == "":
        return None
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_plain(value: Any) -> Any:
    """Convert enums (recursively) to their values for JSON."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if is_dataclass(value) and not isinstance(value, type):
        return to_plain(asdict(value))
    return value


def to_dict(record: Any) -> dict:
    return to_plain(asdict(record))


def _known(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


# --- Position records ---

@dataclass
class DailyUpdate:
    date: str               # YYYY-MM-DD (UTC)
    price: float
    profit: float           # gross, before interest
    loss: float             # abs(gross) when gross < 0
    total_interest: float
    roi: float
    margin_call_risk: bool

    @classmethod
    def from_dict(cls, data: dict) -> DailyUpdate:
        return cls(**_known(cls, data))


@dataclass
class RiskAlert:
    id: str
    type: RiskAlertType
    severity: Severity
    message: str
    timestamp: str
    acknowledged: bool = False
    acknowledged_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> RiskAlert:
        data = _known(cls, data)
        data["type"] = RiskAlertType(data["type"])
        data["severity"] = Severity(data["severity"])
        return cls(**data)


@dataclass
class TrackedPosition:
    id: str
    symbol: str
    stock_name: str
    entry_price: float
    exit_price: float
    stop_loss: float
    shares: float
    investment_amount: float
    margin_used: float
    own_cash: float
    margin_ratio: float
    trade_duration: int
    is_gold_subscriber: bool
    entry_date: str
    expiration_date: Optional[str] = None
    status: PositionStatus = PositionStatus.ACTIVE
    daily_updates: list[DailyUpdate] = field(default_factory=list)
    risk_alerts: list[RiskAlert] = field(default_factory=list)
    current_price: Optional[float] = None
    current_profit: Optional[float] = None
    current_roi: Optional[float] = None
    days_elapsed: Optional[int] = None
    total_interest_paid: Optional[float] = None
    last_risk_check: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == PositionStatus.ACTIVE

    def to_dict(self) -> dict:
        return to_dict(self)

    @classmethod
    def from_dict(cls, data: dict) -> TrackedPosition:
        data = _known(cls, data)
        data["status"] = PositionStatus(data.get("status", "active"))
        data["daily_updates"] = [
            u if isinstance(u, DailyUpdate) else DailyUpdate.from_dict(u)
            for u in data.get("daily_updates") or []
        ]
        data["risk_alerts"] = [
            a if isinstance(a, RiskAlert) else RiskAlert.from_dict(a)
            for a in data.get("risk_alerts") or []
        ]
        return cls(**data)


# --- Alert records ---

@dataclass
class AlertCondition:
    field: str
    operator: str = ">="     # >, <, >=, <=, ==, !=, crosses_above, crosses_below
    value: float | str = 0
    timeframe: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> AlertCondition:
        return cls(**_known(cls, data))


@dataclass
class AlertConfiguration:
    id: str
    type: AlertType
    name: str
    description: str = ""
    conditions: list[AlertCondition] = field(default_factory=list)
    severity: Severity = Severity.MEDIUM
    enabled: bool = True
    created_at: str = ""
    symbol: Optional[str] = None
    triggered_at: Optional[str] = None
    last_checked: Optional[str] = None
    repeat_interval: Optional[int] = None   # minutes, stored only
    expires_at: Optional[str] = None
    sound_enabled: bool = True
    email_enabled: bool = False
    push_enabled: bool = True
    webhook_url: Optional[str] = None

    def condition_value(self, field_name: str, default: float | str = 0) -> float | str:
        """Threshold for a condition field; missing or zero values fall back to default."""
        for cond in self.conditions:
            if cond.field == field_name:
                return cond.value or default
        return default

    def to_dict(self) -> dict:
        return to_dict(self)

    @classmethod
    def from_dict(cls, data: dict) -> AlertConfiguration:
        data = _known(cls, data)
        data["type"] = AlertType(data["type"])
        data["severity"] = Severity(data.get("severity", "medium"))
        data["conditions"] = [
            c if isinstance(c, AlertCondition) else AlertCondition.from_dict(c)
            for c in data.get("conditions") or []
        ]
        return cls(**data)


@dataclass
class TriggeredAlert:
    id: str
    alert_id: str
    type: AlertType
    title: str
    message: str
    severity: Severity
    triggered_at: str
    status: AlertStatus = AlertStatus.TRIGGERED
    symbol: Optional[str] = None
    acknowledged_at: Optional[str] = None
    dismissed_at: Optional[str] = None
    current_value: Optional[float] = None
    target_value: Optional[float] = None
    metadata: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict:
        return to_dict(self)

    @classmethod
    def from_dict(cls, data: dict) -> TriggeredAlert:
        data = _known(cls, data)
        data["type"] = AlertType(data["type"])
        data["severity"] = Severity(data["severity"])
        data["status"] = AlertStatus(data.get("status", "triggered"))
        return cls(**data)


@dataclass(frozen=True)
class UnifiedAlert:
    id: str
    type: str               # "trading" or "risk"
    source: str             # "alert_engine" or "tracking_service"
    title: str
    message: str
    severity: Severity
    status: AlertStatus
    triggered_at: str
    symbol: Optional[str] = None
    acknowledged_at: Optional[str] = None
    dismissed_at: Optional[str] = None
    current_value: Optional[float] = None
    target_value: Optional[float] = None
    metadata: Optional[dict[str, Any]] = None
    alert_id: Optional[str] = None
    entry_id: Optional[str] = None
    risk_type: Optional[str] = None

    def to_dict(self) -> dict:
        return to_dict(self)


# --- Market data ---

@dataclass(frozen=True)
class StockQuote:
    symbol: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: float = 0.0
    market_cap: float = 0.0
    fifty_two_week_low: float = 0.0
    fifty_two_week_high: float = 0.0
    average_volume: float = 0.0
    short_name: str = ""
    long_name: Optional[str] = None
    trailing_pe: Optional[float] = None
    forward_pe: Optional[float] = None
    dividend_yield: Optional[float] = None
    beta: Optional[float] = None


@dataclass(frozen=True)
class SearchResult:
    symbol: str
    name: str
    type: str


@dataclass(frozen=True)
class MarketConditions:
    vix: float
    sp500_price: float
    sp500_change: float
    volatility_regime: str  # "low", "medium", "high"
    market_trend: str       # "bullish", "bearish", "sideways"
