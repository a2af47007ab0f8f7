"""Configuration loading — merges settings.toml and .env."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"


@dataclass
class PollingConfig:
    price_refresh_seconds: int = 300
    alert_evaluation_seconds: int = 30
    unified_view_seconds: int = 30


@dataclass
class MarketDataConfig:
    chart_url: str = "https://query1.finance.yahoo.com/v8/finance/chart"
    search_url: str = "https://query1.finance.yahoo.com/v1/finance/search"
    timeout_seconds: float = 15.0
    user_agent: str = "Mozilla/5.0 (compatible; marginwatch/1.0)"
    indicator_history_period: str = "6m"
    vix_symbol: str = "^VIX"
    index_symbol: str = "^GSPC"


@dataclass
class MarginConfig:
    gold_free_margin_usd: float = 1000.0
    maintenance_pct: float = 0.25


@dataclass
class AlertsConfig:
    dedupe_triggered: bool = True      # suppress re-trigger while the previous alert is unhandled
    retention_days: int = 7
    seed_defaults: bool = True


@dataclass
class ApiConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class Config:
    timezone: str = "America/New_York"
    log_level: str = "INFO"
    db_path: str = ""
    polling: PollingConfig = field(default_factory=PollingConfig)
    market_data: MarketDataConfig = field(default_factory=MarketDataConfig)
    margin: MarginConfig = field(default_factory=MarginConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    api: ApiConfig = field(default_factory=ApiConfig)


def load_config(config_dir: Path | None = None) -> Config:
    """Load configuration from settings.toml and environment variables."""
    config_dir = config_dir or CONFIG_DIR
    load_dotenv(PROJECT_ROOT / ".env")

    config = Config()
    config.db_path = str(PROJECT_ROOT / "data" / "marginwatch.db")

    settings_path = config_dir / "settings.toml"
    if settings_path.exists():
        with open(settings_path, "rb") as f:
            settings = tomllib.load(f)

        general = settings.get("general", {})
        config.timezone = general.get("timezone", config.timezone)
        config.log_level = general.get("log_level", config.log_level)
        config.db_path = general.get("db_path", config.db_path)

        polling = settings.get("polling", {})
        config.polling.price_refresh_seconds = polling.get("price_refresh_seconds", config.polling.price_refresh_seconds)
        config.polling.alert_evaluation_seconds = polling.get("alert_evaluation_seconds", config.polling.alert_evaluation_seconds)
        config.polling.unified_view_seconds = polling.get("unified_view_seconds", config.polling.unified_view_seconds)

        md = settings.get("market_data", {})
        config.market_data.chart_url = md.get("chart_url", config.market_data.chart_url)
        config.market_data.search_url = md.get("search_url", config.market_data.search_url)
        config.market_data.timeout_seconds = md.get("timeout_seconds", config.market_data.timeout_seconds)
        config.market_data.indicator_history_period = md.get("indicator_history_period", config.market_data.indicator_history_period)
        config.market_data.vix_symbol = md.get("vix_symbol", config.market_data.vix_symbol)
        config.market_data.index_symbol = md.get("index_symbol", config.market_data.index_symbol)

        margin = settings.get("margin", {})
        config.margin.gold_free_margin_usd = margin.get("gold_free_margin_usd", config.margin.gold_free_margin_usd)
        config.margin.maintenance_pct = margin.get("maintenance_pct", config.margin.maintenance_pct)

        alerts = settings.get("alerts", {})
        config.alerts.dedupe_triggered = alerts.get("dedupe_triggered", config.alerts.dedupe_triggered)
        config.alerts.retention_days = alerts.get("retention_days", config.alerts.retention_days)
        config.alerts.seed_defaults = alerts.get("seed_defaults", config.alerts.seed_defaults)

        api = settings.get("api", {})
        config.api.enabled = api.get("enabled", config.api.enabled)
        config.api.host = api.get("host", config.api.host)
        config.api.port = api.get("port", config.api.port)

    # Environment overrides
    config.db_path = os.getenv("MARGINWATCH_DB_PATH", config.db_path)
    config.log_level = os.getenv("LOG_LEVEL", config.log_level)
    config.market_data.user_agent = os.getenv("MARKET_DATA_USER_AGENT", config.market_data.user_agent)

    _validate_config(config)

    return config


def _validate_config(config: Config) -> None:
    """Validate config values are within sane ranges."""
    from zoneinfo import ZoneInfo

    errors = []

    if config.polling.price_refresh_seconds < 1:
        errors.append(f"price_refresh_seconds must be >= 1, got {config.polling.price_refresh_seconds}")
    if config.polling.alert_evaluation_seconds < 1:
        errors.append(f"alert_evaluation_seconds must be >= 1, got {config.polling.alert_evaluation_seconds}")
    if config.polling.unified_view_seconds < 1:
        errors.append(f"unified_view_seconds must be >= 1, got {config.polling.unified_view_seconds}")
    if config.market_data.timeout_seconds <= 0:
        errors.append(f"market_data.timeout_seconds must be > 0, got {config.market_data.timeout_seconds}")
    if config.market_data.indicator_history_period not in ("1m", "3m", "6m", "1y"):
        errors.append(f"indicator_history_period must be one of 1m/3m/6m/1y, got '{config.market_data.indicator_history_period}'")
    if config.margin.gold_free_margin_usd < 0:
        errors.append(f"gold_free_margin_usd must be >= 0, got {config.margin.gold_free_margin_usd}")
    if not (0 < config.margin.maintenance_pct < 1):
        errors.append(f"maintenance_pct must be 0-1, got {config.margin.maintenance_pct}")
    if config.alerts.retention_days < 1:
        errors.append(f"alerts.retention_days must be >= 1, got {config.alerts.retention_days}")
    if config.api.enabled and not (1 <= config.api.port <= 65535):
        errors.append(f"api.port must be 1-65535, got {config.api.port}")

    try:
        ZoneInfo(config.timezone)
    except (KeyError, Exception):
        errors.append(f"Invalid timezone: '{config.timezone}'")

    if errors:
        raise ValueError("Config validation failed:\n  " + "\n  ".join(errors))
