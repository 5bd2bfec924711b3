"""Alert delivery layer - Formatting and live broadcast."""

from polymarket_whale_tracker.alerter.broadcast import RedisBroadcaster
from polymarket_whale_tracker.alerter.formatter import (
    format_alert_description,
    format_whale_log_line,
)

__all__ = [
    "RedisBroadcaster",
    "format_alert_description",
    "format_whale_log_line",
]
