"""Alert text formatting for whale trades.

Plain-text renderings shared by the persisted alert rows and the log
stream, so both read the same way.
"""

from __future__ import annotations

from decimal import Decimal

from polymarket_whale_tracker.detector.models import AnomalyResult
from polymarket_whale_tracker.ingestor.models import TradeEvent


def truncate_address(address: str, chars: int = 4) -> str:
    """Truncate an Ethereum address to 0x1234...5678 format."""
    if len(address) < chars * 2 + 4:
        return address
    return f"{address[: chars + 2]}...{address[-chars:]}"


def _plain_usdc(amount: Decimal) -> str:
    return f"${amount:.2f}"


def format_alert_description(trade: TradeEvent, anomaly: AnomalyResult, market_title: str) -> str:
    """One-line alert description, e.g. ``HIGH whale alert: BUY $60000.00 on "Title"``."""
    return (
        f"{anomaly.severity.value} whale alert: {trade.side} "
        f'{_plain_usdc(trade.notional_value)} on "{market_title}"'
    )


def format_whale_log_line(trade: TradeEvent, anomaly: AnomalyResult, market_title: str) -> str:
    line = (
        f"[WHALE] {anomaly.severity.value} - {trade.side} {_plain_usdc(trade.notional_value)}"
        f' - Z:{anomaly.z_score:.2f} - "{market_title}"'
    )
    if trade.wallet_address:
        line += f" - {truncate_address(trade.wallet_address)}"
    return line
