"""Storage layer - Database schemas and repositories."""

from polymarket_whale_tracker.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from polymarket_whale_tracker.storage.models import Base, WhaleAlertModel, WhaleTradeModel
from polymarket_whale_tracker.storage.repos import (
    WhaleAlertDTO,
    WhaleAlertRepository,
    WhaleTradeDTO,
    WhaleTradeRepository,
)
from polymarket_whale_tracker.storage.sink import TradeSink

__all__ = [
    "Base",
    "DatabaseManager",
    "TradeSink",
    "WhaleAlertDTO",
    "WhaleAlertModel",
    "WhaleAlertRepository",
    "WhaleTradeDTO",
    "WhaleTradeModel",
    "WhaleTradeRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
