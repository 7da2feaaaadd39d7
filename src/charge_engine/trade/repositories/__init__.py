"""Charge and refund persistence."""

from charge_engine.trade.repositories.base import TradeRepository
from charge_engine.trade.repositories.memory import InMemoryTradeRepository
from charge_engine.trade.repositories.sql import SqlAlchemyTradeRepository

__all__ = [
    "TradeRepository",
    "InMemoryTradeRepository",
    "SqlAlchemyTradeRepository",
]
