"""Pytest fixtures for charge engine tests."""

from __future__ import annotations

from typing import Any

import pytest

from charge_engine.trade.channels.sandbox import SandboxPlatform
from charge_engine.trade.config import create_sandbox_config
from charge_engine.trade.events import DomainEvent, EventEmitter
from charge_engine.trade.gateway import TradeGateway
from charge_engine.trade.repositories import InMemoryTradeRepository
from charge_engine.trade.scheduler import InMemoryScheduler
from charge_engine.trade.types import ChannelType

SECRET = "test-secret-0123456789"
APP_ID = 1

# Extra parameters each channel requires at creation
EXTRAS: dict[ChannelType, dict[str, Any]] = {
    ChannelType.ALIPAY_WAP: {"return_url": "https://shop.example/return"},
    ChannelType.ALIPAY_PAGE: {"return_url": "https://shop.example/return"},
    ChannelType.ALIPAY_APP: {},
    ChannelType.UNIONPAY_WAP: {"front_url": "https://shop.example/front"},
    ChannelType.UNIONPAY_PC: {"front_url": "https://shop.example/front"},
}


@pytest.fixture
def sandbox() -> SandboxPlatform:
    return SandboxPlatform(secret=SECRET)


@pytest.fixture
def repository() -> InMemoryTradeRepository:
    return InMemoryTradeRepository()


@pytest.fixture
def scheduler() -> InMemoryScheduler:
    return InMemoryScheduler()


@pytest.fixture
def events() -> list[DomainEvent]:
    return []


@pytest.fixture
def emitter(events: list[DomainEvent]) -> EventEmitter:
    emitter = EventEmitter()
    emitter.on_all(events.append)
    return emitter


@pytest.fixture
def gateway(sandbox, repository, scheduler, emitter) -> TradeGateway:
    return TradeGateway.build(
        config=create_sandbox_config(SECRET, "https://engine.example"),
        repository=repository,
        scheduler=scheduler,
        client_for=lambda platform: sandbox,
        emitter=emitter,
    )


def event_types(events: list[DomainEvent]) -> list[str]:
    return [e.event_type for e in events]
