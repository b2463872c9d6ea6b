"""Shared fixtures and record builders for the test suite."""

from unittest.mock import MagicMock

import pytest

from chains import get_chain_adapter
from clients import ExplorerClient
from config import Settings
from history import KIND_SCAN, RawTransactionRecord, TransactionHistoryProvider, transfer_log
from identity import IdentityResolver, NameServiceReader
from prices import PriceOracle

OWNER = '0x1b958a48373109e9146a950a75f5bd25b845143b'
OTHER = '0x2222222222222222222222222222222222222222'
ROUTER = '0x3333333333333333333333333333333333333333'
RESOLVER = '0x4444444444444444444444444444444444444444'
VITALIK = '0xd8da6bf26964af9d7eed9e03e53415d37aa96045'
USDC_BASE = '0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913'

ETH = 10 ** 18
JAN_1_2024 = 1704067200  # 2024-01-01T00:00:00Z


def native_tx(tx_hash, sender, recipient, value=0, gas_used=21000, gas_price=10 ** 9, timestamp=JAN_1_2024):
    return RawTransactionRecord(
        kind=KIND_SCAN,
        hash=tx_hash,
        from_address=sender,
        to_address=recipient,
        value_wei=value,
        gas_used=gas_used,
        gas_price_wei=gas_price,
        timestamp=timestamp,
    )


def usdc_transfer(tx_hash, sender, recipient, amount, token=USDC_BASE, gas_used=None, gas_price=None,
                  timestamp=JAN_1_2024):
    return RawTransactionRecord(
        kind=KIND_SCAN,
        hash=tx_hash,
        from_address=sender,
        to_address=recipient,
        value_wei=0,
        gas_used=gas_used,
        gas_price_wei=gas_price,
        timestamp=timestamp,
        logs=(transfer_log(token, sender, recipient, amount),),
    )


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def base_adapter(settings):
    return get_chain_adapter('base', settings)


@pytest.fixture
def ethereum_adapter(settings):
    return get_chain_adapter('ethereum', settings)


@pytest.fixture
def optimism_adapter(settings):
    return get_chain_adapter('optimism', settings)


@pytest.fixture
def mock_reader():
    return MagicMock(spec=NameServiceReader)


@pytest.fixture
def mock_explorer():
    explorer = MagicMock(spec=ExplorerClient)
    explorer.get_transaction_count.return_value = 3
    return explorer


@pytest.fixture
def mock_history_provider():
    provider = MagicMock(spec=TransactionHistoryProvider)
    provider.fetch_history.return_value = []
    return provider


@pytest.fixture
def mock_price_oracle():
    oracle = MagicMock(spec=PriceOracle)
    prices = {'ETH': 2000.0, 'USDC': 1.0}

    async def get_price(symbol):
        return prices[symbol]

    oracle.get_price.side_effect = get_price
    oracle.default_price.side_effect = lambda symbol: prices.get(symbol, 0.0)
    return oracle


@pytest.fixture
def base_resolver(base_adapter):
    return IdentityResolver(base_adapter)
