"""Tests for history normalization, source fallback and the reduced-range retry."""

from unittest.mock import MagicMock

import pytest

from chains import TRANSFER_TOPIC
from clients import BlockscoutClient, ExplorerClient
from errors import NetworkError, RateLimitError, UpstreamUnavailable
from history import (
    KIND_INDEXER,
    KIND_SCAN,
    HistorySource,
    IndexerHistorySource,
    ScanHistorySource,
    TransactionHistoryProvider,
    normalize_all,
    normalize_indexer_token_transfer,
    normalize_indexer_transaction,
    normalize_scan_token_transfer,
    normalize_scan_transaction,
    pad_topic,
)
from metrics import aggregate
from tests.fixtures.common import JAN_1_2024, OTHER, OWNER, USDC_BASE, native_tx, usdc_transfer

SCAN_TX = {
    'hash': '0xaaa',
    'from': OWNER,
    'to': OTHER,
    'value': '1000000000000000000',
    'gasUsed': '21000',
    'gasPrice': '1000000000',
    'timeStamp': str(JAN_1_2024),
    'isError': '0',
}

SCAN_TOKEN_TX = {
    'hash': '0xbbb',
    'from': OTHER,
    'to': OWNER,
    'value': '2500000',
    'contractAddress': USDC_BASE.lower(),
    'tokenDecimal': '6',
    'gasUsed': '60000',
    'gasPrice': '1000000000',
    'timeStamp': str(JAN_1_2024),
}

INDEXER_TX = {
    'hash': '0xccc',
    'from': {'hash': OWNER},
    'to': {'hash': OTHER},
    'value': '500000000000000000',
    'gas_used': '21000',
    'gas_price': '2000000000',
    'timestamp': '2024-01-01T00:00:00.000000Z',
    'status': 'ok',
}

INDEXER_TOKEN_TX = {
    'transaction_hash': '0xddd',
    'from': {'hash': OWNER},
    'to': {'hash': OTHER},
    'total': {'value': '750000', 'decimals': '6'},
    'token': {'address_hash': USDC_BASE},
    'timestamp': '2024-01-01T00:00:00Z',
}


class StaticSource(HistorySource):
    def __init__(self, name, native=None, transfers=None, error=None):
        self.name = name
        self.native = native or []
        self.transfers = transfers or []
        self.error = error

    async def native_transactions(self, address):
        if self.error:
            raise self.error
        return self.native

    async def token_transfers(self, address, token_address):
        if self.error:
            raise self.error
        return self.transfers


def test_normalize_scan_transaction():
    record = normalize_scan_transaction(SCAN_TX)

    assert record.kind == KIND_SCAN
    assert record.value_wei == 10 ** 18
    assert record.gas_used == 21000
    assert record.gas_price_wei == 10 ** 9
    assert record.timestamp == JAN_1_2024
    assert record.logs == ()


def test_failed_scan_transaction_moves_no_value():
    record = normalize_scan_transaction({**SCAN_TX, 'isError': '1'})

    assert record.value_wei == 0
    assert record.gas_used == 21000


def test_contract_creation_has_no_recipient():
    assert normalize_scan_transaction({**SCAN_TX, 'to': ''}).to_address is None


def test_scan_token_transfer_becomes_transfer_log():
    record = normalize_scan_token_transfer(SCAN_TOKEN_TX)

    assert record.value_wei == 0
    assert len(record.logs) == 1
    log = record.logs[0]
    assert log.topics == (TRANSFER_TOPIC, pad_topic(OTHER), pad_topic(OWNER))
    assert int(log.data, 16) == 2_500_000
    assert aggregate([record], OWNER, USDC_BASE).usdc_in == '2.5'


def test_scan_token_transfer_carries_no_gas():
    record = normalize_scan_token_transfer({**SCAN_TOKEN_TX, 'from': OWNER, 'to': OTHER})

    assert record.gas_used is None
    assert record.gas_price_wei is None

    stats = aggregate([record], OWNER, USDC_BASE)
    assert stats.usdc_out == '2.5'
    assert stats.gas_wei == 0
    assert stats.outgoing_count == 0


def test_normalize_indexer_transaction():
    record = normalize_indexer_transaction(INDEXER_TX)

    assert record.kind == KIND_INDEXER
    assert record.from_address == OWNER
    assert record.to_address == OTHER
    assert record.value_wei == 5 * 10 ** 17
    assert record.timestamp == JAN_1_2024


def test_indexer_contract_creation_and_failure():
    record = normalize_indexer_transaction({**INDEXER_TX, 'to': None, 'status': 'error'})

    assert record.to_address is None
    assert record.value_wei == 0


def test_normalize_indexer_token_transfer():
    record = normalize_indexer_token_transfer(INDEXER_TOKEN_TX)

    assert record.hash == '0xddd'
    assert record.gas_used is None
    assert aggregate([record], OWNER, USDC_BASE).usdc_out == '0.75'


def test_normalize_all_skips_malformed_entries():
    records = normalize_all([SCAN_TX, {'hash': '0xbad'}, {**SCAN_TX, 'value': 'oops'}],
                            normalize_scan_transaction, 'txlist')

    assert [r.hash for r in records] == ['0xaaa']


async def test_scan_source_retries_once_with_reduced_range():
    explorer = MagicMock(spec=ExplorerClient)
    explorer.get_transactions.side_effect = [NetworkError('timeout'), [SCAN_TX]]
    explorer.get_block_number.return_value = 12_000_000
    source = ScanHistorySource(explorer, retry_block_window=5_000_000)

    records = await source.native_transactions(OWNER)

    assert [r.hash for r in records] == ['0xaaa']
    assert explorer.get_transactions.await_count == 2
    explorer.get_transactions.assert_awaited_with(OWNER, start_block=7_000_000, end_block=12_000_000)


async def test_scan_source_does_not_retry_empty_results():
    explorer = MagicMock(spec=ExplorerClient)
    explorer.get_token_transfers.return_value = []
    source = ScanHistorySource(explorer)

    records = await source.token_transfers(OWNER, USDC_BASE)

    assert records == []
    assert explorer.get_token_transfers.await_count == 1
    explorer.get_block_number.assert_not_awaited()


async def test_scan_source_gives_up_after_one_retry():
    explorer = MagicMock(spec=ExplorerClient)
    explorer.get_transactions.side_effect = NetworkError('down')
    explorer.get_block_number.return_value = 100
    source = ScanHistorySource(explorer)

    with pytest.raises(NetworkError):
        await source.native_transactions(OWNER)
    assert explorer.get_transactions.await_count == 2


async def test_indexer_source_normalizes_items():
    client = MagicMock(spec=BlockscoutClient)
    client.get_transactions.return_value = [INDEXER_TX]
    client.get_token_transfers.return_value = [INDEXER_TOKEN_TX]
    source = IndexerHistorySource(client)

    native = await source.native_transactions(OWNER)
    transfers = await source.token_transfers(OWNER, USDC_BASE)

    assert [r.hash for r in native + transfers] == ['0xccc', '0xddd']
    client.get_token_transfers.assert_awaited_once_with(OWNER, USDC_BASE)


async def test_provider_merges_native_and_token_records():
    native = [native_tx('0x01', OWNER, OTHER)]
    transfers = [usdc_transfer('0x02', OTHER, OWNER, 5)]
    provider = TransactionHistoryProvider([StaticSource('scan', native, transfers)], USDC_BASE)

    history = await provider.fetch_history(OWNER)

    assert [r.hash for r in history] == ['0x01', '0x02']


async def test_provider_falls_back_to_next_source():
    failing = StaticSource('scan', error=UpstreamUnavailable('NOTOK'))
    fallback = StaticSource('indexer', [native_tx('0x09', OWNER, OTHER)])
    provider = TransactionHistoryProvider([failing, fallback], USDC_BASE)

    history = await provider.fetch_history(OWNER)

    assert [r.hash for r in history] == ['0x09']


async def test_provider_keeps_the_half_that_succeeded():
    class TokenOnlyFails(StaticSource):
        async def token_transfers(self, address, token_address):
            raise NetworkError('tokentx down')

    provider = TransactionHistoryProvider(
        [TokenOnlyFails('scan', [native_tx('0x01', OWNER, OTHER)])],
        USDC_BASE
    )

    history = await provider.fetch_history(OWNER)

    assert [r.hash for r in history] == ['0x01']


async def test_provider_returns_empty_when_everything_fails():
    provider = TransactionHistoryProvider(
        [StaticSource('scan', error=NetworkError('down')), StaticSource('indexer', error=RuntimeError('bug'))],
        USDC_BASE
    )

    assert await provider.fetch_history(OWNER) == []


async def test_scan_source_does_not_retry_rate_limits():
    explorer = MagicMock(spec=ExplorerClient)
    explorer.get_transactions.side_effect = RateLimitError('Max rate limit reached')
    source = ScanHistorySource(explorer)

    with pytest.raises(RateLimitError):
        await source.native_transactions(OWNER)
    assert explorer.get_transactions.await_count == 1
    explorer.get_block_number.assert_not_awaited()
