import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple

from chains import TRANSFER_TOPIC
from clients import BlockscoutClient, ExplorerClient
from errors import RateLimitError

logger = logging.getLogger(__name__)

KIND_SCAN = 'scan'
KIND_INDEXER = 'indexer'


@dataclass(frozen=True)
class LogEntry:
    address: str
    topics: Tuple[str, ...]
    data: str


@dataclass(frozen=True)
class RawTransactionRecord:
    """A transaction line normalized from either upstream source.

    ``kind`` records where the line came from. Consumers must not branch on it:
    every source produces the same fields, with token transfers expressed as a
    synthesized ERC-20 Transfer log.
    """
    kind: str
    hash: str
    from_address: str
    to_address: Optional[str]
    value_wei: int
    gas_used: Optional[int]
    gas_price_wei: Optional[int]
    timestamp: Optional[int]
    logs: Tuple[LogEntry, ...] = ()


def pad_topic(address: str) -> str:
    return '0x' + address[2:].lower().rjust(64, '0')


def encode_amount(value: int) -> str:
    return '0x' + format(value, '064x')


def transfer_log(token_address: str, sender: str, recipient: str, amount: int) -> LogEntry:
    return LogEntry(
        address=token_address,
        topics=(TRANSFER_TOPIC, pad_topic(sender), pad_topic(recipient)),
        data=encode_amount(amount),
    )


def _optional_int(value) -> Optional[int]:
    if value is None or value == '':
        return None
    return int(value)


def _parse_iso_timestamp(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def normalize_scan_transaction(tx: dict) -> RawTransactionRecord:
    failed = tx.get('isError') == '1'
    return RawTransactionRecord(
        kind=KIND_SCAN,
        hash=tx['hash'],
        from_address=tx['from'],
        to_address=tx.get('to') or None,
        # Reverted transactions still pay gas but move no value
        value_wei=0 if failed else int(tx.get('value') or 0),
        gas_used=_optional_int(tx.get('gasUsed')),
        gas_price_wei=_optional_int(tx.get('gasPrice')),
        timestamp=_optional_int(tx.get('timeStamp')),
    )


def normalize_scan_token_transfer(tx: dict) -> RawTransactionRecord:
    amount = int(tx.get('value') or 0)
    return RawTransactionRecord(
        kind=KIND_SCAN,
        hash=tx['hash'],
        from_address=tx['from'],
        to_address=tx.get('to') or None,
        value_wei=0,
        # tokentx reports the gas of whoever sent the transaction, not the token sender
        gas_used=None,
        gas_price_wei=None,
        timestamp=_optional_int(tx.get('timeStamp')),
        logs=(transfer_log(tx['contractAddress'], tx['from'], tx['to'], amount),),
    )


def normalize_indexer_transaction(item: dict) -> RawTransactionRecord:
    failed = item.get('status') == 'error'
    return RawTransactionRecord(
        kind=KIND_INDEXER,
        hash=item['hash'],
        from_address=item['from']['hash'],
        to_address=(item.get('to') or {}).get('hash'),
        value_wei=0 if failed else int(item.get('value') or 0),
        gas_used=_optional_int(item.get('gas_used')),
        gas_price_wei=_optional_int(item.get('gas_price')),
        timestamp=_parse_iso_timestamp(item.get('timestamp')),
    )


def normalize_indexer_token_transfer(item: dict) -> RawTransactionRecord:
    token = item['token']
    token_address = token.get('address_hash') or token['address']
    sender = item['from']['hash']
    recipient = item['to']['hash']
    amount = int(item['total']['value'])
    return RawTransactionRecord(
        kind=KIND_INDEXER,
        hash=item.get('transaction_hash') or item['tx_hash'],
        from_address=sender,
        to_address=recipient,
        value_wei=0,
        gas_used=None,
        gas_price_wei=None,
        timestamp=_parse_iso_timestamp(item.get('timestamp')),
        logs=(transfer_log(token_address, sender, recipient, amount),),
    )


def normalize_all(
    entries: Iterable[dict],
    normalizer: Callable[[dict], RawTransactionRecord],
    label: str
) -> List[RawTransactionRecord]:
    records = []
    skipped = 0
    for entry in entries:
        try:
            records.append(normalizer(entry))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            skipped += 1
            logger.debug(f"Skipping malformed {label} entry: {e}")
    if skipped:
        logger.warning(f"Skipped {skipped} malformed {label} entries")
    return records


class HistorySource(ABC):
    """An upstream that can list native transactions and token transfers"""

    name = 'source'

    @abstractmethod
    async def native_transactions(self, address: str) -> List[RawTransactionRecord]:
        pass

    @abstractmethod
    async def token_transfers(self, address: str, token_address: str) -> List[RawTransactionRecord]:
        pass


class ScanHistorySource(HistorySource):
    name = 'explorer'

    def __init__(self, explorer: ExplorerClient, retry_block_window: int = 5_000_000):
        self.explorer = explorer
        self.retry_block_window = retry_block_window

    async def _with_reduced_range_retry(
        self,
        label: str,
        fetch: Callable[..., Awaitable[List[dict]]]
    ) -> List[dict]:
        try:
            return await fetch()
        except RateLimitError:
            # already retried by the client
            raise
        except Exception as e:
            logger.warning(f"Full-range {label} request failed ({e}), retrying with a reduced block range")

        latest = await self.explorer.get_block_number()
        start_block = max(0, latest - self.retry_block_window)
        return await fetch(start_block=start_block, end_block=latest)

    async def native_transactions(self, address: str) -> List[RawTransactionRecord]:
        async def fetch(**block_range):
            return await self.explorer.get_transactions(address, **block_range)

        entries = await self._with_reduced_range_retry('txlist', fetch)
        return normalize_all(entries, normalize_scan_transaction, 'txlist')

    async def token_transfers(self, address: str, token_address: str) -> List[RawTransactionRecord]:
        async def fetch(**block_range):
            return await self.explorer.get_token_transfers(address, token_address, **block_range)

        entries = await self._with_reduced_range_retry('tokentx', fetch)
        return normalize_all(entries, normalize_scan_token_transfer, 'tokentx')


class IndexerHistorySource(HistorySource):
    name = 'indexer'

    def __init__(self, client: BlockscoutClient):
        self.client = client

    async def native_transactions(self, address: str) -> List[RawTransactionRecord]:
        items = await self.client.get_transactions(address)
        return normalize_all(items, normalize_indexer_transaction, 'indexer transaction')

    async def token_transfers(self, address: str, token_address: str) -> List[RawTransactionRecord]:
        items = await self.client.get_token_transfers(address, token_address)
        return normalize_all(items, normalize_indexer_token_transfer, 'indexer token transfer')


class TransactionHistoryProvider:
    """Merges native transactions and stablecoin transfers for one chain.

    Each half is requested from the sources in order until one succeeds. A half
    that fails everywhere contributes nothing, so the worst case is an empty
    history rather than an error.
    """

    def __init__(self, sources: List[HistorySource], token_address: str):
        self.sources = sources
        self.token_address = token_address

    async def _first_success(
        self,
        label: str,
        fetch: Callable[[HistorySource], Awaitable[List[RawTransactionRecord]]]
    ) -> List[RawTransactionRecord]:
        for source in self.sources:
            try:
                records = await fetch(source)
                logger.info(f"Fetched {len(records)} {label} records from {source.name}")
                return records
            except Exception as e:
                logger.warning(f"{source.name} failed to return {label}: {e}")
        logger.error(f"All sources failed for {label}, continuing without it")
        return []

    async def fetch_history(self, address: str) -> List[RawTransactionRecord]:
        native, transfers = await asyncio.gather(
            self._first_success('native transaction', lambda s: s.native_transactions(address)),
            self._first_success('token transfer', lambda s: s.token_transfers(address, self.token_address)),
        )
        return native + transfers
