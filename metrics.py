from collections import Counter
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Union

from history import RawTransactionRecord


@dataclass(frozen=True)
class VolumeStats:
    eth_in: str
    eth_out: str
    usdc_in: str
    usdc_out: str
    gas_wei: int
    gas_native: str
    outgoing_count: int


def format_units(value: int, decimals: int) -> str:
    """Render an integer amount of base units as a decimal string, e.g. 1500000 (6) -> '1.5'"""
    sign = '-' if value < 0 else ''
    whole, fraction = divmod(abs(value), 10 ** decimals)
    fraction_text = str(fraction).rjust(decimals, '0').rstrip('0') or '0'
    return f"{sign}{whole}.{fraction_text}"


def to_usd(amount: Union[str, Decimal], price: Optional[float]) -> str:
    """amount * price rounded half-up to cents"""
    try:
        usd = Decimal(str(amount)) * Decimal(str(price or 0))
    except InvalidOperation:
        return '0.00'
    return str(usd.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def _same_address(a: Optional[str], b: str) -> bool:
    return a is not None and a.lower() == b.lower()


def _topic_address(topic: str) -> str:
    return '0x' + topic[-40:].lower()


def _decode_amount(data: str) -> int:
    data = data[2:] if data.startswith('0x') else data
    return int(data, 16) if data else 0


def aggregate(
    records: Iterable[RawTransactionRecord],
    owner_address: str,
    token_address: str,
    token_decimals: int = 6,
    native_decimals: int = 18
) -> VolumeStats:
    """Sum native and stablecoin volume plus gas for owner_address.

    Gas and the outgoing count come from native transaction records only, once
    per hash. A token transfer's sender is not necessarily the account that
    sent the transaction (transferFrom), so records carrying Transfer logs
    contribute token amounts, summed per log, and nothing else.
    """
    native_in = native_out = 0
    token_in = token_out = 0
    gas_wei = 0
    outgoing = 0
    seen_outgoing = set()
    owner = owner_address.lower()

    for record in records:
        if _same_address(record.from_address, owner):
            native_out += record.value_wei
            if not record.logs and record.hash not in seen_outgoing:
                seen_outgoing.add(record.hash)
                outgoing += 1
                if record.gas_used is not None and record.gas_price_wei is not None:
                    gas_wei += record.gas_used * record.gas_price_wei

        if _same_address(record.to_address, owner):
            native_in += record.value_wei

        for log in record.logs:
            if not _same_address(log.address, token_address) or len(log.topics) < 3:
                continue
            amount = _decode_amount(log.data)
            if _topic_address(log.topics[2]) == owner:
                token_in += amount
            if _topic_address(log.topics[1]) == owner:
                token_out += amount

    return VolumeStats(
        eth_in=format_units(native_in, native_decimals),
        eth_out=format_units(native_out, native_decimals),
        usdc_in=format_units(token_in, token_decimals),
        usdc_out=format_units(token_out, token_decimals),
        gas_wei=gas_wei,
        gas_native=format_units(gas_wei, native_decimals),
        outgoing_count=outgoing,
    )


def unique_transaction_count(records: Iterable[RawTransactionRecord]) -> int:
    return len({record.hash for record in records})


def top_protocols(records: Iterable[RawTransactionRecord], owner_address: str, limit: int = 3) -> List[Dict]:
    """Contracts the owner sent the most transactions to"""
    counts: Counter = Counter()
    seen = set()
    for record in records:
        if record.hash in seen or not record.to_address:
            continue
        if not _same_address(record.from_address, owner_address) or record.logs:
            continue
        seen.add(record.hash)
        counts[record.to_address.lower()] += 1

    return [
        {
            'address': address,
            'count': count,
            'name': f"Protocol {address[:6]}...{address[-4:]}",
        }
        for address, count in counts.most_common(limit)
    ]
