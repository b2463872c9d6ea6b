from typing import Dict, List, NamedTuple, Optional


class RankTier(NamedTuple):
    min: int
    max: Optional[int]  # None means unbounded
    name: str


RANK_TABLES: Dict[str, List[RankTier]] = {
    'base': [
        RankTier(0, 9, 'Base Newborn'),
        RankTier(10, 49, 'Base Explorer'),
        RankTier(50, 99, 'Base Builder'),
        RankTier(100, 499, 'Base Maxi'),
        RankTier(500, None, 'Base Legend'),
    ],
    'ethereum': [
        RankTier(0, 24, 'Ethereum Tourist'),
        RankTier(25, 99, 'Ethereum Citizen'),
        RankTier(100, 499, 'Ethereum Degen'),
        RankTier(500, 1999, 'Ethereum OG'),
        RankTier(2000, None, 'Ethereum Whale'),
    ],
    'optimism': [
        RankTier(0, 9, 'OP Newcomer'),
        RankTier(10, 49, 'OP Voyager'),
        RankTier(50, 99, 'OP Optimist'),
        RankTier(100, 499, 'OP Superchain Citizen'),
        RankTier(500, None, 'OP Legend'),
    ],
    'solana': [
        RankTier(0, 49, 'Solana Tourist'),
        RankTier(50, 199, 'Solana Surfer'),
        RankTier(200, 999, 'Solana Degen'),
        RankTier(1000, 4999, 'Solana Validator'),
        RankTier(5000, None, 'Solana Legend'),
    ],
}


def classify(chain: str, transaction_count: int) -> str:
    """Return the rank name of the first tier containing transaction_count"""
    table = RANK_TABLES.get(chain)
    if table is None:
        raise ValueError(f"No rank table for chain: {chain}")
    if transaction_count < 0:
        raise ValueError(f"Transaction count cannot be negative: {transaction_count}")

    for tier in table:
        if tier.min <= transaction_count and (tier.max is None or transaction_count <= tier.max):
            return tier.name
    raise ValueError(f"Rank table for {chain} does not cover {transaction_count}")
