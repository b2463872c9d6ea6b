import re
from dataclasses import dataclass
from typing import List, Optional

from config import Settings
from ranks import RANK_TABLES, RankTier

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = '0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef'

ENS_REGISTRY = '0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e'
BASENAME_REGISTRY = '0xB94704422c2a1E396835A571837Aa5AE53285a95'

BASE_NAME_PATTERN = re.compile(r'^[a-z0-9-]+\.base\.eth$', re.IGNORECASE)
ENS_NAME_PATTERN = re.compile(r'^([a-z0-9-]+\.)+eth$', re.IGNORECASE)
OP_NAME_PATTERN = re.compile(r'^[a-z0-9-]{3,}\.op$', re.IGNORECASE)

SUPPORTED_CHAINS = ('base', 'ethereum', 'optimism', 'solana')


@dataclass(frozen=True)
class ScanConfig:
    api_url: str
    api_key: Optional[str] = None


@dataclass(frozen=True)
class ChainAdapter:
    """Everything chain-specific the pipeline needs, selected once per query"""
    chain: str
    native_symbol: str
    usdc_address: str
    usdc_decimals: int
    scan_config: ScanConfig
    indexer_url: str
    rpc_url: str
    name_pattern: re.Pattern
    name_registry: Optional[str]
    reverse_suffix: str
    rank_table: List[RankTier]
    native_decimals: int = 18
    cache_name_resolutions: bool = False

    def matches_name(self, value: str) -> bool:
        return bool(self.name_pattern.match(value))

    def reverse_name(self, address: str) -> str:
        return f"{address[2:].lower()}.{self.reverse_suffix}"


def get_chain_adapter(chain: str, settings: Settings) -> ChainAdapter:
    """Return the adapter for an EVM chain supported by the analytics pipeline"""
    chain = (chain or '').lower()

    if chain == 'base':
        return ChainAdapter(
            chain='base',
            native_symbol='ETH',
            usdc_address='0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913',
            usdc_decimals=6,
            scan_config=ScanConfig('https://api.basescan.org/api', settings.basescan_api_key),
            indexer_url='https://base.blockscout.com',
            rpc_url=settings.base_rpc_url,
            name_pattern=BASE_NAME_PATTERN,
            name_registry=BASENAME_REGISTRY,
            # ENSIP-19 coin type for Base: 0x80000000 | 8453
            reverse_suffix='80002105.reverse',
            rank_table=RANK_TABLES['base'],
        )
    if chain == 'ethereum':
        return ChainAdapter(
            chain='ethereum',
            native_symbol='ETH',
            usdc_address='0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48',
            usdc_decimals=6,
            scan_config=ScanConfig('https://api.etherscan.io/api', settings.etherscan_api_key),
            indexer_url='https://eth.blockscout.com',
            rpc_url=settings.ethereum_rpc_url,
            name_pattern=ENS_NAME_PATTERN,
            name_registry=ENS_REGISTRY,
            reverse_suffix='addr.reverse',
            rank_table=RANK_TABLES['ethereum'],
        )
    if chain == 'optimism':
        return ChainAdapter(
            chain='optimism',
            native_symbol='ETH',
            usdc_address='0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85',
            usdc_decimals=6,
            scan_config=ScanConfig(
                'https://api-optimistic.etherscan.io/api',
                settings.optimistic_etherscan_api_key
            ),
            indexer_url='https://optimism.blockscout.com',
            rpc_url=settings.optimism_rpc_url,
            name_pattern=OP_NAME_PATTERN,
            name_registry=settings.op_name_registry,
            reverse_suffix='addr.reverse',
            rank_table=RANK_TABLES['optimism'],
            cache_name_resolutions=True,
        )
    if chain in SUPPORTED_CHAINS:
        raise ValueError(f"Chain '{chain}' is not supported for wallet analytics")
    raise ValueError(f"Unknown chain: {chain}")
