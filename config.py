import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Runtime configuration read from the environment"""
    basescan_api_key: Optional[str] = None
    etherscan_api_key: Optional[str] = None
    optimistic_etherscan_api_key: Optional[str] = None
    base_rpc_url: str = 'https://mainnet.base.org'
    ethereum_rpc_url: str = 'https://cloudflare-eth.com'
    optimism_rpc_url: str = 'https://mainnet.optimism.io'
    op_name_registry: Optional[str] = None
    coingecko_api_key: Optional[str] = None
    coingecko_api_url: str = 'https://api.coingecko.com/api/v3'
    redis_url: Optional[str] = None
    price_cache_ttl: int = 60  # seconds
    name_cache_ttl: int = 3600  # 1 hour
    default_eth_price: float = 2000.0
    default_usdc_price: float = 1.0
    default_sol_price: float = 150.0
    http_timeout: int = 20
    history_retry_block_window: int = 5_000_000
    indexer_max_pages: int = 20
    log_level: str = 'INFO'

    def explorer_api_key(self, chain: str) -> Optional[str]:
        return {
            'base': self.basescan_api_key,
            'ethereum': self.etherscan_api_key,
            'optimism': self.optimistic_etherscan_api_key,
        }.get(chain)

    def rpc_url(self, chain: str) -> Optional[str]:
        return {
            'base': self.base_rpc_url,
            'ethereum': self.ethereum_rpc_url,
            'optimism': self.optimism_rpc_url,
        }.get(chain)

    def default_price(self, symbol: str) -> float:
        return {
            'ETH': self.default_eth_price,
            'USDC': self.default_usdc_price,
            'SOL': self.default_sol_price,
        }.get(symbol.upper(), 0.0)


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {name}: {value!r}")
        return default


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value for {name}: {value!r}")
        return default


def load_settings() -> Settings:
    """Build Settings from the environment, loading .env files outside production"""
    if os.getenv('ENVIRONMENT') != 'production':
        load_dotenv('.env.local')
        load_dotenv()

    defaults = Settings()
    return Settings(
        basescan_api_key=os.getenv('BASESCAN_API_KEY'),
        etherscan_api_key=os.getenv('ETHERSCAN_API_KEY'),
        optimistic_etherscan_api_key=os.getenv('OPTIMISTIC_ETHERSCAN_API_KEY'),
        base_rpc_url=os.getenv('BASE_RPC_URL') or os.getenv('WEB3_URL') or defaults.base_rpc_url,
        ethereum_rpc_url=os.getenv('ETHEREUM_RPC_URL') or defaults.ethereum_rpc_url,
        optimism_rpc_url=os.getenv('OPTIMISM_RPC_URL') or defaults.optimism_rpc_url,
        op_name_registry=os.getenv('OP_NAME_REGISTRY'),
        coingecko_api_key=os.getenv('COINGECKO_API_KEY'),
        coingecko_api_url=os.getenv('COINGECKO_API_URL') or defaults.coingecko_api_url,
        redis_url=os.getenv('REDIS_URL'),
        price_cache_ttl=_int_env('PRICE_CACHE_TTL', defaults.price_cache_ttl),
        name_cache_ttl=_int_env('NAME_CACHE_TTL', defaults.name_cache_ttl),
        default_eth_price=_float_env('DEFAULT_ETH_PRICE', defaults.default_eth_price),
        default_usdc_price=_float_env('DEFAULT_USDC_PRICE', defaults.default_usdc_price),
        default_sol_price=_float_env('DEFAULT_SOL_PRICE', defaults.default_sol_price),
        http_timeout=_int_env('HTTP_TIMEOUT', defaults.http_timeout),
        history_retry_block_window=_int_env('HISTORY_RETRY_BLOCK_WINDOW', defaults.history_retry_block_window),
        indexer_max_pages=_int_env('INDEXER_MAX_PAGES', defaults.indexer_max_pages),
        log_level=os.getenv('LOG_LEVEL', defaults.log_level).upper(),
    )
