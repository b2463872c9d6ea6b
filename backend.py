import asyncio
import json
import logging
import sys
from datetime import date
from typing import Optional, Tuple, Union

import aiohttp

from activity import bucket_by_day, bucket_by_month, compute_streaks
from cache import BaseCache, CacheConfig, LayeredCache
from chains import ChainAdapter, get_chain_adapter
from clients import BlockscoutClient, CoinGeckoClient, ExplorerClient
from config import Settings, load_settings
from errors import BlockchainDataError
from history import IndexerHistorySource, ScanHistorySource, TransactionHistoryProvider
from identity import IdentityResolver, NameServiceReader, ProfileEnrichment, ResolvedIdentity
from metrics import VolumeStats, aggregate, to_usd, top_protocols, unique_transaction_count
from prices import PriceCache, PriceOracle
from ranks import classify

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

STABLECOIN_SYMBOL = 'USDC'


def failure_result(address: str, error: str) -> dict:
    return {'success': False, 'address': address, 'error': error}


class WalletAnalyzer:
    """Runs the analytics pipeline for one chain: resolve, probe, fetch, aggregate, assemble"""

    def __init__(
        self,
        adapter: ChainAdapter,
        identity_resolver: IdentityResolver,
        history_provider: TransactionHistoryProvider,
        price_oracle: PriceOracle,
        explorer: ExplorerClient
    ):
        self.adapter = adapter
        self.identity_resolver = identity_resolver
        self.history_provider = history_provider
        self.price_oracle = price_oracle
        self.explorer = explorer

    async def analyze(self, raw_input: str) -> dict:
        """Perform complete wallet analysis. Never raises."""
        address = raw_input
        try:
            try:
                identity = await self.identity_resolver.resolve(raw_input)
            except BlockchainDataError as e:
                logger.info(f"Could not resolve {raw_input!r} on {self.adapter.chain}: {e}")
                return failure_result(raw_input, str(e))
            address = identity.address

            if await self._probe_transaction_count(address) == 0:
                prices, enrichment = await asyncio.gather(self._get_prices(), self._enrich(identity))
                return self._zero_result(identity.with_enrichment(enrichment), prices)

            prices, history, enrichment = await asyncio.gather(
                self._get_prices(),
                self.history_provider.fetch_history(address),
                self._enrich(identity),
            )
            if not history:
                logger.info(f"No history for {address} on {self.adapter.chain}")
                return self._zero_result(identity.with_enrichment(enrichment), prices)

            stats = aggregate(
                history,
                address,
                self.adapter.usdc_address,
                token_decimals=self.adapter.usdc_decimals,
                native_decimals=self.adapter.native_decimals
            )
            daily_activity = bucket_by_day(history)
            activity = self._activity_summary(daily_activity, bucket_by_month(history))

            return self._build_result(
                identity.with_enrichment(enrichment),
                stats,
                prices,
                transaction_count=unique_transaction_count(history),
                activity=activity,
                protocols=top_protocols(history, address),
            )

        except Exception as e:
            logger.error(f"Analysis failed for {address}: {e}", exc_info=True)
            return failure_result(address, str(e) or e.__class__.__name__)

    async def _probe_transaction_count(self, address: str) -> Optional[int]:
        """Nonce-style count; None when the probe itself fails"""
        try:
            return await self.explorer.get_transaction_count(address)
        except BlockchainDataError as e:
            logger.warning(f"Transaction count probe failed for {address}, fetching full history: {e}")
            return None

    async def _get_prices(self) -> Tuple[float, float]:
        symbols = (self.adapter.native_symbol, STABLECOIN_SYMBOL)
        results = await asyncio.gather(
            *(self.price_oracle.get_price(symbol) for symbol in symbols),
            return_exceptions=True
        )
        prices = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, Exception):
                logger.warning(f"Price lookup for {symbol} failed, using default: {result}")
                result = self.price_oracle.default_price(symbol)
            prices.append(result)
        return prices[0], prices[1]

    async def _enrich(self, identity: ResolvedIdentity) -> ProfileEnrichment:
        try:
            return await self.identity_resolver.enrich(identity.address, identity.display_name)
        except Exception as e:
            logger.debug(f"Enrichment failed for {identity.address}: {e}")
            return ProfileEnrichment(display_name=identity.display_name)

    @staticmethod
    def _activity_summary(daily_activity: dict, monthly: dict) -> dict:
        streaks = compute_streaks(daily_activity)
        return {
            'currentStreak': streaks.current_streak,
            'longestStreak': streaks.longest_streak,
            'totalActiveDays': streaks.total_active_days,
            **monthly,
        }

    def _identity_fields(self, identity: ResolvedIdentity) -> dict:
        return {
            'success': True,
            'address': identity.address,
            'chain': self.adapter.chain,
            'displayName': identity.display_name,
            'profileName': identity.profile_name,
            'avatarUrl': identity.avatar_url,
        }

    def _zero_result(self, identity: ResolvedIdentity, prices: Tuple[float, float]) -> dict:
        eth_price, usdc_price = prices
        return {
            **self._identity_fields(identity),
            'transactionCount': 0,
            'outgoingTransactions': 0,
            'ethVolumeIn': '0',
            'ethVolumeOut': '0',
            'ethVolumeInUsd': '0.00',
            'ethVolumeOutUsd': '0.00',
            'usdcVolumeIn': '0',
            'usdcVolumeOut': '0',
            'usdcVolumeInUsd': '0.00',
            'usdcVolumeOutUsd': '0.00',
            'gasSpent': {'ethAmount': '0', 'weiAmount': '0', 'usdAmount': '0.00'},
            'ethPrice': eth_price,
            'usdcPrice': usdc_price,
            'rank': classify(self.adapter.chain, 0),
            'activity': self._activity_summary({}, bucket_by_month([])),
            'topProtocols': [],
        }

    def _build_result(
        self,
        identity: ResolvedIdentity,
        stats: VolumeStats,
        prices: Tuple[float, float],
        transaction_count: int,
        activity: dict,
        protocols: list
    ) -> dict:
        eth_price, usdc_price = prices
        return {
            **self._identity_fields(identity),
            'transactionCount': transaction_count,
            'outgoingTransactions': stats.outgoing_count,
            'ethVolumeIn': stats.eth_in,
            'ethVolumeOut': stats.eth_out,
            'ethVolumeInUsd': to_usd(stats.eth_in, eth_price),
            'ethVolumeOutUsd': to_usd(stats.eth_out, eth_price),
            'usdcVolumeIn': stats.usdc_in,
            'usdcVolumeOut': stats.usdc_out,
            'usdcVolumeInUsd': to_usd(stats.usdc_in, usdc_price),
            'usdcVolumeOutUsd': to_usd(stats.usdc_out, usdc_price),
            'gasSpent': {
                'ethAmount': stats.gas_native,
                'weiAmount': str(stats.gas_wei),
                'usdAmount': to_usd(stats.gas_native, eth_price),
            },
            'ethPrice': eth_price,
            'usdcPrice': usdc_price,
            'rank': classify(self.adapter.chain, transaction_count),
            'activity': activity,
            'topProtocols': protocols,
        }


def build_price_oracle(
    settings: Settings,
    session: aiohttp.ClientSession,
    price_cache: Optional[PriceCache] = None
) -> PriceOracle:
    return PriceOracle(
        CoinGeckoClient(settings.coingecko_api_url, settings.coingecko_api_key, session=session),
        cache=price_cache if price_cache is not None else PriceCache(settings.price_cache_ttl),
        default_prices={
            'ETH': settings.default_eth_price,
            'USDC': settings.default_usdc_price,
            'SOL': settings.default_sol_price,
        }
    )


def build_identity_resolver(
    adapter: ChainAdapter,
    settings: Settings,
    name_cache: Optional[BaseCache] = None
) -> IdentityResolver:
    reader = None
    if adapter.name_registry and adapter.rpc_url:
        reader = NameServiceReader.from_rpc(adapter.rpc_url, adapter.name_registry)
    if name_cache is None:
        name_cache = LayeredCache(CacheConfig(
            redis_url=settings.redis_url,
            redis_ttl=settings.name_cache_ttl,
            memory_ttl=settings.name_cache_ttl
        ))
    return IdentityResolver(adapter, reader, name_cache, settings.name_cache_ttl)


def build_analyzer(
    adapter: ChainAdapter,
    settings: Settings,
    session: aiohttp.ClientSession,
    price_cache: Optional[PriceCache] = None,
    name_cache: Optional[BaseCache] = None
) -> WalletAnalyzer:
    explorer = ExplorerClient(
        adapter.scan_config.api_url,
        adapter.scan_config.api_key,
        session=session
    )
    indexer = BlockscoutClient(adapter.indexer_url, max_pages=settings.indexer_max_pages, session=session)
    history_provider = TransactionHistoryProvider(
        [
            ScanHistorySource(explorer, retry_block_window=settings.history_retry_block_window),
            IndexerHistorySource(indexer),
        ],
        token_address=adapter.usdc_address
    )
    return WalletAnalyzer(
        adapter=adapter,
        identity_resolver=build_identity_resolver(adapter, settings, name_cache),
        history_provider=history_provider,
        price_oracle=build_price_oracle(settings, session, price_cache),
        explorer=explorer,
    )


def _client_session(settings: Settings) -> aiohttp.ClientSession:
    return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=settings.http_timeout))


async def get_wallet_analytics(
    raw_input: str,
    chain: str = 'base',
    settings: Optional[Settings] = None,
    price_cache: Optional[PriceCache] = None,
    name_cache: Optional[BaseCache] = None
) -> dict:
    """Wallet analytics for an address or name on a chain. Never raises."""
    try:
        settings = settings or load_settings()
        adapter = get_chain_adapter(chain, settings)
    except ValueError as e:
        return failure_result(raw_input, str(e))

    try:
        async with _client_session(settings) as session:
            analyzer = build_analyzer(adapter, settings, session, price_cache, name_cache)
            return await analyzer.analyze(raw_input)
    except Exception as e:
        logger.error(f"Analysis failed: {e}", exc_info=True)
        return failure_result(raw_input, str(e) or e.__class__.__name__)


async def get_streak_data(
    raw_input: str,
    chain: str = 'base',
    start: Optional[Union[str, date]] = None,
    end: Optional[Union[str, date]] = None,
    settings: Optional[Settings] = None,
    name_cache: Optional[BaseCache] = None
) -> dict:
    """Daily activity and streaks for the streak API; identity errors propagate"""
    settings = settings or load_settings()
    adapter = get_chain_adapter(chain, settings)

    async with _client_session(settings) as session:
        analyzer = build_analyzer(adapter, settings, session, name_cache=name_cache)
        identity = await analyzer.identity_resolver.resolve(raw_input)
        history = await analyzer.history_provider.fetch_history(identity.address)

    daily_activity = bucket_by_day(history, start_date=start, end_date=end)
    streaks = compute_streaks(daily_activity)
    return {
        'success': True,
        'address': identity.address,
        'dailyActivity': daily_activity,
        'currentStreak': streaks.current_streak,
        'longestStreak': streaks.longest_streak,
        'totalActiveDays': streaks.total_active_days,
    }


async def get_eth_price(settings: Optional[Settings] = None, price_cache: Optional[PriceCache] = None) -> float:
    settings = settings or load_settings()
    async with _client_session(settings) as session:
        return await build_price_oracle(settings, session, price_cache).get_price('ETH')


async def main():
    if len(sys.argv) < 2:
        print("usage: python backend.py <address-or-name> [chain]")
        return
    chain = sys.argv[2] if len(sys.argv) > 2 else 'base'
    analysis = await get_wallet_analytics(sys.argv[1], chain)
    print(json.dumps(analysis, indent=2))

if __name__ == "__main__":
    asyncio.run(main())
