import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp
import backoff

from errors import DataValidationError, NetworkError, RateLimitError, UpstreamUnavailable

logger = logging.getLogger(__name__)

FULL_RANGE_END_BLOCK = 99999999
EMPTY_RESULT_MESSAGES = ('No transactions found', 'No records found', 'No token transfers found')
RATE_LIMIT_TRIES = 2


class BaseHTTPClient:
    """Owns (or borrows) an aiohttp session"""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, timeout: int = 20):
        self._session = session
        self._owns_session = session is None
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def __aenter__(self):
        await self.get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _get_json(self, url: str, params: Optional[Dict] = None, headers: Optional[Dict] = None) -> Any:
        session = await self.get_session()
        try:
            async with session.get(url, params=params, headers=headers) as response:
                if response.status == 429:
                    raise RateLimitError(f"Rate limited by {url}")
                if response.status != 200:
                    raise NetworkError(f"API request failed: {response.status}")
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise NetworkError(f"Network request failed: {e}")
        except asyncio.TimeoutError:
            raise NetworkError(f"Request to {url} timed out")
        except json.JSONDecodeError as e:
            raise DataValidationError(f"Invalid JSON response: {e}")


class ExplorerClient(BaseHTTPClient):
    """Etherscan-style block explorer API (Basescan, Etherscan, Optimistic Etherscan)"""

    def __init__(self, api_url: str, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_url = api_url
        self.api_key = api_key

    @backoff.on_exception(backoff.expo, RateLimitError, max_tries=RATE_LIMIT_TRIES)
    async def _request(self, params: Dict[str, Any]) -> Any:
        """One explorer call. A rate-limited call is retried once here; callers
        doing their own retry must not repeat it on RateLimitError."""
        params = {k: v for k, v in params.items() if v is not None}
        if self.api_key:
            params['apikey'] = self.api_key

        data = await self._get_json(self.api_url, params=params)
        if not isinstance(data, dict):
            raise DataValidationError(f"Unexpected explorer response: {data!r}")

        result = data.get('result')
        if isinstance(result, str) and 'rate limit' in result.lower():
            raise RateLimitError(f"Explorer rate limit: {result}")

        if params.get('module') == 'proxy':
            if 'error' in data:
                raise UpstreamUnavailable(f"RPC error: {data['error']}")
            if not isinstance(result, str) or not result.startswith('0x'):
                raise DataValidationError(f"Unexpected proxy result: {result!r}")
            return result

        if data.get('status') != '1':
            if data.get('message') in EMPTY_RESULT_MESSAGES:
                return []
            raise UpstreamUnavailable(f"API error: {data.get('message')} ({result})")
        if not isinstance(result, list):
            raise DataValidationError(f"Expected a list result, got {type(result).__name__}")
        return result

    async def get_transactions(
        self,
        address: str,
        start_block: int = 0,
        end_block: int = FULL_RANGE_END_BLOCK,
        sort: str = 'desc'
    ) -> List[dict]:
        return await self._request({
            'module': 'account',
            'action': 'txlist',
            'address': address,
            'startblock': start_block,
            'endblock': end_block,
            'sort': sort,
        })

    async def get_token_transfers(
        self,
        address: str,
        contract_address: str,
        start_block: int = 0,
        end_block: int = FULL_RANGE_END_BLOCK,
        sort: str = 'desc'
    ) -> List[dict]:
        return await self._request({
            'module': 'account',
            'action': 'tokentx',
            'address': address,
            'contractaddress': contract_address,
            'startblock': start_block,
            'endblock': end_block,
            'sort': sort,
        })

    async def get_transaction_count(self, address: str) -> int:
        result = await self._request({
            'module': 'proxy',
            'action': 'eth_getTransactionCount',
            'address': address,
            'tag': 'latest',
        })
        return int(result, 16)

    async def get_block_number(self) -> int:
        result = await self._request({'module': 'proxy', 'action': 'eth_blockNumber'})
        return int(result, 16)


class BlockscoutClient(BaseHTTPClient):
    """Blockscout v2 REST API, used as the indexer fallback"""

    def __init__(self, base_url: str, max_pages: int = 20, **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip('/')
        self.max_pages = max_pages

    async def _get_items(self, path: str, params: Optional[Dict] = None) -> List[dict]:
        url = f"{self.base_url}{path}"
        items: List[dict] = []
        page_params = dict(params or {})

        for _ in range(self.max_pages):
            data = await self._get_json(url, params=page_params)
            if not isinstance(data, dict) or not isinstance(data.get('items'), list):
                raise DataValidationError(f"Unexpected Blockscout response from {path}")
            items.extend(data['items'])

            next_page = data.get('next_page_params')
            if not next_page:
                break
            page_params = {**(params or {}), **{k: str(v) for k, v in next_page.items() if v is not None}}
        else:
            logger.warning(f"Stopped paging {path} after {self.max_pages} pages")

        return items

    async def get_transactions(self, address: str) -> List[dict]:
        return await self._get_items(f"/api/v2/addresses/{address}/transactions")

    async def get_token_transfers(self, address: str, token_address: str) -> List[dict]:
        return await self._get_items(
            f"/api/v2/addresses/{address}/token-transfers",
            params={'type': 'ERC-20', 'token': token_address}
        )


class CoinGeckoClient(BaseHTTPClient):
    def __init__(self, api_url: str = 'https://api.coingecko.com/api/v3', api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_url = api_url.rstrip('/')
        self.api_key = api_key

    @property
    def headers(self) -> Dict[str, str]:
        return {'x-cg-demo-api-key': self.api_key} if self.api_key else {}

    async def get_simple_price(self, coin_ids: List[str]) -> Dict[str, Dict[str, float]]:
        data = await self._get_json(
            f"{self.api_url}/simple/price",
            params={'ids': ','.join(coin_ids), 'vs_currencies': 'usd'},
            headers=self.headers
        )
        if not isinstance(data, dict):
            raise DataValidationError(f"Unexpected price response: {data!r}")
        return data

    async def get_coin_history(self, coin_id: str, date: str) -> Dict[str, Any]:
        """date is formatted dd-mm-yyyy as CoinGecko expects"""
        data = await self._get_json(
            f"{self.api_url}/coins/{coin_id}/history",
            params={'date': date, 'localization': 'false'},
            headers=self.headers
        )
        if not isinstance(data, dict):
            raise DataValidationError(f"Unexpected history response: {data!r}")
        return data
