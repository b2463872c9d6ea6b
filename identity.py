import logging
import re
from dataclasses import dataclass, replace
from typing import Optional

from eth_typing import ChecksumAddress
from web3 import AsyncWeb3, Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from cache import BaseCache
from chains import ZERO_ADDRESS, ChainAdapter
from errors import InvalidIdentity, UpstreamUnavailable

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r'^0x[0-9a-fA-F]{40}$')

INVALID_INPUT_MESSAGE = "Input must be a non-empty string matching a supported address or name format"

REGISTRY_ABI = [
    {
        "inputs": [{"internalType": "bytes32", "name": "node", "type": "bytes32"}],
        "name": "resolver",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    }
]

RESOLVER_ABI = [
    {
        "inputs": [{"internalType": "bytes32", "name": "node", "type": "bytes32"}],
        "name": "addr",
        "outputs": [{"internalType": "address payable", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "bytes32", "name": "node", "type": "bytes32"},
            {"internalType": "string", "name": "key", "type": "string"}
        ],
        "name": "text",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "bytes32", "name": "node", "type": "bytes32"}],
        "name": "name",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function"
    }
]


@dataclass(frozen=True)
class ProfileEnrichment:
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    profile_name: Optional[str] = None


@dataclass(frozen=True)
class ResolvedIdentity:
    address: ChecksumAddress
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    profile_name: Optional[str] = None

    def with_enrichment(self, enrichment: ProfileEnrichment) -> 'ResolvedIdentity':
        return replace(
            self,
            display_name=self.display_name or enrichment.display_name,
            avatar_url=self.avatar_url or enrichment.avatar_url,
            profile_name=self.profile_name or enrichment.profile_name,
        )


def namehash(name: str) -> bytes:
    """EIP-137 namehash of an already-normalized name"""
    node = b'\x00' * 32
    if name:
        for label in reversed(name.split('.')):
            node = bytes(Web3.keccak(node + bytes(Web3.keccak(text=label))))
    return node


def is_zero_address(address: Optional[str]) -> bool:
    return not address or int(address, 16) == 0


def to_checksum(address: str) -> ChecksumAddress:
    """Validate a 0x-prefixed hex address and return its checksummed form"""
    if not isinstance(address, str) or not ADDRESS_PATTERN.match(address):
        raise InvalidIdentity(INVALID_INPUT_MESSAGE)

    body = address[2:]
    mixed_case = body != body.lower() and body != body.upper()
    if mixed_case and not Web3.is_checksum_address(address):
        raise InvalidIdentity(f"Invalid address checksum: {address}")

    try:
        return Web3.to_checksum_address(address)
    except ValueError as e:
        raise InvalidIdentity(f"Invalid address {address}: {e}")


class NameServiceReader:
    """Read-only calls against an ENS-compatible registry and its resolvers"""

    def __init__(self, w3: AsyncWeb3, registry_address: str):
        self.w3 = w3
        self.registry = w3.eth.contract(
            address=Web3.to_checksum_address(registry_address),
            abi=REGISTRY_ABI
        )

    @classmethod
    def from_rpc(cls, rpc_url: str, registry_address: str) -> 'NameServiceReader':
        return cls(AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url)), registry_address)

    def _resolver(self, resolver_address: str):
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(resolver_address),
            abi=RESOLVER_ABI
        )

    async def _call(self, function, empty):
        try:
            return await function.call()
        except (ContractLogicError, BadFunctionCallOutput) as e:
            logger.debug(f"Name service call reverted: {e}")
            return empty
        except Exception as e:
            raise UpstreamUnavailable(f"Name service call failed: {e}")

    async def get_resolver(self, node: bytes) -> str:
        return await self._call(self.registry.functions.resolver(node), ZERO_ADDRESS)

    async def get_address(self, resolver_address: str, node: bytes) -> str:
        return await self._call(self._resolver(resolver_address).functions.addr(node), ZERO_ADDRESS)

    async def get_text(self, resolver_address: str, node: bytes, key: str) -> str:
        return await self._call(self._resolver(resolver_address).functions.text(node, key), '')

    async def get_name(self, resolver_address: str, node: bytes) -> str:
        return await self._call(self._resolver(resolver_address).functions.name(node), '')


class IdentityResolver:
    def __init__(
        self,
        adapter: ChainAdapter,
        reader: Optional[NameServiceReader] = None,
        name_cache: Optional[BaseCache] = None,
        name_cache_ttl: int = 3600
    ):
        self.adapter = adapter
        self.reader = reader
        self.name_cache = name_cache
        self.name_cache_ttl = name_cache_ttl

    async def resolve(self, raw_input: str) -> ResolvedIdentity:
        value = raw_input.strip() if isinstance(raw_input, str) else ''
        if not value:
            raise InvalidIdentity(INVALID_INPUT_MESSAGE)

        if ADDRESS_PATTERN.match(value):
            return ResolvedIdentity(address=to_checksum(value))

        if self.adapter.matches_name(value):
            name = value.lower()
            address = await self.resolve_name(name)
            logger.info(f"Resolved {name} to {address}")
            return ResolvedIdentity(address=address, display_name=name)

        raise InvalidIdentity(INVALID_INPUT_MESSAGE)

    async def resolve_name(self, name: str) -> ChecksumAddress:
        cache_key = f"name:{self.adapter.chain}:{name}"
        use_cache = self.adapter.cache_name_resolutions and self.name_cache is not None

        if use_cache and (cached := await self.name_cache.get(cache_key)):
            return cached

        if self.reader is None:
            raise UpstreamUnavailable(f"No name registry configured for {self.adapter.chain}")

        node = namehash(name)
        resolver = await self.reader.get_resolver(node)
        if is_zero_address(resolver):
            raise InvalidIdentity(f"{name} is not registered or has no address record")

        address = await self.reader.get_address(resolver, node)
        if is_zero_address(address):
            raise InvalidIdentity(f"{name} is not registered or has no address record")

        checksummed = Web3.to_checksum_address(address)
        if use_cache:
            await self.name_cache.set(cache_key, checksummed, ttl=self.name_cache_ttl)
        return checksummed

    async def _text_record(self, name: str, key: str) -> Optional[str]:
        node = namehash(name)
        resolver = await self.reader.get_resolver(node)
        if is_zero_address(resolver):
            return None
        return await self.reader.get_text(resolver, node, key) or None

    async def reverse_lookup(self, address: str) -> Optional[str]:
        """Primary name of address, only if it resolves back to the same address"""
        node = namehash(self.adapter.reverse_name(address))
        resolver = await self.reader.get_resolver(node)
        if is_zero_address(resolver):
            return None
        name = await self.reader.get_name(resolver, node)
        if not name:
            return None
        forward = await self.resolve_name(name.lower())
        return name.lower() if forward.lower() == address.lower() else None

    async def enrich(self, address: str, name: Optional[str] = None) -> ProfileEnrichment:
        """Best-effort name, avatar and profile lookup; every failure yields None"""
        if self.reader is None:
            return ProfileEnrichment()

        async def attempt(coro, label):
            try:
                return await coro
            except Exception as e:
                logger.debug(f"Profile {label} lookup failed for {address}: {e}")
                return None

        display_name = name or await attempt(self.reverse_lookup(address), 'reverse')
        if not display_name:
            return ProfileEnrichment()

        avatar_url = await attempt(self._text_record(display_name, 'avatar'), 'avatar')
        profile_name = (
            await attempt(self._text_record(display_name, 'name'), 'name')
            or await attempt(self._text_record(display_name, 'display'), 'display')
        )
        return ProfileEnrichment(
            display_name=display_name,
            avatar_url=avatar_url,
            profile_name=profile_name,
        )
