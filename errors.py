class BlockchainDataError(Exception):
    """Base exception for blockchain data retrieval errors"""
    pass

class InvalidIdentity(BlockchainDataError):
    """Raised when an address or name cannot be resolved to a wallet"""
    pass

class UpstreamUnavailable(BlockchainDataError):
    """Raised when a third-party API call fails"""
    pass

class RateLimitError(UpstreamUnavailable):
    """Raised when API rate limits are hit"""
    pass

class NetworkError(UpstreamUnavailable):
    """Raised for network-related issues"""
    pass

class DataValidationError(UpstreamUnavailable):
    """Raised when an upstream payload is malformed"""
    pass
