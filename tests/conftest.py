"""Test configuration for pytest.

This module imports fixtures that should be available to all tests.
"""

# Import fixtures
from tests.fixtures.common import (  # noqa
    settings,
    base_adapter,
    ethereum_adapter,
    optimism_adapter,
    mock_reader,
    mock_explorer,
    mock_history_provider,
    mock_price_oracle,
    base_resolver,
)
