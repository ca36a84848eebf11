"""Test helpers module for shared test utilities.

- constants: Pool and user addresses
- fakes: In-memory collaborators recording their calls
"""

from tests.helpers.constants import (
    OTHER_USER_ADDRESS,
    POOL_ADDRESS,
    TOKEN_CUSTODY_ADDRESS,
    USER_ADDRESS,
)
from tests.helpers.fakes import FakeCoinClient, FakeQueryService, FakeTokenClient

__all__ = [
    # Constants
    "POOL_ADDRESS",
    "TOKEN_CUSTODY_ADDRESS",
    "USER_ADDRESS",
    "OTHER_USER_ADDRESS",
    # Fakes
    "FakeCoinClient",
    "FakeTokenClient",
    "FakeQueryService",
]
