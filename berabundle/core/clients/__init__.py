from berabundle.core.clients.MetadataClient import (
    MetadataClient,
    MetadataUnavailableError,
)
from berabundle.core.clients.PriceClient import (
    PriceClient,
    PriceOracle,
    StaticPriceOracle,
)
from berabundle.core.clients.SafeTransactionClient import (
    SafeHashMismatchError,
    SafeTransactionClient,
)
from berabundle.core.clients.ServiceClient import ServiceClient

__all__ = [
    "ServiceClient",
    "MetadataClient",
    "MetadataUnavailableError",
    "PriceClient",
    "PriceOracle",
    "StaticPriceOracle",
    "SafeHashMismatchError",
    "SafeTransactionClient",
]
