__version__ = "0.1.0"

from berabundle.core import (
    BaseAdapter,
    BundleOperation,
    ProposalResult,
    RewardRecord,
    RewardSource,
    SafeTransaction,
)

__all__ = [
    "__version__",
    "BaseAdapter",
    "BundleOperation",
    "ProposalResult",
    "RewardRecord",
    "RewardSource",
    "SafeTransaction",
]
