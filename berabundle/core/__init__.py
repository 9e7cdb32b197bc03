from berabundle.core.adapters.BaseAdapter import BaseAdapter
from berabundle.core.adapters.models import (
    BundleOperation,
    ProposalResult,
    RewardRecord,
    RewardSource,
    SafeTransaction,
)

__all__ = [
    "BaseAdapter",
    "BundleOperation",
    "ProposalResult",
    "RewardRecord",
    "RewardSource",
    "SafeTransaction",
]
