from __future__ import annotations

from eth_utils import to_checksum_address

# ---------------------------------------------------------------------------
# Berachain mainnet: Proof-of-Liquidity contracts
# ---------------------------------------------------------------------------

# Factory that registers every reward vault (allVaultsLength / allVaults).
REWARD_VAULT_FACTORY = to_checksum_address(
    "0x94Ad6Ac84f6C6FbA8b8CCbD71d9f4f101def52a8"
)

# BGT staker: distributes protocol fees (paid in HONEY) to BGT holders.
BGT_STAKER = to_checksum_address("0x44F07Ce5AfeCbCC406e6beFD40cc2998eEb8c7C6")

# BGT token, which also tracks validator boosts.
BGT = to_checksum_address("0x656b95E550C07a9ffe548bd4085c72418Ceb1dba")

HONEY = to_checksum_address("0x7EeCA4205fF31f947EdBd49195a7A88E6A91161B")
HONEY_DECIMALS = 18

# ---------------------------------------------------------------------------
# Safe / batching helpers
# ---------------------------------------------------------------------------

SAFE_MULTISEND_CALL_ONLY = to_checksum_address(
    "0x40A2aCCbd92BCA938b02010E17A5b8929b49130D"
)

