ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

GAS_BUFFER_MULTIPLIER = 1.1
SUGGESTED_PRIORITY_FEE_MULTIPLIER = 1.5
MAX_BASE_FEE_GROWTH_MULTIPLIER = 2

# Timeout constants (seconds)
DEFAULT_HTTP_TIMEOUT = 30.0  # HTTP client timeout
DEFAULT_TRANSACTION_TIMEOUT = 180  # Transaction receipt timeout (seconds)

# Scan pacing. Batch size and inter-batch delay together bound the sustained
# request rate against a public RPC endpoint.
DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY_S = 0.05
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_RETRY_DELAY_S = 0.1

# Cache TTLs (seconds)
VAULT_CACHE_TTL_S = 5 * 60
VALIDATOR_CACHE_TTL_S = 15 * 60
PRICE_CACHE_TTL_S = 5 * 60
TOKEN_INFO_CACHE_TTL_S = 60 * 60

DISPLAY_DECIMALS = 2
DEFAULT_TOKEN_DECIMALS = 18
UNKNOWN_TOKEN_SYMBOL = "UNKNOWN"

SAFE_PROPOSAL_ORIGIN = "BeraBundle"
