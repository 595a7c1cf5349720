"""
Application-wide default values.

Settings fall back to these when the environment does not override them.
"""

DEFAULT_APP_PORT = 8000

# Fee charged by the oracle for one price check, in stablecoin units
PRICE_CHECK_COST = "0.0001"

# Both supported stablecoins use 6 decimals
STABLECOIN_DECIMALS = 6

# Scheduler
DEFAULT_CHECK_INTERVAL_SECONDS = 30.0
DEFAULT_STOP_TIMEOUT_SECONDS = 10.0

# Per-call timeouts
BALANCE_TIMEOUT_SECONDS = 10.0
PROTOCOL_TIMEOUT_SECONDS = 30.0
CONFIRMATION_TIMEOUT_SECONDS = 120.0
NOTIFIER_TIMEOUT_SECONDS = 5.0
PRICE_FEED_TIMEOUT_SECONDS = 3.0

# Payment proofs older than this are treated as stale
PROOF_MAX_AGE_SECONDS = 600

# Price feed responses are reused for this long
PRICE_CACHE_TTL_SECONDS = 60.0

# Testnet safety limits (test tokens)
TESTNET_MAX_SINGLE_PAYMENT = "100"
TESTNET_WARNING_THRESHOLD = "10"

# Mainnet safety limits (real funds)
MAINNET_MAX_SINGLE_PAYMENT = "0.001"
MAINNET_WARNING_THRESHOLD = "0.0001"

# A wallet below either minimum is reported as not funded
MIN_NATIVE_BALANCE = "0.01"
MIN_TOKEN_BALANCE = "0.01"
