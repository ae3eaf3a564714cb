import os

# Durable slot store. Each client installation owns its own database file.
DB_URL = os.getenv("PRIVACYDASH_DB_URL", "sqlite:///./privacydash.db")
LOG_LEVEL = os.getenv("PRIVACYDASH_LOG_LEVEL", "INFO")
DOMAIN = os.getenv("PRIVACYDASH_DOMAIN", "localhost")

# Slot labels
MASTER_KEY_SLOT = "privacy_dash_master_key"
REQUESTS_SLOT = "privacy_dash_v1_mainnet"
PROFILES_SLOT = "privacy_dash_profiles"

# Vault
KEY_SIZE_BYTES = 32
NONCE_SIZE_BYTES = 12

# Requests
DEFAULT_EXPIRY_SECONDS = 86_400
DEFAULT_LABEL = "Privacy Dash Invoice"
DEFAULT_ICON = "https://picsum.photos/200"
DEFAULT_TOKEN_MINT = "SOL"
NATIVE_MINTS = {"SOL", "11111111111111111111111111111111"}
EXPIRING_SOON_SECONDS = 3_600

# Payments
LAMPORTS_PER_SOL = 1_000_000_000
MAX_LAMPORTS = 2**64 - 1
MAX_AMOUNT = MAX_LAMPORTS // LAMPORTS_PER_SOL  # whole SOL that still fits a u64 transfer
CONFIRM_TIMEOUT_SECONDS = float(os.getenv("PRIVACYDASH_CONFIRM_TIMEOUT", "60"))
COMMITMENT = os.getenv("PRIVACYDASH_COMMITMENT", "confirmed")

# Profiles
DEFAULT_BALANCE = 0.0
