"""StockSync constants and limits.

All magic numbers live here. No exceptions.
"""

# Durable local store keys
STORAGE_KEY_INVENTORY_CACHE = "inventory_cache"
STORAGE_KEY_INVENTORY_TIMESTAMP = "inventory_timestamp"
STORAGE_KEY_PENDING_CHANGES = "pending_changes"

# Remote collections
INVENTORY_COLLECTION = "inventory"
TRANSACTIONS_COLLECTION = "transactions"

# Pending change types
CHANGE_ADD = "add"
CHANGE_UPDATE = "update"
CHANGE_DELETE = "delete"
CHANGE_STOCK_ADJUST = "stock_adjust"
CHANGE_TYPES = (CHANGE_ADD, CHANGE_UPDATE, CHANGE_DELETE, CHANGE_STOCK_ADJUST)

# Transaction log movement types
MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT)

# Placeholder ids written by offline adds until the remote assigns one
LOCAL_ID_PREFIX = "local-"

# Cache entry marker for optimistic (unconfirmed) writes
PENDING_FLAG = "_pending"

# Retry policy
MAX_SYNC_ATTEMPTS = 5
BACKOFF_BASE_SECONDS = 2.0
BACKOFF_MAX_SECONDS = 300.0

# Reachability probe
PROBE_HOST = "firestore.googleapis.com"
PROBE_PORT = 443
PROBE_TIMEOUT_SECONDS = 5.0
POLL_INTERVAL_SECONDS = 10.0

# Stock adjustment reasons offered by the quick-adjust form
ADJUST_REASONS = ["Sale", "Restock", "Return", "Damaged", "Stock Opname", "Other"]
DEFAULT_ADJUST_REASON = "Sale"
DEFAULT_USER = "Admin"
