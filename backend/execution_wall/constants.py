"""
Application Constants

Status values, signal kinds and defaults shared by services and routers.
"""

# Execution modes (execution_settings.execution_mode)
MODE_OFF = "off"
MODE_SAFE = "safe"
MODE_LIVE = "live"
EXECUTION_MODES = (MODE_OFF, MODE_SAFE, MODE_LIVE)

# Trade intent statuses
INTENT_PENDING = "pending"
INTENT_APPROVED = "swiped_on"
INTENT_BLOCKED = "swiped_off"
INTENT_DENIED = "swiped_deny"
INTENT_CANCELLED = "cancelled"

# Statuses that can never become the live intent for a ticker again
INTENT_DEAD_STATUSES = (INTENT_BLOCKED, INTENT_DENIED, INTENT_CANCELLED)

# Card states
CARD_ARMED = "ARMED"
CARD_INVALIDATED = "INVALIDATED"

# Swipe actions -> resulting intent status
SWIPE_ACTIONS = {
    "approve": INTENT_APPROVED,
    "deny": INTENT_DENIED,
    "off": INTENT_BLOCKED,
    "revive": INTENT_PENDING,
}

# Execution statuses
EXEC_PENDING = "pending"
EXEC_EXECUTED = "executed"
EXEC_CANCELLED = "cancelled"
EXEC_FAILED = "failed"

# Order actions / position sides
ACTION_BUY = "buy"
ACTION_SELL = "sell"
SIDE_LONG = "Long"
SIDE_SHORT = "Short"

# Signal event kinds carried in raw_payload["event"]
EVENT_WALL = "WALL"
EVENT_ORDER = "ORDER"
EVENT_ENTRY = "ENTRY"
EVENT_EXIT = "EXIT"

# Symbol lock namespaces
LOCK_ORDER = "order"
LOCK_EXIT = "exit"
LOCK_WALL = "wall"
LOCK_SL_HIT = "sl_hit"
LOCK_KINDS = (LOCK_ORDER, LOCK_EXIT, LOCK_WALL, LOCK_SL_HIT)

# Webhook log statuses
WEBHOOK_PROCESSING = "processing"
WEBHOOK_SUCCESS = "success"
WEBHOOK_ERROR = "error"

DEFAULT_TIMEZONE = "America/New_York"
