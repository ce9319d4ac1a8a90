# game/constants.py

# --- Hit validation ---
MAX_RANGE_M = 500.0
MAX_ANGLE_ERROR_DEG = 30.0
BASE_DAMAGE = 1.0

# --- Combat ---
MAX_AMMO = 30
MAX_LIVES = 10
RELOAD_TIME_S = 3.0
RESPAWN_TIME_S = 60.0

# --- Entities ---
DRONE_CAPACITY = 5
DEFAULT_DRONE_REWARD = 2

# --- Network ---
DEFAULT_WS_URL = "ws://localhost:8182"
RECONNECT_DELAY_S = 3.0
MAX_RECONNECT_ATTEMPTS = 5
KEEPALIVE_INTERVAL_S = 30.0
