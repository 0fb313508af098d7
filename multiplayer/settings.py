# Settings for the multiplayer layer

# Collections in the shared document store
GAMES_COLLECTION = "games"
EVENTS_COLLECTION = "game_events"

# Seconds between full pushes of the local nation
PUSH_INTERVAL = 30.0
# Seconds between presence heartbeats
HEARTBEAT_INTERVAL = 60.0
# A player whose last heartbeat is older than this counts as offline
PRESENCE_STALE_AFTER = 180.0

# Seconds between change polls of the SQL-backed store
SQL_POLL_INTERVAL = 1.0
# Attempts at a SQL write that keeps losing the version check to other writers
SQL_WRITE_ATTEMPTS = 5
# Tries at pushing the own slice while other writers keep changing it
PUSH_ATTEMPTS = 3

# Games accept players while waiting or running
JOINABLE_STATUSES = ("waiting", "active")
MAX_PLAYERS = 8

DEFAULT_STANCE = "neutral"
STANCES = ("neutral", "alliance", "rivalry")

# Battle thresholds relative to the defender's military stat
BATTLE_WIN_RATIO = 1.2
BATTLE_LOSS_RATIO = 0.8
BATTLE_PLUNDER_RATE = 0.10
BATTLE_HEAVY_LOSS_RATE = 0.10
BATTLE_LIGHT_LOSS_RATE = 0.02
BATTLE_DRAW_LOSS_RATE = 0.05
BATTLE_STABILITY_SWING = 5
