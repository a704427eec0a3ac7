REDIS_ROOM_KEY = "maze:room:{code}" # room code - hash of the fields below

# **`maze:room:{code}` hash fields** (values are JSON)
# - `position` = {"x", "y", "timestamp"}
# - `roles` = {"player1": "navigator", "player2": "guide"}
# - `game_state` = {"phase", "currentLevel"}
# - `players` = {"player1": {"joined": true, "timestamp": ...}}
# - `players_ready` = {"player1": {"ready": true, "timestamp": ...}}
POSITION_FIELD = "position"
ROLES_FIELD = "roles"
GAME_STATE_FIELD = "game_state"
PLAYERS_FIELD = "players"
PLAYERS_READY_FIELD = "players_ready"
