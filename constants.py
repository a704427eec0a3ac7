import os

ROOM_STORE_BACKEND = os.getenv("ROOM_STORE_BACKEND", "memory")  # memory | redis

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# Redis store only; the in-memory store keeps rooms until restart
ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", 3600))

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")

ROOM_POLL_INTERVAL = float(os.getenv("ROOM_POLL_INTERVAL", 1.0))
ROLE_POLL_INTERVAL = float(os.getenv("ROLE_POLL_INTERVAL", 1.0))
POSITION_POLL_INTERVAL = float(os.getenv("POSITION_POLL_INTERVAL", 0.25))
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", 3.0))

ROOM_CODE_LENGTH = 4
ROOM_CODE_PATTERN = r"^\d{4}$"

BASE_MAZE_SIZE = 15
MAX_MAZE_SIZE = 25
MAZE_SIZE_STEP = 2
