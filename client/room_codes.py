import random
import re
import string
from typing import Optional
from urllib.parse import parse_qs, urlparse

from constants import ROOM_CODE_LENGTH, ROOM_CODE_PATTERN

ROOM_QUERY_PARAM = "room"


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return ''.join(random.choices(string.digits, k=length))


def build_share_link(base_url: str, room_code: str) -> str:
    """Link the creator sends to the partner; opening it joins the room."""
    return f"{base_url.rstrip('/')}/?{ROOM_QUERY_PARAM}={room_code}"


def room_code_from_link(url: str) -> Optional[str]:
    values = parse_qs(urlparse(url).query).get(ROOM_QUERY_PARAM)
    if not values or not re.match(ROOM_CODE_PATTERN, values[0]):
        return None
    return values[0]
