from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import REDIS_URL


def user_or_remote_address(request: Request) -> str:
    """Rate-limit per user when the caller identifies one, else per client IP."""
    user_id = request.query_params.get("user_id")
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=user_or_remote_address,
    storage_uri=REDIS_URL,
    default_limits=["100/minute"]
)
