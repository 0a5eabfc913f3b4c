import time
from typing import Tuple
from .cache import cache_incr


def check_and_increment(business_id: str, key: str, max_per_minute: int = 60, burst: int = 30) -> Tuple[bool, int]:
    """Fixed one-minute bucket with a small burst allowance on top of the limit.

    Counts live in Redis when configured, otherwise in process memory.
    """
    minute = int(time.time() // 60)
    bucket = f"rl:{business_id}:{key}:{minute}"
    count = cache_incr(bucket, 1, expire_seconds=65)
    if count > max_per_minute + burst:
        return False, count
    return True, count
