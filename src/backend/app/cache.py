import os, json, time
from typing import Optional, Any
import redis

_mem: dict[str, dict[str, Any]] = {}
_client_singleton = None
_PREFIX = "ghostops:"


def _client():
    global _client_singleton
    if _client_singleton is not None:
        return _client_singleton
    url = os.getenv("REDIS_URL")
    if not url:
        return None
    try:
        _client_singleton = redis.Redis.from_url(url, decode_responses=True)
    except Exception:
        _client_singleton = None
    return _client_singleton


def cache_get(key: str) -> Optional[Any]:
    c = _client()
    if c:
        try:
            v = c.get(_PREFIX + key)
            return json.loads(v) if v else None
        except Exception:
            pass
    entry = _mem.get(key)
    if entry and entry.get("exp", 0) > time.time():
        return entry.get("val")
    return None


def cache_set(key: str, val: Any, ttl: int = 60) -> None:
    c = _client()
    if c:
        try:
            c.setex(_PREFIX + key, ttl, json.dumps(val))
            return
        except Exception:
            pass
    _mem[key] = {"val": val, "exp": time.time() + ttl}


def cache_del(key: str) -> None:
    c = _client()
    if c:
        try:
            c.delete(_PREFIX + key)
            return
        except Exception:
            pass
    _mem.pop(key, None)


def cache_incr(key: str, by: int = 1, expire_seconds: int = 60) -> int:
    """Increment an integer counter; the TTL starts at the first increment."""
    c = _client()
    if c:
        try:
            v = c.incrby(_PREFIX + key, by)
            if c.ttl(_PREFIX + key) < 0:
                c.expire(_PREFIX + key, expire_seconds)
            return int(v)
        except Exception:
            pass
    now = time.time()
    entry = _mem.get(key)
    cur = int(entry.get("val") or 0) if entry and entry.get("exp", 0) > now else 0
    cur += by
    exp = entry["exp"] if entry and entry.get("exp", 0) > now else now + expire_seconds
    _mem[key] = {"val": cur, "exp": exp}
    return cur


# Circuit breaker around flaky vendors -------------------------------------------
def breaker_allow(name: str) -> bool:
    """True while the circuit for `name` is closed."""
    return not bool(cache_get(f"cb_open:{name}"))


def breaker_on_result(name: str, ok: bool, fail_threshold: int = 3, cool_seconds: int = 60) -> None:
    if ok:
        cache_del(f"cb_fail:{name}")
        return
    fails = cache_incr(f"cb_fail:{name}", 1, expire_seconds=cool_seconds)
    if fails >= fail_threshold:
        cache_set(f"cb_open:{name}", True, ttl=cool_seconds)
