"""
Cache helpers for the read endpoints (recaps and leaderboard).
Every recap write clears the cached views.
"""

import functools

from flask import current_app, request

from pickpool import cache

VIEW_PREFIX = "view"


def make_cache_key(*args, **kwargs):
    """Cache key from request path, query string and view arguments"""
    query = "&".join(f"{k}={v}" for k, v in sorted(request.args.items(multi=True)))
    args_str = "_".join(str(arg) for arg in args)
    kwargs_str = "_".join(f"{k}_{v}" for k, v in sorted(kwargs.items()))
    return f"{request.path}?{query}_{args_str}_{kwargs_str}".replace("/", "_")


def cached_route(timeout=300, key_prefix=VIEW_PREFIX):
    """
    Cache a view's return value.

    Only successful (2xx) responses are stored, so error payloads are never
    served from the cache.
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            cache_key = f"{key_prefix}_{make_cache_key(*args, **kwargs)}"

            result = cache.get(cache_key)
            if result is not None:
                current_app.logger.debug(f"Cache hit for key: {cache_key}")
                return result

            result = f(*args, **kwargs)
            status = result[1] if isinstance(result, tuple) and len(result) > 1 else 200
            if 200 <= int(status) < 300:
                cache.set(cache_key, result, timeout=timeout)
                current_app.logger.debug(f"Cache set for key: {cache_key}")

            return result

        return wrapped

    return decorator


def invalidate_recap_cache(week_id=None):
    """
    Drop cached recap and leaderboard views after a recap write.

    Cache backends without pattern deletion are cleared entirely; the cache
    only holds derived views.
    """
    try:
        cache.clear()
        if week_id:
            current_app.logger.debug(f"Cache cleared after writing recap {week_id}")
        else:
            current_app.logger.debug("Cache cleared")
    except Exception as e:
        # A cache outage must not fail a recap that is already committed
        current_app.logger.error(f"Failed to clear cache: {e}")

