"""
Cache utilities for Round Pick'em
Leaderboard reads are cached per season and dropped whenever scores can change.
"""

import functools

from flask import current_app

from roundpicks import cache


def leaderboard_cache_key(season_id, view="leaderboard"):
    return f"season_{season_id}_{view}"


def cached_season_view(view, timeout=300):
    """
    Decorator for caching a season-scoped read keyed by ``season_id``

    Args:
        view: Name of the view, part of the cache key
        timeout: Cache timeout in seconds (default 5 minutes)
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(season_id, *args, **kwargs):
            cache_key = leaderboard_cache_key(season_id, view)

            result = cache.get(cache_key)
            if result is not None:
                current_app.logger.debug(f"Cache hit for key: {cache_key}")
                return result

            result = f(season_id, *args, **kwargs)
            cache.set(cache_key, result, timeout=timeout)
            current_app.logger.debug(f"Cache set for key: {cache_key}")

            return result

        return wrapped

    return decorator


def invalidate_season_cache(season_id):
    """Drop every cached view of a season"""
    try:
        cache.delete_many(
            leaderboard_cache_key(season_id, "leaderboard"),
            leaderboard_cache_key(season_id, "graph"),
        )
        current_app.logger.debug(f"Cache cleared for season {season_id}")
    except Exception as e:
        # A cache outage must not fail the write that triggered the invalidation
        current_app.logger.error(f"Failed to clear cache for season {season_id}: {e}")
