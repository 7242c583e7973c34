"""
Catalog caching for strategy lookups.

Column and procedure-parameter descriptions are cached per strategy method
in cachetools TTLCache instances, keyed by session. Caches are cleared
whenever a session is opened or closed, so entries never outlive the
catalog they describe.
"""
import functools
import logging
import threading

import cachetools

logger = logging.getLogger(__name__)


class Cache:
    """Cache manager for catalog lookups.

    Thread-safe singleton that manages all TTL caches.
    """

    _instance = None
    _caches: dict[str, cachetools.TTLCache] = {}
    _lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'Cache':
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get_cache(self, name: str, maxsize: int = 100, ttl: int = 300) -> cachetools.TTLCache:
        """Get or create a TTL cache with the given name.

        Args:
            name: Name of the cache
            maxsize: Maximum cache size
            ttl: Time-to-live in seconds

        Returns
            TTLCache instance
        """
        if name not in self._caches:
            with self._lock:
                if name not in self._caches:
                    self._caches[name] = cachetools.TTLCache(maxsize=maxsize, ttl=ttl)
        return self._caches[name]

    def clear_all(self) -> None:
        """Clear all managed caches."""
        with self._lock:
            for cache in self._caches.values():
                cache.clear()


def _create_cache_key(session_id: int, name: str, method_args: tuple, method_kwargs: dict) -> str:
    """Create a deterministic cache key from the session, the object name and
    extra arguments.
    """
    args_str = ':'.join(repr(arg) for arg in method_args)
    kwargs_str = ':'.join(
        f'{k}={repr(v)}' for k, v in sorted(method_kwargs.items())
        if k != 'bypass_cache'
    )
    return f'{session_id}:{name}:{args_str}:{kwargs_str}'


def cacheable_strategy(cache_name: str, ttl: int = 300, maxsize: int = 50):
    """Decorator for caching strategy catalog lookups.

    The decorated method must have the signature
    ``method(self, cn, name, *args, **kwargs)``. Results are keyed by
    ``cn.session_id``, ``name`` and the remaining arguments, so sessions on
    different databases never share entries. Pass ``bypass_cache=True`` to
    force a fresh catalog read (the fresh result replaces the cached one).

    Args:
        cache_name: Base name for the cache
        ttl: Time-to-live in seconds
        maxsize: Maximum cache size
    """
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, cn, name, *args, bypass_cache=False, **kwargs):
            specific_cache_name = f'{cache_name}_{self.__class__.__name__}_{method.__name__}'
            cache = Cache.get_instance().get_cache(specific_cache_name, ttl=ttl, maxsize=maxsize)
            cache_key = _create_cache_key(cn.session_id, name, args, kwargs)

            if not bypass_cache and cache_key in cache:
                logger.debug(f'Cache hit for {method.__name__}({name})')
                return cache[cache_key]

            if bypass_cache:
                logger.debug(f'Bypassing cache for {method.__name__}({name})')
            else:
                logger.debug(f'Cache miss for {method.__name__}({name})')
            result = method(self, cn, name, *args, **kwargs)
            cache[cache_key] = result
            return result

        return wrapper
    return decorator
