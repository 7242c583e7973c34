"""
Dialect strategies for catalog introspection and procedure calls.

Strategies register themselves by dialect name; sessions and settings look
them up here.
"""
from functools import lru_cache

from plugin_oracle.strategy.base import _STRATEGY_REGISTRY
from plugin_oracle.strategy.base import DatabaseStrategy as DatabaseStrategy
from plugin_oracle.strategy.base import ObjectName as ObjectName
from plugin_oracle.strategy.base import register_strategy as register_strategy
from plugin_oracle.strategy.oracle import OracleStrategy as OracleStrategy
from plugin_oracle.strategy.sqlite import SQLiteStrategy as SQLiteStrategy


def get_available_dialects() -> list[str]:
    return sorted(_STRATEGY_REGISTRY)


def is_supported_dialect(dialect: str) -> bool:
    return dialect in _STRATEGY_REGISTRY


def get_strategy_class(dialect: str) -> type[DatabaseStrategy]:
    """Strategy class registered for `dialect`.

    Raises
        ValueError: If no strategy is registered under that name
    """
    try:
        return _STRATEGY_REGISTRY[dialect]
    except KeyError:
        raise ValueError(f'no strategy for dialect {dialect!r}; '
                         f'choose one of {get_available_dialects()}') from None


@lru_cache(maxsize=8)
def get_strategy(dialect: str) -> DatabaseStrategy:
    """Shared strategy instance for `dialect`.
    """
    return get_strategy_class(dialect)()
