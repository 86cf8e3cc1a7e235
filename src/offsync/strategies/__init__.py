"""Request classification and caching strategies.

:func:`classify` maps a request to a :class:`~offsync.models.Strategy`
through an ordered rule list, and :class:`StrategyExecutor` runs the chosen
strategy against a :class:`~offsync.cache.CacheStore` and a
:class:`~offsync.transport.Transport`.
"""

from offsync.strategies.executors import StrategyExecutor
from offsync.strategies.resolver import Rule, StrategyResolver, classify

__all__ = ["Rule", "StrategyExecutor", "StrategyResolver", "classify"]
