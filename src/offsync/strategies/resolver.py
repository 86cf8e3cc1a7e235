"""Strategy resolution -- map a request to its caching policy.

Classification is a pure function of the HTTP method and the URL path. It
is expressed as an ordered list of :class:`Rule` objects; the first rule
whose predicate matches wins. The default rules, in priority order:

1. any method other than GET -> ``bypass``
2. path under the API namespace -> ``network_first``
3. path ending in a static-asset extension -> ``cache_first``
4. anything else -> ``stale_while_revalidate``

The last rule always matches, so every request maps to exactly one
strategy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlsplit

from offsync.models import EngineConfig, Strategy

Predicate = Callable[[str, str], bool]
"""``(method, path) -> bool``"""


@dataclass(frozen=True)
class Rule:
    """A named ``(predicate, strategy)`` pair."""

    name: str
    predicate: Predicate
    strategy: Strategy

    def matches(self, method: str, path: str) -> bool:
        return self.predicate(method, path)


def default_rules(config: EngineConfig) -> list[Rule]:
    """Build the built-in rule list for *config*."""
    api_prefix = "/" + config.api_prefix.strip("/") + "/"
    api_root = api_prefix.rstrip("/")
    extensions = tuple(ext.lower() for ext in config.static_extensions)

    def _is_api(method: str, path: str) -> bool:
        return path.startswith(api_prefix) or path == api_root

    return [
        Rule("non-get", lambda method, path: method != "GET", Strategy.BYPASS),
        Rule("api", _is_api, Strategy.NETWORK_FIRST),
        Rule(
            "static-asset",
            lambda method, path: path.lower().endswith(extensions),
            Strategy.CACHE_FIRST,
        ),
        Rule("default", lambda method, path: True, Strategy.STALE_WHILE_REVALIDATE),
    ]


class StrategyResolver:
    """Evaluates an ordered rule list.

    Extra rules passed to :meth:`add_rule` are evaluated before the
    built-in ones, so deployments can pin individual paths to a strategy.

    Args:
        config: Engine configuration supplying the API prefix and the
            static extension allowlist.
    """

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self._config = config or EngineConfig()
        self._custom: list[Rule] = []
        self._defaults = default_rules(self._config)

    @property
    def rules(self) -> list[Rule]:
        return [*self._custom, *self._defaults]

    def add_rule(self, rule: Rule) -> None:
        self._custom.append(rule)

    def classify(self, method: str, url: str) -> Strategy:
        method = method.upper()
        path = urlsplit(url).path or "/"
        for rule in self.rules:
            if rule.matches(method, path):
                return rule.strategy
        return Strategy.STALE_WHILE_REVALIDATE  # pragma: no cover

    def is_api(self, url: str) -> bool:
        """Return ``True`` if *url* lies in the API namespace."""
        path = urlsplit(url).path or "/"
        return self._defaults[1].matches("GET", path)


def classify(method: str, url: str, config: Optional[EngineConfig] = None) -> Strategy:
    """Classify a request with the default rules.

    Example::

        >>> classify("GET", "/api/transactions")
        <Strategy.NETWORK_FIRST: 'network_first'>
        >>> classify("POST", "/api/transactions")
        <Strategy.BYPASS: 'bypass'>
    """
    return StrategyResolver(config).classify(method, url)
