"""
Domain and Proxy Rotator

Round-robin selection over the embed mirror domains and the outbound HTTP
proxies. Each prober owns its rotator instance, so two jobs in the same
process never share a cursor.

Usage:
    rotator = Rotator(["vidsrc.me", "vidsrc.in"], ["154.213.165.20:3128"])
    rotator.next_domain()  # "vidsrc.me"
    rotator.next_domain()  # "vidsrc.in"
    rotator.next_domain()  # "vidsrc.me"
    rotator.next_proxy()   # "http://154.213.165.20:3128"
"""

import threading
from typing import List, Sequence

from availarr.config import Config
from availarr.services.exceptions import ConfigurationError


def _proxy_url(proxy: str) -> str:
    if "://" in proxy:
        return proxy
    return f"http://{proxy}"


class Rotator:
    """
    Thread-safe round-robin cursor over domains and proxies.

    Both lists are copied at construction; an empty list is a configuration
    error because probing could never make progress.
    """

    def __init__(self, domains: Sequence[str], proxies: Sequence[str]):
        if not domains:
            raise ConfigurationError("Rotator needs at least one embed domain")
        if not proxies:
            raise ConfigurationError("Rotator needs at least one proxy")

        self._domains: List[str] = list(domains)
        self._proxies: List[str] = [_proxy_url(proxy) for proxy in proxies]
        self._domain_index = 0
        self._proxy_index = 0
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls) -> 'Rotator':
        return cls(Config.VIDSRC_DOMAINS, Config.PROXY_LIST)

    @property
    def domain_count(self) -> int:
        return len(self._domains)

    @property
    def proxy_count(self) -> int:
        return len(self._proxies)

    def next_domain(self) -> str:
        """Return the next domain in list order, wrapping at the end."""
        with self._lock:
            domain = self._domains[self._domain_index]
            self._domain_index = (self._domain_index + 1) % len(self._domains)
            return domain

    def next_proxy(self) -> str:
        """Return the next proxy URL (``http://host:port``), wrapping at the end."""
        with self._lock:
            proxy = self._proxies[self._proxy_index]
            self._proxy_index = (self._proxy_index + 1) % len(self._proxies)
            return proxy
