"""Version-keyed cache for recombined operators."""

import logging

log = logging.getLogger(__name__)


class CachedOperator:
    """Holds an operator built by ``build()`` and the key it was built for.

    The key is typically ``(coefficient_version, mesh_version)``; the operator
    is rebuilt only when ``get`` is called with a different key or after
    ``invalidate()``.
    """

    def __init__(self, name, build):
        self.name = name
        self._build = build
        self._key = None
        self._value = None
        self.n_builds = 0

    def is_stale(self, key):
        return self._value is None or self._key != key

    def get(self, key):
        if self.is_stale(key):
            self._value = self._build()
            self._key = key
            self.n_builds += 1
            log.debug(f"Rebuilt {self.name} for key {key}")
        return self._value

    def invalidate(self):
        self._value = None
        self._key = None
