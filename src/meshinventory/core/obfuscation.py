"""One-way obfuscation of cluster, node and namespace names."""

import hashlib
from typing import Dict


def obfuscate(name: str) -> str:
    """Return the SHA-256 hex digest of ``name``."""
    return hashlib.sha256(name.encode("utf-8")).hexdigest()


class IdentityMapper:
    """Maps raw identities to the keys written into the snapshot.

    When disabled the raw name is used as is. The mapping lives only for the
    duration of a run.
    """

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._cache: Dict[str, str] = {}

    def __call__(self, name: str) -> str:
        if not self.enabled:
            return name
        if name not in self._cache:
            self._cache[name] = obfuscate(name)
        return self._cache[name]
