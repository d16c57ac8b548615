# provisioning_engine/providers/registry.py

from typing import Dict, Optional

from provisioning_engine.core.models import ResourceKind
from provisioning_engine.providers.base import ResourceProvider


class ProviderRegistry:
    """Maps resource kinds to providers, with a default for the rest."""

    def __init__(self, default: ResourceProvider, overrides: Optional[Dict[ResourceKind, ResourceProvider]] = None):
        self._default = default
        self._overrides = dict(overrides or {})

    def register(self, kind: ResourceKind, provider: ResourceProvider) -> None:
        self._overrides[kind] = provider

    def for_kind(self, kind: ResourceKind) -> ResourceProvider:
        return self._overrides.get(kind, self._default)
