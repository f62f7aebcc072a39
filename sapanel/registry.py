"""
Resource registry

Maps the resource slugs to their metadata and data provider.

Registration serializes on a single lock and publishes a new immutable snapshot,
lookups read the current snapshot without locking:

    registry = ResourceRegistry()
    registry.register(UserResource)
    binding = registry.resolve_for_request("users", request.channel)

Internal resources are resolvable on the internal channel only,
`resolve_for_request` is the one place where this is checked.
"""

from __future__ import annotations

import dataclasses
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional

import sapanel
from .context import Channel
from .errors import NotFoundError, UnAuthorizedError
from .metadata import ResourceMetadata
from .provider import DataProvider

# resources holding authentication data are always internal
DEFAULT_INTERNAL_SLUGS = frozenset(("users", "accounts", "sessions", "verifications"))


@dataclass(frozen=True)
class Binding:
    metadata: ResourceMetadata
    provider: DataProvider

    @property
    def slug(self) -> str:
        return self.metadata.slug

    @property
    def internal(self) -> bool:
        return self.metadata.internal


@dataclass(frozen=True)
class RegistrySnapshot:
    bindings: Mapping[str, Binding] = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    models: Mapping[Any, str] = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    version: int = 0

    @property
    def internal(self) -> FrozenSet[str]:
        return frozenset(slug for slug, binding in self.bindings.items() if binding.internal)


class ResourceRegistry:
    """
    :param internal_slugs: slugs that are registered as internal, whatever the resource declares
    """

    def __init__(self, internal_slugs: Iterable[str] = DEFAULT_INTERNAL_SLUGS) -> None:
        self._lock = threading.Lock()
        self._internal_slugs = frozenset(internal_slugs)
        self._snapshot = RegistrySnapshot()

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    #
    # Writers
    #
    def register(self, resource, internal: Optional[bool] = None, provider_class=None) -> ResourceMetadata:
        """
        Register (or replace) a resource

        :param resource: Resource instance or subclass
        :param internal: overrides the resource declaration
        :param provider_class: overrides the resource provider_class
        :return: the metadata of the resource
        """
        # building the metadata only reads the declaration, do it before taking the lock
        metadata = ResourceMetadata.build(resource, internal=internal)
        if metadata.slug in self._internal_slugs and not metadata.internal:
            metadata = dataclasses.replace(metadata, internal=True)
        provider_class = provider_class or metadata.provider_class or DataProvider
        binding = Binding(metadata=metadata, provider=provider_class(metadata, registry=self))

        with self._lock:
            current = self._snapshot
            bindings = dict(current.bindings)
            if metadata.slug in bindings:
                sapanel.log.info(f"Re-registering resource {metadata.slug}")
            bindings[metadata.slug] = binding
            self._publish(bindings, current.version)
        sapanel.log.debug(f"Registered resource {metadata.slug} (internal: {metadata.internal})")
        return metadata

    def register_all(self, resources: Iterable[Any]) -> List[ResourceMetadata]:
        return [self.register(resource) for resource in resources]

    def unregister(self, slug: str) -> bool:
        """
        :return: False if `slug` wasn't registered
        """
        with self._lock:
            current = self._snapshot
            if slug not in current.bindings:
                return False
            bindings = dict(current.bindings)
            del bindings[slug]
            self._publish(bindings, current.version)
        return True

    def clear(self) -> None:
        with self._lock:
            self._publish({}, self._snapshot.version)

    def _publish(self, bindings: dict, version: int) -> None:
        models = {}
        for slug, binding in bindings.items():
            # the first resource registered for a model is used for its nested records
            models.setdefault(binding.metadata.model, slug)
        # a single assignment: readers see the old or the new snapshot, never a mix
        self._snapshot = RegistrySnapshot(bindings=MappingProxyType(bindings), models=MappingProxyType(models), version=version + 1)

    #
    # Readers
    #
    def get(self, slug: str) -> Optional[ResourceMetadata]:
        binding = self._snapshot.bindings.get(slug)
        return binding.metadata if binding is not None else None

    def provider(self, slug: str) -> Optional[DataProvider]:
        binding = self._snapshot.bindings.get(slug)
        return binding.provider if binding is not None else None

    def for_model(self, model) -> Optional[ResourceMetadata]:
        snapshot = self._snapshot
        slug = snapshot.models.get(model)
        if slug is None:
            return None
        return snapshot.bindings[slug].metadata

    def slugs(self) -> List[str]:
        return sorted(self._snapshot.bindings)

    def public_slugs(self) -> List[str]:
        return sorted(slug for slug, binding in self._snapshot.bindings.items() if not binding.internal)

    def bindings_for(self, channel: Channel = Channel.INTERNAL) -> List[Binding]:
        """
        :return: the bindings available on `channel`, sorted by slug, read from a single snapshot
        """
        bindings = self._snapshot.bindings
        return [
            binding for slug, binding in sorted(bindings.items()) if not (binding.internal and channel == Channel.EXTERNAL)
        ]

    def is_internal(self, slug: str) -> bool:
        binding = self._snapshot.bindings.get(slug)
        return binding is not None and binding.internal

    def __contains__(self, slug) -> bool:
        return slug in self._snapshot.bindings

    def __len__(self) -> int:
        return len(self._snapshot.bindings)

    def resolve_for_request(self, slug: str, channel: Channel = Channel.INTERNAL) -> Binding:
        """
        Resolve the resource of a request

        :raises NotFoundError: unknown slug
        :raises UnAuthorizedError: internal resource requested on the external channel
        """
        binding = self._snapshot.bindings.get(slug)
        if binding is None:
            raise NotFoundError(f"resource {slug}").with_context(resource=slug, operation="resolve")
        if binding.internal and channel == Channel.EXTERNAL:
            raise UnAuthorizedError(f"resource {slug} is not available on the {channel.value} channel").with_context(
                resource=slug, operation="resolve"
            )
        return binding
