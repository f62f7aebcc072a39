import threading

import pytest

from sapanel import Channel, DataProvider, NotFoundError, ResourceRegistry, UnAuthorizedError
from sapanel.registry import RegistrySnapshot

from conftest import RESOURCES, Post, PostResource, TagResource, UserProvider


def test_resolve_for_request(registry):
    binding = registry.resolve_for_request("posts", Channel.EXTERNAL)
    assert binding.slug == "posts"
    assert binding.provider.metadata is binding.metadata
    assert registry.resolve_for_request("users", Channel.INTERNAL).slug == "users"


def test_internal_resources_are_not_external(registry):
    assert registry.is_internal("users")
    with pytest.raises(UnAuthorizedError) as exc_info:
        registry.resolve_for_request("users", Channel.EXTERNAL)
    assert exc_info.value.status_code == 403
    assert exc_info.value.resource == "users"
    assert "users" not in registry.public_slugs()
    assert "users" in registry.slugs()


def test_unknown_slug(registry):
    with pytest.raises(NotFoundError):
        registry.resolve_for_request("missing")
    assert registry.get("missing") is None
    assert registry.provider("missing") is None
    assert "missing" not in registry


def test_internal_declarations(app):
    registry = ResourceRegistry(internal_slugs=())
    registry.register_all(RESOURCES)
    assert not registry.is_internal("users")
    registry.register(type("InternalTags", (TagResource,), {"internal": True}))
    assert registry.is_internal("tags")
    registry.register(PostResource, internal=True)
    assert registry.public_slugs() == ["comments", "page-sections", "profiles", "users", "videos"]


def test_providers(registry):
    assert isinstance(registry.provider("users"), UserProvider)
    assert type(registry.provider("posts")) is DataProvider

    class PostProvider(DataProvider):
        pass

    registry.register(PostResource, provider_class=PostProvider)
    assert isinstance(registry.provider("posts"), PostProvider)
    assert registry.provider("posts").registry is registry


def test_snapshots_are_immutable(registry):
    snapshot = registry.snapshot
    registry.unregister("tags")
    assert "tags" in snapshot.bindings
    assert "tags" not in registry
    assert registry.snapshot.version == snapshot.version + 1
    with pytest.raises(TypeError):
        snapshot.bindings["tags"] = None
    assert not registry.unregister("tags")


def test_for_model(registry):
    assert registry.for_model(Post).slug == "posts"
    registry.register(type("ArticleResource", (PostResource,), {"slug": "articles"}))
    # the first registered resource is kept for the model
    assert registry.for_model(Post).slug == "posts"
    registry.unregister("posts")
    assert registry.for_model(Post).slug == "articles"
    registry.clear()
    assert registry.for_model(Post) is None
    assert len(registry) == 0


def test_concurrent_registration(registry):
    errors = []
    snapshots = []

    def register(index):
        try:
            registry.register(type(f"PostResource{index}", (PostResource,), {"slug": f"posts-{index}"}))
        except Exception as exc:  # pragma: no cover
            errors.append(exc)

    def read():
        for _ in range(200):
            snapshot = registry.snapshot
            snapshots.append(snapshot)
            registry.resolve_for_request("tags", Channel.EXTERNAL)

    threads = [threading.Thread(target=register, args=(i,)) for i in range(8)]
    threads += [threading.Thread(target=read) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert not errors
    assert len(registry) == len(RESOURCES) + 8
    assert all(f"posts-{i}" in registry for i in range(8))
    for snapshot in snapshots:
        assert all(slug == binding.slug for slug, binding in snapshot.bindings.items())


def test_empty_snapshot():
    snapshot = RegistrySnapshot()
    assert dict(snapshot.bindings) == {}
    assert dict(snapshot.models) == {}
    assert snapshot.internal == frozenset()
    assert ResourceRegistry().snapshot.version == 0
    assert ResourceRegistry().bindings_for(Channel.EXTERNAL) == []


def test_bindings_for_channel(registry):
    assert [binding.slug for binding in registry.bindings_for()] == registry.slugs()
    assert [binding.slug for binding in registry.bindings_for(Channel.EXTERNAL)] == registry.public_slugs()


def test_bindings_for_reads_a_single_snapshot(registry):
    bindings = registry.bindings_for(Channel.EXTERNAL)
    registry.unregister("tags")
    # the titles of the returned bindings stay readable after the unregistration
    assert "Tags" in [binding.metadata.title for binding in bindings]
    assert "tags" not in [binding.slug for binding in registry.bindings_for(Channel.EXTERNAL)]
