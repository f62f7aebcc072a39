"""
Resource declarations

A Resource describes how a SQLAlchemy model is exposed in the panel:

    class PostResource(Resource):
        model = Post
        with_relations = ("author",)
        default_sort = (("created_at", "desc"),)

        def fields(self):
            return [ID(), Text("Title").required().searchable(), BelongsTo("Author", resource="users")]

The declaration is read once, when the resource is registered (cfr. ResourceMetadata.build)
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .context import RequestContext


class Policy:
    """
    Access policy of a resource, every action is allowed by default.
    The HTTP layer checks the policy before it calls the data provider.
    """

    # pylint: disable=unused-argument
    def can_view_any(self, ctx: RequestContext) -> bool:
        return True

    def can_view(self, ctx: RequestContext, record: Any) -> bool:
        return True

    def can_create(self, ctx: RequestContext) -> bool:
        return True

    def can_update(self, ctx: RequestContext, record: Any) -> bool:
        return True

    def can_delete(self, ctx: RequestContext, record: Any) -> bool:
        return True


class Resource:
    """
    Base class of the resource declarations

    :param slug: url identifier, defaults to the hyphenated table name ("page_sections" => "page-sections")
    :param model: SQLAlchemy declarative model
    :param with_relations: relation keys that are always eager loaded
    :param default_sort: (column, direction) pairs used when the client doesn't sort
    :param search_columns: column keys matched by the search string, in addition to the searchable fields
    :param per_page: default page size, DEFAULT_PER_PAGE config when None
    :param internal: internal resources are not reachable on the external (api key) channel
    :param provider_class: DataProvider subclass, sapanel.provider.DataProvider when None
    """

    slug: Optional[str] = None
    title: Optional[str] = None
    model = None
    with_relations: Sequence[str] = ()
    default_sort: Sequence[Tuple[str, str]] = ()
    search_columns: Sequence[str] = ()
    per_page: Optional[int] = None
    internal = False
    provider_class = None
    policy_class = Policy

    def fields(self) -> List:
        return []

    def relations(self) -> Iterable[str]:
        return list(self.with_relations)

    def get_model(self):
        return self.model

    def get_slug(self) -> str:
        if self.slug:
            return self.slug
        return self.get_model().__tablename__.replace("_", "-")

    def get_title(self) -> str:
        return self.title or self.get_slug().replace("-", " ").title()

    def get_policy(self) -> Policy:
        return self.policy_class()
