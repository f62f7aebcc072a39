import pytest

from sapanel import (
    ID,
    BelongsTo,
    HasMany,
    HasOne,
    MorphMany,
    MorphTo,
    Password,
    RelationShape,
    Resource,
    ResourceMetadata,
    Select,
    SystemValidationError,
    Text,
    Textarea,
    ValidationError,
)
from sapanel.context import EXTERNAL_DETAIL, EXTERNAL_INDEX, INTERNAL_DETAIL, INTERNAL_INDEX, Channel, OutputContext, OutputView
from sapanel.fields import HIDE_ON_API, HIDE_ON_LIST, to_key
from sapanel.metadata import column_json_type
from sapanel.query import DESC, Query, Sort

from conftest import Comment, PageSectionResource, Post, PostResource, User, UserResource


def test_to_key():
    assert to_key("Created At") == "created_at"
    assert to_key("createdAt") == "created_at"
    assert to_key(" Page-Section ") == "page_section"


def test_field_flags():
    field = Text("Name").hide_on_api().hide_on_list()
    assert field.context == "hide_on_list hide_on_api"
    assert field.hidden_for(INTERNAL_INDEX)
    assert field.hidden_for(EXTERNAL_DETAIL)
    assert not field.hidden_for(INTERNAL_DETAIL)

    password = Password()
    assert password.key == "password"
    assert {HIDE_ON_LIST, HIDE_ON_API} <= password.flags
    assert password.resolve_value("secret", None) is None

    assert Textarea("Bio").hidden_for(INTERNAL_INDEX)
    assert HasMany("Posts").hidden_for(EXTERNAL_INDEX)
    assert Text("Title").only_on_form().hidden_for(EXTERNAL_INDEX)


def test_grid_and_channel_visibility():
    grid = OutputContext(Channel.INTERNAL, OutputView.GRID)
    field = Text("Summary").hide_on_grid()
    assert field.context == "hide_on_grid"
    assert field.hidden_for(grid)
    assert not field.hidden_for(INTERNAL_INDEX)
    assert Text("Body").hide_on_list().hidden_for(grid)
    assert not Text("Title").hidden_for(grid)

    assert Text("Note").hide_on_api().hidden_on_channel(Channel.EXTERNAL)
    assert not Text("Note").hide_on_api().hidden_on_channel(Channel.INTERNAL)
    # hidden in a single view only, still usable for filters
    assert not Text("Note").hide_on_list().hidden_on_channel(Channel.EXTERNAL)


def test_view_shortcuts():
    list_only = Text("Views").only_on_list()
    assert not list_only.hidden_for(INTERNAL_INDEX)
    assert list_only.hidden_for(INTERNAL_DETAIL)
    assert list_only.context == "hide_on_detail hide_on_create hide_on_update"
    detail_only = Text("Bio").only_on_detail()
    assert detail_only.hidden_for(INTERNAL_INDEX)
    assert not detail_only.hidden_for(INTERNAL_DETAIL)


def test_field_callbacks():
    field = Text("Title").store_as(str.strip).resolve(lambda value, instance: value.upper())
    assert field.store("  a ") == "a"
    assert field.resolve_value("a", None) == "A"
    assert Select("Status").options({"a": "A"}).props == {"options": {"a": "A"}}
    assert Text("Color").with_props("swatch", True).props == {"swatch": True}


def test_relation_shapes():
    assert BelongsTo("Author").shape == RelationShape.SCALAR
    assert HasOne("Profile").shape == RelationShape.DETAIL
    assert HasMany("Posts").shape == RelationShape.COLLECTION
    morph = MorphTo("Commentable", types={"posts": Post})
    assert (morph.type_column, morph.id_column) == ("commentable_type", "commentable_id")
    assert morph.type_for_model(Post) == "posts"
    assert morph.type_for_model(User) is None
    morph_many = MorphMany("Comments", model=Comment, morph_name="commentable")
    assert morph_many.type_column == "commentable_type"
    assert not ID().is_relation


def test_build_user_metadata(app):
    metadata = ResourceMetadata.build(UserResource)
    assert metadata.slug == "users"
    assert metadata.title == "Users"
    assert metadata.primary_key == "id"
    assert [bf.key for bf in metadata.fields] == ["id", "name", "email", "status", "password", "profile", "posts"]
    assert [bf.key for bf in metadata.relation_fields] == ["profile", "posts"]
    assert metadata.default_relations == frozenset(("profile",))
    assert metadata.default_sorts == (Sort("id"),)
    assert metadata.search_columns == ("name",)

    assert metadata.field("id").wire_type == "integer"
    assert metadata.field("name").wire_type == "string"
    assert metadata.field("profile").related_model.__name__ == "Profile"
    # password isn't a column of users, the resolve callback makes it a computed field
    assert not metadata.field("password").is_stored
    assert metadata.field("name").is_stored
    assert not metadata.field("id").is_writable


def test_build_binds_foreign_keys(app):
    metadata = ResourceMetadata.build(PostResource())
    author = metadata.field("author")
    assert author.foreign_key == "author_id"
    assert author.relationship.key == "author"
    assert metadata.field("comments").related_model is Comment
    assert metadata.field("views").wire_type == "number"


def test_build_virtual_field(app):
    metadata = ResourceMetadata.build(PageSectionResource)
    assert metadata.slug == "page-sections"
    assert metadata.title == "Page Sections"
    assert metadata.default_sorts == (Sort("position"),)
    published = metadata.field("published")
    assert published.column is None
    assert not published.is_stored


def test_internal_override(app):
    assert not ResourceMetadata.build(PostResource).internal
    assert ResourceMetadata.build(PostResource, internal=True).internal


def _resource(model, fields, **attrs):
    attrs.update(model=model, fields=lambda self: fields)
    return type("TestResource", (Resource,), attrs)


@pytest.mark.parametrize(
    "resource",
    [
        _resource(Post, [ID(), Text("Missing")]),
        _resource(Post, [ID(), Text("Title"), Text("Title")]),
        _resource(Post, [ID(), HasMany("Author")]),
        _resource(Post, [ID(), BelongsTo("Tags")]),
        _resource(User, [ID(), HasOne("Posts")]),
        _resource(Post, [ID(), MorphTo("Commentable", types={"posts": Post})]),
        _resource(Comment, [ID(), MorphTo("Commentable")]),
        _resource(Post, [ID(), MorphMany("Comments", model=Comment, morph_name="owner")]),
        _resource(Post, [ID(), MorphMany("Comments")]),
        _resource(Post, [ID(), Text("Title")], with_relations=("title",)),
        _resource(Post, [ID(), Text("Title")], default_sort=(("missing", "asc"),)),
        _resource(Post, [ID(), Text("Title")], search_columns=("missing",)),
        _resource(None, [ID()]),
        _resource(object, [ID()]),
    ],
)
def test_invalid_declarations(app, resource):
    with pytest.raises(SystemValidationError):
        ResourceMetadata.build(resource)


def test_relations_for(app):
    metadata = ResourceMetadata.build(PostResource)
    assert metadata.relations_for() == frozenset(("author",))
    query = Query(requested_relations=frozenset(("tags", "title", "missing")))
    assert metadata.relations_for(query) == frozenset(("author", "tags"))


def test_query_defaults(app):
    metadata = ResourceMetadata.build(_resource(Post, [ID()], per_page=25, default_sort=(("views", "desc"),)))
    defaults = metadata.query_defaults()
    assert defaults.per_page == 25
    assert defaults.sorts == (Sort("views", DESC),)


def test_coerce_id(app):
    metadata = ResourceMetadata.build(PostResource)
    assert metadata.coerce_id("3") == 3
    assert metadata.coerce_id(3) == 3
    with pytest.raises(ValidationError):
        metadata.coerce_id("abc")


def test_column_json_type(app):
    assert column_json_type(Post.__table__.c.views) == "integer"
    assert column_json_type(Post.__table__.c.title) == "string"
    assert column_json_type(User.__table__.c.created_at) == "string"
