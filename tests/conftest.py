import datetime

import pytest
from flask import Flask

from sapanel import DB as db
from sapanel import (
    ID,
    BelongsTo,
    BelongsToMany,
    CredentialedDataProvider,
    DateTime,
    Email,
    HasMany,
    HasOne,
    MorphMany,
    MorphTo,
    Number,
    Password,
    Resource,
    ResourceRegistry,
    SAPanel,
    Select,
    Text,
    Textarea,
)

post_tags = db.Table(
    "post_tags",
    db.Column("post_id", db.Integer, db.ForeignKey("posts.id"), primary_key=True),
    db.Column("tag_id", db.Integer, db.ForeignKey("tags.id"), primary_key=True),
)


class User(db.Model):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(128), unique=True, nullable=False)
    status = db.Column(db.String(16), default="active")
    created_at = db.Column(db.DateTime, default=datetime.datetime.now)
    profile = db.relationship("Profile", back_populates="user", uselist=False)
    posts = db.relationship("Post", back_populates="author")


class Account(db.Model):
    __tablename__ = "accounts"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    provider = db.Column(db.String(32), nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)


class Profile(db.Model):
    __tablename__ = "profiles"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    bio = db.Column(db.Text)
    user = db.relationship("User", back_populates="profile")


class Post(db.Model):
    __tablename__ = "posts"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(128), nullable=False)
    status = db.Column(db.String(16), default="draft")
    views = db.Column(db.Integer, default=0)
    note = db.Column(db.String(128))
    author_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    author = db.relationship("User", back_populates="posts")
    tags = db.relationship("Tag", secondary=post_tags, back_populates="posts")


class Tag(db.Model):
    __tablename__ = "tags"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False)
    posts = db.relationship("Post", secondary=post_tags, back_populates="tags")


class Video(db.Model):
    __tablename__ = "videos"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(128), nullable=False)


class Comment(db.Model):
    __tablename__ = "comments"
    id = db.Column(db.Integer, primary_key=True)
    body = db.Column(db.String(256), nullable=False)
    commentable_type = db.Column(db.String(32))
    commentable_id = db.Column(db.Integer)


class PageSection(db.Model):
    __tablename__ = "page_sections"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(64), nullable=False)
    position = db.Column(db.Integer, default=0)


#
# Resources
#
class UserProvider(CredentialedDataProvider):
    credential_model = Account
    credential_defaults = {"provider": "credential"}


class UserResource(Resource):
    model = User
    provider_class = UserProvider
    with_relations = ("profile",)

    def fields(self):
        return [
            ID(),
            Text("Name").required().searchable(),
            Email("Email").required().hide_on_api(),
            Select("Status").options({"active": "Active", "pending": "Pending", "banned": "Banned"}),
            Password("Password"),
            HasOne("Profile", resource="profiles"),
            HasMany("Posts", resource="posts"),
        ]


class ProfileResource(Resource):
    model = Profile

    def fields(self):
        return [ID(), Textarea("Bio"), BelongsTo("User", resource="users")]


class PostResource(Resource):
    model = Post
    with_relations = ("author",)
    default_sort = (("id", "asc"),)

    def fields(self):
        return [
            ID(),
            Text("Title").required().searchable(),
            Select("Status"),
            Number("Views").hide_on_grid(),
            Text("Note").hide_on_api(),
            BelongsTo("Author", resource="users"),
            BelongsToMany("Tags", resource="tags"),
            MorphMany("Comments", model=Comment, morph_name="commentable", resource="comments"),
        ]


class TagResource(Resource):
    model = Tag

    def fields(self):
        return [ID(), Text("Name").required()]


class VideoResource(Resource):
    model = Video

    def fields(self):
        return [ID(), Text("Title").required(), MorphMany("Comments", model=Comment, morph_name="commentable")]


class CommentResource(Resource):
    model = Comment
    with_relations = ("commentable",)

    def fields(self):
        return [ID(), Text("Body").required(), MorphTo("Commentable", types={"posts": Post, "videos": Video})]


class PageSectionResource(Resource):
    model = PageSection
    default_sort = (("position", "asc"),)

    def fields(self):
        return [ID(), Text("Title").required(), Number("Position"), DateTime("Published", key="published").virtual()]


RESOURCES = (UserResource, ProfileResource, PostResource, TagResource, VideoResource, CommentResource, PageSectionResource)


@pytest.fixture
def app():
    app = Flask("sapanel_test")
    app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
    app.config["TESTING"] = True
    db.init_app(app)
    with app.app_context():
        SAPanel(app, app_db=db)
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def registry(app):
    registry = ResourceRegistry()
    registry.register_all(RESOURCES)
    return registry


@pytest.fixture
def seed(app):
    """
    Users with profiles, posts, tags and comments
    """
    jane = User(name="Jane Doe", email="jane@example.com", status="active")
    john = User(name="John Roe", email="john@example.com", status="pending")
    mia = User(name="Mia Moe", email="mia@example.com", status="banned")
    db.session.add_all([jane, john, mia])
    db.session.flush()
    db.session.add(Profile(user_id=jane.id, bio="Writer"))
    news, tips = Tag(name="news"), Tag(name="tips")
    first = Post(title="First post", status="published", views=10, note="internal", author=jane, tags=[news, tips])
    second = Post(title="Second post", status="draft", views=3, author=jane, tags=[news])
    third = Post(title="Other post", status="published", views=7, author=john)
    video = Video(title="Intro")
    db.session.add_all([first, second, third, video])
    db.session.flush()
    db.session.add_all(
        [
            Comment(body="Nice", commentable_type="posts", commentable_id=first.id),
            Comment(body="Great", commentable_type="posts", commentable_id=first.id),
            Comment(body="Cool video", commentable_type="videos", commentable_id=video.id),
            Comment(body="Orphan", commentable_type="articles", commentable_id=1),
        ]
    )
    db.session.add_all([PageSection(title="Header", position=1), PageSection(title="Footer", position=2)])
    db.session.commit()
    return {"jane": jane.id, "john": john.id, "mia": mia.id, "first": first.id, "second": second.id, "third": third.id, "video": video.id}
