"""Post factory for tests."""

from uuid import uuid4

from polyfactory.factories.sqlalchemy_factory import SQLAlchemyFactory

from tests.models import Post


class PostFactory(SQLAlchemyFactory[Post]):
    """Factory for creating test Post instances, unowned by default."""

    __model__ = Post

    @classmethod
    def title(cls) -> str:
        """Generate a post title."""
        return f"Post {uuid4().hex[:6]}"

    @classmethod
    def owner_id(cls) -> None:
        return None
