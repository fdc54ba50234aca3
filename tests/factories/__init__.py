"""Test data factories."""

from tests.factories.post import PostFactory
from tests.factories.user import UserFactory


__all__ = [
    "PostFactory",
    "UserFactory",
]
