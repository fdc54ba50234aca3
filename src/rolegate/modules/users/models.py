"""User database models."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from rolegate.core.constants import MAX_EMAIL_LENGTH, MAX_NAME_LENGTH
from rolegate.core.database.base import Base, TimestampMixin, UUIDMixin


class User(Base, UUIDMixin, TimestampMixin):
    """User model, the default authority checked by the clipboard.

    Any mapped model with an ``id`` can act as an authority; roles and
    permissions reference it by id alone.

    Attributes:
        email: Unique email address
        full_name: User's full name
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(MAX_EMAIL_LENGTH),
        nullable=False,
        unique=True,
        index=True,
    )
    full_name: Mapped[str] = mapped_column(
        String(MAX_NAME_LENGTH),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
