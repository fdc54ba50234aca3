"""Ownership lookups for owner-restricted abilities."""

from collections.abc import Callable
from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm.state import InstanceState

from rolegate.config import settings


OwnershipCallback = Callable[[Any, Any], bool]


class Ownership:
    """Decides whether an authority owns a model instance.

    By default a model is owned when its owner attribute (``owner_id``
    unless configured otherwise) equals the authority's id. Individual
    model classes can name a different attribute or supply a callback
    receiving ``(model, authority)``.
    """

    def __init__(self, attribute: str | None = None) -> None:
        self.attribute = attribute or settings.ownership_attribute
        self._owned_via: dict[type, str | OwnershipCallback] = {}

    def owned_via(self, model: type, via: str | OwnershipCallback) -> None:
        """Register how ownership is determined for a model class."""
        self._owned_via[model] = via

    def is_owned_by(self, authority: Any, model: Any) -> bool:
        """Whether ``authority`` owns ``model``.

        Anything other than a mapped model instance is never owned.
        """
        if not isinstance(sa_inspect(model, raiseerr=False), InstanceState):
            return False

        via = self._resolve(type(model))
        if callable(via):
            return bool(via(model, authority))

        owner = getattr(model, via, None)
        return owner is not None and owner == authority.id

    def _resolve(self, cls: type) -> str | OwnershipCallback:
        for klass in cls.__mro__:
            if klass in self._owned_via:
                return self._owned_via[klass]
        return self.attribute


_ownership = Ownership()


def get_ownership() -> Ownership:
    """Get the process-wide ownership registry."""
    return _ownership
