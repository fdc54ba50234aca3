"""Authorization gate.

The gate is the dispatcher applications ask "may this authority do
this?". It runs registered before-callbacks, then the ability's own
callback or the target's policy, then after-callbacks. Callbacks and
policy methods may be plain functions or coroutines.

A before-callback returning anything other than None decides the
check; this is the hook :class:`rolegate.core.permissions.adapter.GateAdapter`
uses to plug the clipboard in.
"""

import inspect
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import structlog

from rolegate.core.errors import ForbiddenError


logger = structlog.get_logger()

Callback = Callable[..., Any]


@dataclass(frozen=True)
class Response:
    """Outcome of a gate check, with an optional reason."""

    allowed: bool
    message: str | None = None
    code: str | None = None

    @classmethod
    def allow(cls, message: str | None = None, code: str | None = None) -> "Response":
        return cls(True, message, code)

    @classmethod
    def deny(cls, message: str | None = None, code: str | None = None) -> "Response":
        return cls(False, message, code)

    def __bool__(self) -> bool:
        return self.allowed


def normalize_arguments(arguments: Any) -> tuple[Any, ...]:
    """Wrap gate arguments into a tuple; None means no arguments."""
    if arguments is None:
        return ()
    if isinstance(arguments, list | tuple):
        return tuple(arguments)
    return (arguments,)


async def _call(callback: Callback, *args: Any) -> Any:
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _abstain(*_args: Any) -> None:
    return None


class Gate:
    """Dispatcher for ability checks.

    Usage:
        gate = Gate()
        gate.define("view-dashboard", lambda user: user.is_staff)
        gate.policy(Post, PostPolicy)

        if await gate.allows(user, "edit", post):
            ...
    """

    def __init__(self) -> None:
        self._abilities: dict[str, Callback] = {}
        self._policies: dict[type, Any] = {}
        self._before: list[Callback] = []
        self._after: list[Callback] = []

    def define(self, ability: str, callback: Callback) -> "Gate":
        """Define an ability callback receiving ``(authority, *arguments)``."""
        self._abilities[ability] = callback
        return self

    def has(self, ability: str) -> bool:
        return ability in self._abilities

    def policy(self, model: type, policy: Any) -> "Gate":
        """Register a policy class (or instance) for a model class."""
        self._policies[model] = policy
        return self

    def before(self, callback: Callback) -> Callback:
        """Register a callback run before every check.

        The callback receives ``(authority, ability, arguments)``.
        """
        self._before.append(callback)
        return callback

    def after(self, callback: Callback) -> Callback:
        """Register a callback run after every check.

        The callback receives ``(authority, ability, result, arguments)``;
        its return value is only used when the check had no result.
        """
        self._after.append(callback)
        return callback

    def get_policy_for(self, target: Any) -> Any | None:
        """Get the policy registered for a model instance or class."""
        cls = target if isinstance(target, type) else type(target)
        for klass in cls.__mro__:
            if klass in self._policies:
                policy = self._policies[klass]
                return policy() if isinstance(policy, type) else policy
        return None

    async def raw(
        self,
        authority: Any,
        ability: str,
        arguments: Any = (),
        *,
        run_after: bool = True,
    ) -> "bool | Response | None":
        """Get the raw result of a check, without converting it to a Response.

        With ``run_after=False`` after-callbacks are skipped and only the
        before-callbacks and the ability callback or policy run.
        """
        arguments = normalize_arguments(arguments)

        result = await self._call_before_callbacks(authority, ability, arguments)
        if result is None:
            callback = self._resolve_auth_callback(ability, arguments)
            result = await _call(callback, authority, *arguments)

        if not run_after:
            return result
        return await self._call_after_callbacks(authority, ability, arguments, result)

    async def inspect(
        self, authority: Any, ability: str, arguments: Any = ()
    ) -> Response:
        """Run a check and return its Response."""
        result = await self.raw(authority, ability, arguments)
        if isinstance(result, Response):
            return result
        return Response.allow() if result else Response.deny()

    async def allows(self, authority: Any, ability: str, arguments: Any = ()) -> bool:
        return (await self.inspect(authority, ability, arguments)).allowed

    async def denies(self, authority: Any, ability: str, arguments: Any = ()) -> bool:
        return not await self.allows(authority, ability, arguments)

    async def any(
        self, authority: Any, abilities: Iterable[str], arguments: Any = ()
    ) -> bool:
        """Determine if any of the abilities is allowed."""
        for ability in abilities:
            if await self.allows(authority, ability, arguments):
                return True
        return False

    async def authorize(
        self, authority: Any, ability: str, arguments: Any = ()
    ) -> Response:
        """Run a check, raising if it is denied.

        Raises:
            ForbiddenError: If the ability is not allowed
        """
        response = await self.inspect(authority, ability, arguments)
        if not response.allowed:
            logger.info("gate_denied", ability=ability, reason=response.message)
            raise ForbiddenError(
                response.message,
                error_code=response.code,
                details={"ability": ability},
            )
        return response

    async def _call_before_callbacks(
        self, authority: Any, ability: str, arguments: tuple[Any, ...]
    ) -> "bool | Response | None":
        for before in self._before:
            result = await _call(before, authority, ability, arguments)
            if result is not None:
                return result
        return None

    async def _call_after_callbacks(
        self,
        authority: Any,
        ability: str,
        arguments: tuple[Any, ...],
        result: "bool | Response | None",
    ) -> "bool | Response | None":
        for after in self._after:
            after_result = await _call(after, authority, ability, result, arguments)
            if result is None:
                result = after_result
        return result

    def _resolve_auth_callback(
        self, ability: str, arguments: tuple[Any, ...]
    ) -> Callback:
        # A registered policy owns every check against its model, even
        # abilities it does not implement.
        if arguments and arguments[0] is not None:
            policy = self.get_policy_for(arguments[0])
            if policy is not None:
                return self._resolve_policy_callback(ability, policy)

        return self._abilities.get(ability, _abstain)

    def _resolve_policy_callback(self, ability: str, policy: Any) -> Callback:
        method = getattr(policy, ability.replace("-", "_"), None)
        if not callable(method):
            return _abstain

        async def callback(authority: Any, *args: Any) -> Any:
            before = getattr(policy, "before", None)
            if callable(before):
                result = await _call(before, authority, ability, *args)
                if result is not None:
                    return result

            # A class target only selects the policy; the method does not get it.
            if args and isinstance(args[0], type | str):
                args = args[1:]
            return await _call(method, authority, *args)

        return callback
