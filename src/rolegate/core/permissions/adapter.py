"""Gate integration for the clipboard.

The adapter registers the clipboard as a before-callback on a
:class:`~rolegate.core.permissions.gate.Gate`. Before answering, it
lets the gate run its own checks (defined abilities, policies) by
re-dispatching the same check through ``Gate.raw``. That re-dispatch
calls the before-callback again; the stack of in-flight checks tells
the adapter to stay out of its own echo.

The stack lives in a context variable, so every asyncio task and
thread has its own.
"""

from contextvars import ContextVar
from typing import Any, NamedTuple

import structlog

from rolegate.config import settings
from rolegate.core.permissions.clipboard import Clipboard
from rolegate.core.permissions.gate import Gate, Response
from rolegate.core.permissions.models import MalformedReference, resolve_target


logger = structlog.get_logger()


class CheckKey(NamedTuple):
    """Identity of an in-flight check."""

    authority_type: type
    authority_id: Any
    ability: str
    target: Any


_current_checks: ContextVar[tuple[CheckKey, ...]] = ContextVar(
    "rolegate_current_checks", default=()
)


def current_checks() -> tuple[CheckKey, ...]:
    """Checks in flight in the current context, innermost last."""
    return _current_checks.get()


def parse_gate_arguments(arguments: Any, additional: Any = None) -> tuple[Any, Any]:
    """Split gate arguments into ``(target, additional)``.

    A sequence contributes its first two items; any other value is the
    target itself.
    """
    if additional is not None:
        return arguments, additional
    if isinstance(arguments, list | tuple):
        target = arguments[0] if len(arguments) > 0 else None
        extra = arguments[1] if len(arguments) > 1 else None
        return target, extra
    return arguments, None


def _target_key(target: Any) -> Any:
    try:
        return resolve_target(target)
    except MalformedReference:
        return ("object", id(target))


def check_key(authority: Any, ability: str, target: Any) -> CheckKey:
    return CheckKey(type(authority), authority.id, ability, _target_key(target))


class GateAdapter:
    """Plugs a clipboard into a gate as its before-callback.

    Usage:
        gate = Gate()
        GateAdapter(Clipboard(session)).register_at(gate)
        await gate.authorize(user, "edit", post)
    """

    def __init__(self, clipboard: Clipboard) -> None:
        self.clipboard = clipboard

    def register_at(self, gate: Gate) -> None:
        """Register the clipboard at the given gate."""

        async def before(authority: Any, ability: str, arguments: Any = ()) -> Any:
            return await self.resolve(gate, authority, ability, arguments)

        gate.before(before)

    async def resolve(
        self, gate: Gate, authority: Any, ability: str, arguments: Any = ()
    ) -> "bool | Response | None":
        """Answer a before-callback invocation.

        Returns:
            The gate's own non-null result; an allow Response naming the
            granting ability; False for a forbidden ability; None to abstain
        """
        # Guests have no grants to look up.
        if getattr(authority, "id", None) is None:
            return None

        target, additional = parse_gate_arguments(arguments)

        # Extra arguments mean a policy-style call this resolver does not model.
        if additional is not None:
            return None

        key = check_key(authority, ability, target)
        if self.is_current_check(key):
            return None

        result = await self.check_at_gate(gate, authority, ability, target, key)
        if result is not None:
            return result

        ability_id = await self.clipboard.check_get_id(authority, ability, target)
        if ability_id:
            logger.debug("ability_granted", ability=ability, ability_id=str(ability_id))
            return Response.allow(f"{settings.audit_reason_prefix} #{ability_id}")

        # False means explicitly forbidden, which stops the gate; None abstains.
        return ability_id

    def is_current_check(self, key: CheckKey) -> bool:
        """Whether the innermost in-flight check is the given one."""
        checks = _current_checks.get()
        return bool(checks) and checks[-1] == key

    async def check_at_gate(
        self,
        gate: Gate,
        authority: Any,
        ability: str,
        target: Any,
        key: CheckKey | None = None,
    ) -> "bool | Response | None":
        """Get the gate's own result for a check, guarding against re-entry.

        After-callbacks are left to the outer dispatch, so they only ever
        see the final result.
        """
        key = key or check_key(authority, ability, target)
        token = _current_checks.set(_current_checks.get() + (key,))
        try:
            arguments = () if target is None else (target,)
            return await gate.raw(authority, ability, arguments, run_after=False)
        finally:
            _current_checks.reset(token)
