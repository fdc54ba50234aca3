"""Unit tests for the gate adapter.

These tests use a stub clipboard to verify:
- Translation of clipboard results into gate signals
- Deference to the gate's own callbacks and policies
- The re-entrancy guard and its per-task stack
"""

import asyncio
from dataclasses import dataclass, field
from uuid import UUID, uuid4

import pytest

from rolegate.core.permissions.adapter import GateAdapter, current_checks
from rolegate.core.permissions.gate import Gate, Response
from tests.models import Post


pytestmark = pytest.mark.unit


@dataclass
class Person:
    id: UUID = field(default_factory=uuid4)


class StubClipboard:
    """Returns canned results and records the checks it was asked."""

    def __init__(self, result=None, delay: float = 0) -> None:
        self.result = result
        self.delay = delay
        self.calls: list[tuple] = []

    async def check_get_id(self, authority, ability, target=None):
        self.calls.append((authority, ability, target))
        if self.delay:
            await asyncio.sleep(self.delay)
        if callable(self.result):
            return self.result(authority, ability, target)
        return self.result


def _gate_with(clipboard: StubClipboard) -> Gate:
    gate = Gate()
    GateAdapter(clipboard).register_at(gate)
    return gate


class TestResultTranslation:
    """Tests for mapping clipboard answers to gate answers."""

    async def test_ability_id_allows_with_reason(self):
        ability_id = uuid4()
        gate = _gate_with(StubClipboard(ability_id))

        response = await gate.inspect(Person(), "edit")

        assert response.allowed
        assert response.message == f"Granted via ability #{ability_id}"

    async def test_forbidden_denies(self):
        gate = _gate_with(StubClipboard(False))
        gate.after(lambda *args: True)

        assert await gate.raw(Person(), "edit") is False
        assert await gate.denies(Person(), "edit")

    async def test_after_callbacks_only_see_final_result(self):
        gate = _gate_with(StubClipboard(False))
        seen: list = []

        def after(person, ability, result, arguments):
            seen.append(result)
            return True

        gate.after(after)

        assert await gate.raw(Person(), "edit") is False
        assert seen == [False]

    async def test_guest_is_left_to_the_gate(self):
        clipboard = StubClipboard(uuid4())
        gate = _gate_with(clipboard)
        gate.define("view", lambda person: person is None)

        assert await gate.allows(None, "view")
        assert await gate.denies(None, "edit")
        assert clipboard.calls == []

    async def test_abstain_lets_gate_continue(self):
        gate = _gate_with(StubClipboard(None))
        gate.after(lambda person, ability, result, arguments: True)

        assert await gate.allows(Person(), "edit")

    async def test_additional_arguments_are_left_to_the_gate(self):
        clipboard = StubClipboard(uuid4())
        gate = _gate_with(clipboard)

        assert await gate.raw(Person(), "edit", (Post, "extra")) is None
        assert clipboard.calls == []

    async def test_target_is_forwarded(self):
        clipboard = StubClipboard(None)
        gate = _gate_with(clipboard)
        person = Person()
        post = Post(id=uuid4(), title="t")

        await gate.raw(person, "edit", post)

        assert clipboard.calls == [(person, "edit", post)]


class TestGateFirst:
    """Tests for deferring to the gate's own checks."""

    async def test_defined_ability_result_is_respected(self):
        clipboard = StubClipboard(uuid4())
        gate = _gate_with(clipboard)
        gate.define("edit", lambda person: False)

        assert await gate.raw(Person(), "edit") is False
        assert clipboard.calls == []

    async def test_policy_result_is_respected(self):
        class PostPolicy:
            def update(self, person, post):
                return Response.deny("Locked")

        clipboard = StubClipboard(uuid4())
        gate = _gate_with(clipboard).policy(Post, PostPolicy)

        response = await gate.inspect(Person(), "update", Post(id=uuid4(), title="t"))

        assert response == Response.deny("Locked")
        assert clipboard.calls == []


class TestReentrancy:
    """Tests for the current-checks stack."""

    async def test_echo_of_same_check_abstains(self):
        clipboard = StubClipboard(uuid4())
        gate = _gate_with(clipboard)
        seen: list[tuple] = []
        gate.before(lambda person, ability, arguments: seen.append(current_checks()))

        assert await gate.allows(Person(), "edit")

        # Only the adapter's echo reaches callbacks registered after it.
        assert len(seen) == 1
        assert len(seen[0]) == 1
        assert len(clipboard.calls) == 1
        assert current_checks() == ()

    async def test_nested_different_check_is_resolved(self):
        person = Person()
        post = Post(id=uuid4(), title="t")

        def result(authority, ability, target):
            return uuid4() if ability == "edit" else None

        clipboard = StubClipboard(result)
        gate = _gate_with(clipboard)
        depth: list[int] = []

        class PostPolicy:
            async def publish(self, authority, target):
                depth.append(len(current_checks()))
                return await gate.allows(authority, "edit", target)

        gate.policy(Post, PostPolicy)

        assert await gate.allows(person, "publish", post)
        assert depth == [1]
        assert [call[1] for call in clipboard.calls] == ["edit"]

    async def test_stack_unwinds_when_gate_raises(self):
        gate = _gate_with(StubClipboard(None))

        def explode(person):
            raise RuntimeError("policy failure")

        gate.define("edit", explode)

        with pytest.raises(RuntimeError):
            await gate.allows(Person(), "edit")

        assert current_checks() == ()

    async def test_concurrent_checks_keep_separate_stacks(self):
        clipboard = StubClipboard(uuid4(), delay=0.01)
        gate = _gate_with(clipboard)
        stacks: dict[UUID, tuple] = {}

        async def record(person):
            stacks[person.id] = current_checks()
            await asyncio.sleep(0.01)
            return None

        gate.define("edit", record)
        people = [Person() for _ in range(5)]

        results = await asyncio.gather(*(gate.allows(p, "edit") for p in people))

        assert all(results)
        for person in people:
            stack = stacks[person.id]
            assert len(stack) == 1
            assert stack[0].authority_id == person.id
        assert current_checks() == ()
