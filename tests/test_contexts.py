"""
Unit tests for storeclass.context.

Tests the execution contexts getter and action bodies run against: live
reads, getter purity, helper binding, super() and nested action sequencing.
"""
import pytest

from storeclass import (
    GetterPurityError,
    ReadOnlyStateError,
    Store,
    create_module,
    mutation,
    use_module,
)
from storeclass.context import HelperReceiver, StateProxy


class TestGetterContext:
    """Tests for getter execution contexts."""

    def test_getter_reads_state_and_other_getters(self):
        """Test getters see local state and sibling getters."""

        class Root:
            test = 123

            @property
            def double(self):
                return self.test * 2

            @property
            def label(self):
                return f"double is {self.double}"

            @mutation
            def set_test(self, value):
                self.test = value

        store = Store(create_module(Root))
        assert store.state["test"] == 123
        assert store.getters["double"] == 246
        store.commit("set_test", 10)
        assert store.getters["double"] == 20
        assert store.getters["label"] == "double is 20"

    def test_getter_cannot_write_state(self):
        """Test assigning a field inside a getter raises GetterPurityError."""

        class Root:
            test = 1

            @property
            def sneaky(self):
                self.test = 2
                return self.test

        store = Store(create_module(Root))
        with pytest.raises(GetterPurityError):
            store.getters["sneaky"]
        assert store.state["test"] == 1

    def test_getter_cannot_create_attributes(self):
        """Test new attributes cannot be set from a getter either."""

        class Root:
            @property
            def sneaky(self):
                self.fresh = 1

        with pytest.raises(GetterPurityError):
            Store(create_module(Root)).getters["sneaky"]

    def test_mutators_and_actions_unreachable(self):
        """Test mutators and actions cannot be reached from a getter."""

        class Root:
            test = 1

            @mutation
            def set_test(self, value):
                self.test = value

            async def run(self):
                return 1

            @property
            def via_mutator(self):
                return self.set_test

            @property
            def via_action(self):
                return self.run

            @property
            def probes(self):
                return hasattr(self, "set_test"), hasattr(self, "run")

        store = Store(create_module(Root))
        with pytest.raises(AttributeError):
            store.getters["via_mutator"]
        with pytest.raises(AttributeError):
            store.getters["via_action"]
        assert store.getters["probes"] == (False, False)

    def test_getter_commit_through_facade(self):
        """Test a getter cannot commit through a facade either."""

        class Child:
            value = 1

            @mutation
            def set_value(self, value):
                self.value = value

        child = create_module(Child, "child")

        class Root:
            @property
            def _child(self):
                return use_module(child, self)

            @property
            def sneaky(self):
                self._child.set_value = 5

        store = Store(create_module(Root, "", modules=[child]))
        with pytest.raises(GetterPurityError):
            store.getters["sneaky"]
        assert store.state["child"]["value"] == 1

    def test_plain_helpers_are_bound_to_the_context(self):
        """Test plain methods are callable from getters with live state."""

        class Root:
            first = "Jane"
            last = "Doe"

            def _join(self, *parts):
                return " ".join(parts)

            def full(self):
                return f"{self.first} {self.last}"

            @property
            def greeting(self):
                return "Hello " + self.full()

        store = Store(create_module(Root))
        assert store.getters["greeting"] == "Hello Jane Doe"

    def test_reserved_helper_receives_helper_receiver(self):
        """Test reserved helpers see state/getters/root_state/root_getters."""
        seen = {}

        class Root:
            test = 7

            @property
            def _probe(self):
                seen["receiver"] = self
                return self.state["test"]

            @property
            def probed(self):
                return self._probe

        store = Store(create_module(Root))
        assert store.getters["probed"] == 7
        receiver = seen["receiver"]
        assert isinstance(receiver, HelperReceiver)
        assert receiver.root_state is store.state
        assert "probed" in receiver.getters
        assert "probed" in receiver.root_getters

    def test_super_in_getter(self):
        """Test super() inside a getter reaches the parent implementation."""

        class Base:
            name = "base"

            @property
            def title(self):
                return self.name.upper()

        class Derived(Base):
            @property
            def title(self):
                return "<" + super().title + ">"

        store = Store(create_module(Derived))
        assert store.getters["title"] == "<BASE>"


class TestActionContext:
    """Tests for action execution contexts."""

    @pytest.mark.asyncio
    async def test_action_reads_payload_and_state(self):
        """Test actions see their payload and current state."""

        class Root:
            test = 123

            async def test_action(self, payload):
                return f"test action {self.test}:{payload['test']}"

        store = Store(create_module(Root))
        assert await store.dispatch("test_action", {"test": 456}) == "test action 123:456"

    @pytest.mark.asyncio
    async def test_assignment_commits_and_is_visible(self):
        """Test assigning a mutator commits synchronously."""

        class Root:
            test = 123

            @mutation
            def test_setter(self, value):
                self.test = value

            @property
            def test_getter(self):
                return f"Test {self.test}"

            async def test_action(self, payload):
                self.test_setter = 456
                return f"test action {self.test}:{payload['test']}:{self.test_getter}"

        store = Store(create_module(Root))
        assert await store.dispatch("test_action", {"test": 123}) == "test action 456:123:Test 456"
        assert store.getters["test_getter"] == "Test 456"

    @pytest.mark.asyncio
    async def test_calling_mutators(self):
        """Test mutators can be called as functions, including generator ones."""

        class Root:
            values = []

            def push(self, value):
                self.values.append(value)
                yield

            async def fill(self):
                self.push(1)
                self.push(2)
                return list(self.values)

        store = Store(create_module(Root))
        assert await store.dispatch("fill") == [1, 2]

    @pytest.mark.asyncio
    async def test_state_is_read_only_in_actions(self):
        """Test writing state directly from an action raises."""

        class Root:
            test = 1

            @property
            def doubled(self):
                return self.test * 2

            async def write_state(self):
                self.test = 2

            async def write_getter(self):
                self.doubled = 2

        store = Store(create_module(Root))
        with pytest.raises(ReadOnlyStateError):
            await store.dispatch("write_state")
        with pytest.raises(ReadOnlyStateError):
            await store.dispatch("write_getter")
        assert store.state["test"] == 1

    @pytest.mark.asyncio
    async def test_subsequent_actions_in_nested_module(self):
        """Test one action awaiting another action of the same nested module."""

        class A:
            async def test1(self):
                return await self.test2()

            async def test2(self):
                return 456

        class Root:
            pass

        store = Store(create_module(Root, "", modules=[create_module(A, "a")]))
        assert await store.dispatch("a/test1") == 456

    @pytest.mark.asyncio
    async def test_sequencing_is_preserved(self):
        """Test commits issued by awaited actions are observed in order."""

        class Log:
            entries = []

            @mutation
            def record(self, entry):
                self.entries.append(entry)

            async def child_step(self, payload):
                self.record = f"child:{payload}"
                return len(self.entries)

        log = create_module(Log, "log")

        class Root:
            @property
            def _log(self):
                return use_module(log, self)

            async def run(self):
                self._log.record = "root:start"
                seen = await self._log.child_step("a")
                self._log.record = "root:end"
                return seen

        store = Store(create_module(Root, "", modules=[log]))
        assert await store.dispatch("run") == 2
        assert store.state["log"]["entries"] == ["root:start", "child:a", "root:end"]

    @pytest.mark.asyncio
    async def test_super_in_action(self):
        """Test super() inside an action reaches the parent action."""

        class Base:
            test = 123

            @mutation
            def test_setter(self, value):
                self.test = value

            async def parent_test(self, payload):
                self.test_setter = 456
                return f"test action {self.test}:{payload['test']}"

        class Root(Base):
            async def test_action(self, payload):
                return "parent " + await super().parent_test(payload)

        store = Store(create_module(Root))
        assert await store.dispatch("test_action", {"test": 1}) == "parent test action 456:1"

    @pytest.mark.asyncio
    async def test_injected_service_via_reserved_helper(self):
        """Test reserved helpers are evaluated against the store in actions."""

        class Helpers:
            @property
            def _hurz(self):
                return self.test

        class Root(Helpers):
            async def send(self, payload):
                return await self.send2(payload)

            async def send2(self, payload):
                return self._hurz.test()

        class Service:
            def test(self):
                return 123

        store = Store(create_module(Root))
        store.inject("test", Service())
        assert await store.dispatch("send", {}) == 123

    @pytest.mark.asyncio
    async def test_injected_service_via_fallback(self):
        """Test unknown attributes fall back to store services."""

        class Root:
            async def send(self, payload):
                return await self.send2(payload)

            async def send2(self, payload):
                return self.test.test()

        class Service:
            def test(self):
                return 123

        store = Store(create_module(Root))
        store.inject("test", Service())
        assert await store.dispatch("send", {}) == 123

    @pytest.mark.asyncio
    async def test_unknown_attribute(self):
        """Test missing attributes raise AttributeError."""

        class Root:
            async def probe(self):
                return self.nothing_here

        with pytest.raises(AttributeError):
            await Store(create_module(Root)).dispatch("probe")


class TestStateProxy:
    """Tests for the state proxy handed to mutators."""

    def test_reads_and_writes(self):
        """Test attribute access maps to the underlying dict."""
        state = {"a": 1}
        proxy = StateProxy(state)
        proxy.b = 2
        assert proxy.a == 1
        assert state == {"a": 1, "b": 2}
        del proxy.a
        assert state == {"b": 2}
        with pytest.raises(AttributeError):
            proxy.a
