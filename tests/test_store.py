"""
Unit tests for storeclass.store.

Tests the in-process backing store: commits, dispatches, getters,
registration, observers and injected services.
"""
import asyncio

import pytest

from storeclass import (
    ModuleBuilder,
    ModuleNotWiredError,
    MutationRecord,
    NamespaceCollisionError,
    Store,
    UnknownActionError,
    UnknownMutationError,
    create_module,
    mutation,
    use_module,
)


class Todos:
    items = []
    owner = "nobody"

    @property
    def count(self):
        return len(self.items)

    @mutation
    def add(self, item):
        self.items.append(item)

    @mutation
    def add_then_fail(self, item):
        self.items.append(item)
        self.owner = "broken"
        raise RuntimeError("boom")

    def clear(self):
        self.items = []
        yield

    async def add_many(self, payload):
        for item in payload:
            self.add(item)
        return self.count


class Settings:
    theme = "light"

    @mutation
    def set_theme(self, value):
        self.theme = value


@pytest.fixture
def todos():
    return create_module(Todos, "todos")


@pytest.fixture
def store(todos):
    return Store(create_module(Settings, "", modules=[todos]))


class TestCommit:
    """Tests for Store.commit."""

    def test_root_and_nested_state(self, store):
        """Test state is nested by namespace segment."""
        assert store.state == {"theme": "light", "todos": {"items": [], "owner": "nobody"}}

    def test_commit_qualified_key(self, store):
        """Test commits address mutators by fully qualified key."""
        store.commit("todos/add", "milk")
        store.commit("set_theme", "dark")
        assert store.state["todos"]["items"] == ["milk"]
        assert store.state["theme"] == "dark"

    def test_generator_mutator_without_payload(self, store):
        """Test a generator mutator runs to completion without a payload."""
        store.commit("todos/add", "milk")
        store.commit("todos/clear")
        assert store.state["todos"]["items"] == []

    def test_unknown_mutation(self, store):
        """Test unknown keys raise UnknownMutationError."""
        with pytest.raises(UnknownMutationError) as exc:
            store.commit("todos/remove", 1)
        assert "todos/remove" in str(exc.value)
        assert isinstance(exc.value, KeyError)

    def test_failed_mutator_leaves_state_unchanged(self, store):
        """Test a raising mutator does not apply partial writes."""
        store.commit("todos/add", "milk")
        with pytest.raises(RuntimeError, match="boom"):
            store.commit("todos/add_then_fail", "eggs")
        assert store.state["todos"] == {"items": ["milk"], "owner": "nobody"}

    def test_non_atomic_commits(self, todos):
        """Test atomic staging can be switched off."""
        store = Store(create_module(Settings, "", modules=[todos]), atomic_commits=False)
        with pytest.raises(RuntimeError):
            store.commit("todos/add_then_fail", "eggs")
        assert store.state["todos"]["items"] == ["eggs"]

    def test_atomic_commits_from_environment(self, engine_env, todos):
        """Test STORECLASS_ATOMIC_COMMITS sets the default."""
        engine_env(STORECLASS_ATOMIC_COMMITS="0")
        store = Store(todos)
        with pytest.raises(RuntimeError):
            store.commit("add_then_fail", "eggs")
        assert store.state["owner"] == "broken"

    def test_commit_keeps_value_identity(self, store):
        """Test references taken before a commit stay live afterwards."""
        items = store.state["todos"]["items"]
        store.commit("set_theme", "dark")
        store.commit("todos/add", "milk")
        assert store.state["todos"]["items"] is items
        assert items == ["milk"]

    def test_failed_commit_restores_fields(self, store):
        """Test a failed commit restores every field of the module."""
        store.commit("todos/add", "milk")
        with pytest.raises(RuntimeError):
            store.commit("todos/add_then_fail", "eggs")
        store.commit("todos/add", "bread")
        assert store.state["todos"] == {"items": ["milk", "bread"], "owner": "nobody"}

    def test_commit_keeps_child_state(self, store):
        """Test committing on a parent leaves child subtrees alone."""
        store.commit("todos/add", "milk")
        store.commit("set_theme", "dark")
        assert store.state["todos"]["items"] == ["milk"]


class TestGetters:
    """Tests for the store's getter views."""

    def test_getters_are_live(self, store):
        """Test getter values follow committed state."""
        assert store.getters["todos/count"] == 0
        store.commit("todos/add", "milk")
        assert store.getters["todos/count"] == 1

    def test_getter_keys(self, store):
        """Test the getters view lists qualified keys without evaluating them."""
        assert "todos/count" in store.getters
        assert list(store.getters) == ["todos/count"]
        assert len(store.getters) == 1

    def test_unknown_getter(self, store):
        """Test unknown getter keys raise KeyError."""
        with pytest.raises(KeyError):
            store.getters["todos/missing"]


class TestDispatch:
    """Tests for Store.dispatch."""

    @pytest.mark.asyncio
    async def test_dispatch_returns_action_result(self, store):
        """Test dispatch resolves to the action's return value."""
        assert await store.dispatch("todos/add_many", ["milk", "eggs"]) == 2
        assert store.state["todos"]["items"] == ["milk", "eggs"]

    @pytest.mark.asyncio
    async def test_unknown_action(self, store):
        """Test unknown action keys raise UnknownActionError."""
        with pytest.raises(UnknownActionError):
            await store.dispatch("todos/missing")

    @pytest.mark.asyncio
    async def test_dispatch_starts_without_await(self, store):
        """Test a dispatched action runs even if nobody awaits it."""
        pending = store.dispatch("todos/add_many", ["milk"])
        await asyncio.sleep(0)
        assert store.state["todos"]["items"] == ["milk"]
        assert await pending == 1

    @pytest.mark.asyncio
    async def test_facade_call_starts_without_await(self):
        """Test calling an action through a facade schedules it immediately."""

        class Root:
            n = 0

            @mutation
            def set_n(self, value):
                self.n = value

            async def go(self):
                self.set_n = 5

        m = create_module(Root)
        store = Store(m)
        pending = use_module(m, store).go()
        await asyncio.sleep(0)
        assert store.state["n"] == 5
        await pending

    @pytest.mark.asyncio
    async def test_synchronous_action_result_is_awaitable(self):
        """Test builder actions returning plain values can still be awaited."""
        m = ModuleBuilder().action("ping", lambda ctx: "pong").build()
        assert await Store(m).dispatch("ping") == "pong"

    def test_dispatch_outside_event_loop(self, store):
        """Test dispatch can be driven by asyncio.run from synchronous code."""
        assert asyncio.run(store.dispatch("todos/add_many", ["milk", "eggs"])) == 2
        assert store.state["todos"]["items"] == ["milk", "eggs"]

    def test_unknown_action_raises_on_dispatch(self, store):
        """Test unknown keys fail at dispatch time, not when awaited."""
        with pytest.raises(UnknownActionError):
            store.dispatch("todos/missing")

    @pytest.mark.asyncio
    async def test_action_errors_propagate(self):
        """Test exceptions raised by action bodies reach the caller unchanged."""

        class Failing:
            async def explode(self):
                raise ValueError("nope")

        with pytest.raises(ValueError, match="nope"):
            await Store(create_module(Failing)).dispatch("explode")


class TestObservers:
    """Tests for subscribers and plugins."""

    def test_subscribe(self, store):
        """Test subscribers see every commit and can unsubscribe."""
        seen = []
        unsubscribe = store.subscribe(lambda mutation, state: seen.append((mutation, state["theme"])))
        store.commit("set_theme", "dark")
        unsubscribe()
        store.commit("set_theme", "light")
        assert seen == [(MutationRecord("set_theme", "dark"), "dark")]

    def test_failing_subscriber_is_logged(self, store, caplog_debug):
        """Test a raising subscriber does not break the commit."""

        def broken(mutation, state):
            raise RuntimeError("subscriber down")

        store.subscribe(broken)
        store.commit("set_theme", "dark")
        assert store.state["theme"] == "dark"
        assert any("failed" in r.getMessage() for r in caplog_debug.records)

    @pytest.mark.asyncio
    async def test_subscribe_action(self, store):
        """Test action subscribers run before the action."""
        seen = []
        store.subscribe_action(lambda action, state: seen.append((action.type, list(state["todos"]["items"]))))
        await store.dispatch("todos/add_many", ["milk"])
        assert seen == [("todos/add_many", [])]

    def test_plugins(self, todos):
        """Test plugins are called once with the store."""
        calls = []
        store = Store(todos, plugins=[calls.append])
        assert calls == [store]


class TestRegistration:
    """Tests for dynamic module registration."""

    def test_register_and_unregister(self, store):
        """Test modules can be mounted and removed at runtime."""
        extra = create_module(Settings, "ui/extra")
        assert store.register_module(extra) == ("ui", "extra")
        assert store.state["ui"]["extra"] == {"theme": "light"}
        assert store.has_module("ui/extra")

        store.commit("ui/extra/set_theme", "dark")
        assert store.state["ui"]["extra"]["theme"] == "dark"

        store.unregister_module("ui/extra")
        assert not store.has_module(("ui", "extra"))
        assert "extra" not in store.state["ui"]
        with pytest.raises(UnknownMutationError):
            store.commit("ui/extra/set_theme", "dark")

    def test_register_at_explicit_path(self, todos):
        """Test a module can be mounted at a path other than its namespace."""
        store = Store()
        store.register_module(todos, "archive/old")
        store.commit("archive/old/add", "x")
        assert store.state["archive"]["old"]["items"] == ["x"]
        assert store.module_path(todos) == ("archive", "old")

    def test_duplicate_path(self, store, todos):
        """Test mounting twice at the same path is rejected."""
        with pytest.raises(NamespaceCollisionError):
            store.register_module(todos)

    def test_unregister_unknown(self, store):
        """Test removing a module that is not mounted."""
        with pytest.raises(ModuleNotWiredError):
            store.unregister_module("nowhere")
        with pytest.raises(ValueError):
            store.unregister_module("")

    def test_module_path_prefers_relative_mount(self, todos):
        """Test module_path resolves a mount below the given base first."""
        store = Store()
        store.register_module(todos)
        store.register_module(todos, "team/todos")
        assert store.module_path(todos) == ("todos",)
        assert store.module_path(todos, base=("team",)) == ("team", "todos")

    def test_module_path_unknown(self, store):
        """Test module_path raises for descriptors that are not mounted."""
        with pytest.raises(ModuleNotWiredError):
            store.module_path(create_module(Settings, "other"))


class TestServices:
    """Tests for injected services and state helpers."""

    def test_inject(self, store):
        """Test injected services become store attributes."""
        service = object()
        assert store.inject("api", service) is store
        assert store.api is service

    def test_inject_cannot_shadow(self, store):
        """Test injecting over a store attribute is rejected."""
        with pytest.raises(ValueError):
            store.inject("commit", object())

    def test_snapshot_and_replace_state(self, store):
        """Test snapshots are deep copies that can be restored."""
        saved = store.snapshot()
        store.commit("todos/add", "milk")
        assert saved["todos"]["items"] == []
        store.replace_state(saved)
        assert store.state["todos"]["items"] == []
        assert store.getters["todos/count"] == 0
