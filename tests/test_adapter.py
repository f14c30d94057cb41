from __future__ import annotations

from dataclasses import replace

import pytest
from conftest import FakeAdapter, basic_profile, make_task
from switchyard_core.errors import MigrationError
from switchyard_runtime.events import CAPABILITY_CHANGED


class TestCapabilityChanges:
    def test_change_emits_one_event_per_field(self, events):
        adapter = FakeAdapter("a", basic_profile(), events=events)
        seen = []
        events.on(CAPABILITY_CHANGED, seen.append)

        adapter.update_capabilities(streaming=True, max_context_tokens=5)

        assert {e.payload["capability"] for e in seen} == {"streaming", "max_context_tokens"}
        streaming = next(e for e in seen if e.payload["capability"] == "streaming")
        assert streaming.payload["old_value"] is False
        assert streaming.payload["new_value"] is True
        assert streaming.payload["adapter"] == "a"

    def test_notification_precedes_visibility(self, events):
        adapter = FakeAdapter("a", basic_profile(), events=events)
        observed = []
        events.on(
            CAPABILITY_CHANGED,
            lambda e: observed.append(adapter.supports_feature("streaming")),
        )

        adapter.update_capabilities(streaming=True)

        assert observed == [False]
        assert adapter.supports_feature("streaming") is True

    def test_no_change_no_event(self, events):
        adapter = FakeAdapter("a", basic_profile(), events=events)
        seen = []
        events.on(CAPABILITY_CHANGED, seen.append)
        assert adapter.set_capabilities(adapter.capabilities) == []
        assert seen == []

    def test_profile_replaced_wholesale(self):
        adapter = FakeAdapter("a", basic_profile())
        before = adapter.capabilities
        adapter.update_capabilities(multi_file=False)
        assert before.multi_file is True
        assert adapter.capabilities is not before


class TestVendorExtensions:
    def test_get_uses_adapter_name(self):
        adapter = FakeAdapter("acme")
        task = make_task(extensions={"acme": {"streaming": True}})
        assert adapter.get_vendor_extensions(task) == {"streaming": True}
        assert adapter.get_vendor_extensions(task, "other") is None

    def test_add_returns_new_task(self):
        adapter = FakeAdapter("acme")
        task = make_task()
        updated = adapter.add_vendor_extensions(task, {"execution_strategy": "batched"})
        assert task.extensions == {}
        assert updated.extensions == {"acme": {"execution_strategy": "batched"}}


class TestMigrations:
    async def test_multi_hop_migration(self):
        adapter = FakeAdapter("a")
        adapter.register_migration(
            "1.0.0", "1.1.0", lambda t: replace(t, description=t.description + " +1.1")
        )

        async def to_two(task):
            return replace(task, description=task.description + " +2.0")

        adapter.register_migration("1.1.0", "2.0.0", to_two)

        migrated = await adapter.migrate_task(make_task(description="x"), "1.0.0", "2.0.0")

        assert migrated.description == "x +1.1 +2.0"
        assert adapter.find_migration_path("1.0.0", "2.0.0") == ["1.0.0", "1.1.0", "2.0.0"]

    async def test_same_version_is_identity(self):
        adapter = FakeAdapter("a")
        task = make_task()
        assert await adapter.migrate_task(task, "1.0.0", "1.0.0") is task

    async def test_missing_path_raises(self):
        adapter = FakeAdapter("a")
        adapter.register_migration("1.0.0", "1.1.0", lambda t: t)
        with pytest.raises(MigrationError):
            await adapter.migrate_task(make_task(), "1.0.0", "3.0.0")


def test_diagnostics_describe_adapter():
    adapter = FakeAdapter("a", basic_profile(), api_version="2.1.0")
    adapter.register_migration("2.0.0", "2.1.0", lambda t: t)
    diag = adapter.get_diagnostics()
    assert diag["name"] == "a"
    assert diag["api_version"] == "2.1.0"
    assert diag["migration_paths"] == ["2.0.0->2.1.0"]
    assert diag["capabilities"]["multi_file"] is True

class TestNegotiation:
    def test_negotiates_against_own_profile(self):
        adapter = FakeAdapter("a", basic_profile(features={"parallel_execution": True}))

        result = adapter.negotiate_features(["sub_agents", "generation", "vision"])

        assert list(result.supported) == ["generation"]
        assert result.unsupported == ("sub_agents", "vision")
        assert dict(result.alternatives) == {"sub_agents": "parallel_execution"}
