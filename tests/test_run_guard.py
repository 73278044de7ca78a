"""Unit tests for the per-tenant run guard."""

from __future__ import annotations

import pytest

from marketsharp_sync.utils.run_guard import SyncAlreadyRunning, TenantRunGuard

pytestmark = pytest.mark.unit


class TestTenantRunGuard:
    async def test_second_hold_for_same_tenant_is_rejected(self):
        guard = TenantRunGuard()

        async with guard.hold("t1"):
            assert guard.is_running("t1")
            with pytest.raises(SyncAlreadyRunning) as exc_info:
                async with guard.hold("t1"):
                    pass

        assert exc_info.value.tenant_id == "t1"
        assert not guard.is_running("t1")

    async def test_different_tenants_run_side_by_side(self):
        guard = TenantRunGuard()

        async with guard.hold("t1"):
            async with guard.hold("t2"):
                assert guard.is_running("t1")
                assert guard.is_running("t2")

    async def test_hold_is_released_when_the_run_raises(self):
        guard = TenantRunGuard()

        with pytest.raises(RuntimeError):
            async with guard.hold("t1"):
                raise RuntimeError("sync blew up")

        assert not guard.is_running("t1")
