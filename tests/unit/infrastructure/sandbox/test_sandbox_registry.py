"""Tests for the per-user sandbox registry and its reaper."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from schemadiff.core.exceptions import ProvisioningError
from schemadiff.infrastructure.sandbox import InMemorySandbox, SandboxRegistry


def make_provisioner():
    """Provisioner double that hands out fresh in-memory sandboxes."""
    provisioner = MagicMock()
    counter = iter(range(1000))

    async def create(user_key):
        return InMemorySandbox(f"preview-{next(counter)}", user_key)

    provisioner.create = AsyncMock(side_effect=create)
    return provisioner


@pytest.fixture
def provisioner():
    return make_provisioner()


@pytest.fixture
def registry(provisioner, clock):
    return SandboxRegistry(
        provisioner=provisioner,
        inactivity_seconds=1800,
        reap_interval_seconds=300,
        clock=clock,
    )


class TestLease:
    """Test leasing sandboxes."""

    @pytest.mark.asyncio
    async def test_first_lease_creates(self, registry, provisioner, clock):
        sandbox = await registry.lease("alice")

        provisioner.create.assert_awaited_once_with("alice")
        assert sandbox.created_at == clock.now
        assert sandbox.last_accessed == clock.now
        assert registry.get("alice") is sandbox
        assert "alice" in registry
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_same_user_same_sandbox(self, registry, provisioner, clock):
        first = await registry.lease("alice")
        clock.advance(10)
        second = await registry.lease("alice")

        assert second is first
        assert provisioner.create.await_count == 1
        assert second.last_accessed == clock.now
        assert second.created_at == clock.now - 10

    @pytest.mark.asyncio
    async def test_last_accessed_strictly_increases(self, registry):
        """Leases at the same clock reading still advance last_accessed."""
        sandbox = await registry.lease("alice")
        seen = [sandbox.last_accessed]
        for _ in range(3):
            await registry.lease("alice")
            seen.append(sandbox.last_accessed)

        assert seen == sorted(set(seen))

    @pytest.mark.asyncio
    async def test_users_isolated(self, registry):
        alice = await registry.lease("alice")
        bob = await registry.lease("bob")
        assert alice is not bob
        assert alice.sandbox_id != bob.sandbox_id
        assert len(registry) == 2

    @pytest.mark.asyncio
    async def test_concurrent_leases_create_once(self, registry, provisioner):
        sandboxes = await asyncio.gather(*(registry.lease("alice") for _ in range(5)))

        assert provisioner.create.await_count == 1
        assert all(s is sandboxes[0] for s in sandboxes)

    @pytest.mark.asyncio
    async def test_provisioning_failure_not_registered(self, registry, provisioner):
        provisioner.create.side_effect = ProvisioningError("docker unavailable")

        with pytest.raises(ProvisioningError):
            await registry.lease("alice")
        assert "alice" not in registry


class TestRelease:
    """Test releasing sandboxes."""

    @pytest.mark.asyncio
    async def test_release_discards(self, registry):
        sandbox = await registry.lease("alice")

        assert await registry.release("alice") is True
        assert "alice" not in registry
        assert sandbox.database is None

    @pytest.mark.asyncio
    async def test_release_unknown(self, registry):
        assert await registry.release("nobody") is False

    @pytest.mark.asyncio
    async def test_lease_after_release_creates_new(self, registry):
        first = await registry.lease("alice")
        await registry.release("alice")
        second = await registry.lease("alice")
        assert second is not first

    @pytest.mark.asyncio
    async def test_discard_failure_still_forgets(self, registry):
        sandbox = await registry.lease("alice")
        sandbox.discard = AsyncMock(side_effect=RuntimeError("container stuck"))

        assert await registry.release("alice") is True
        assert "alice" not in registry


class TestReap:
    """Test inactivity reaping."""

    @pytest.mark.asyncio
    async def test_reaps_only_stale(self, registry, clock):
        alice = await registry.lease("alice")
        clock.advance(1000)
        await registry.lease("bob")
        clock.advance(801)

        assert await registry.reap() == ["alice"]
        assert "alice" not in registry
        assert "bob" in registry
        assert alice.database is None

    @pytest.mark.asyncio
    async def test_threshold_is_exclusive(self, registry, clock):
        await registry.lease("alice")
        clock.advance(1800)
        assert await registry.reap() == []
        clock.advance(1)
        assert await registry.reap() == ["alice"]

    @pytest.mark.asyncio
    async def test_lease_refreshes_activity(self, registry, clock):
        await registry.lease("alice")
        clock.advance(1700)
        await registry.lease("alice")
        clock.advance(1700)
        assert await registry.reap() == []

    @pytest.mark.asyncio
    async def test_one_broken_sandbox_does_not_block_others(self, registry, clock):
        alice = await registry.lease("alice")
        bob = await registry.lease("bob")
        alice.discard = AsyncMock(side_effect=RuntimeError("container stuck"))
        clock.advance(2000)

        assert await registry.reap() == ["alice", "bob"]
        assert bob.database is None
        assert len(registry) == 0


class TestReaperTask:
    """Test the background reaper lifecycle."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, provisioner, clock):
        registry = SandboxRegistry(
            provisioner=provisioner, inactivity_seconds=5, reap_interval_seconds=0.01, clock=clock
        )
        await registry.lease("alice")
        clock.advance(10)

        registry.start()
        registry.start()
        assert registry.is_running
        for _ in range(100):
            if "alice" not in registry:
                break
            await asyncio.sleep(0.01)

        assert "alice" not in registry
        await registry.stop()
        assert not registry.is_running
        await registry.stop()

    @pytest.mark.asyncio
    async def test_reaper_survives_failing_cycle(self, provisioner, clock):
        registry = SandboxRegistry(
            provisioner=provisioner, inactivity_seconds=5, reap_interval_seconds=0.01, clock=clock
        )
        registry.reap = AsyncMock(side_effect=[RuntimeError("boom"), []])

        registry.start()
        for _ in range(100):
            if registry.reap.await_count >= 2:
                break
            await asyncio.sleep(0.01)

        assert registry.reap.await_count >= 2
        assert registry.is_running
        await registry.stop()

    @pytest.mark.asyncio
    async def test_close_releases_everything(self, registry):
        await registry.lease("alice")
        await registry.lease("bob")
        registry.start()

        await registry.close()

        assert len(registry) == 0
        assert not registry.is_running


def test_defaults_from_settings(provisioner):
    registry = SandboxRegistry(provisioner=provisioner)
    assert registry.inactivity_seconds == 1800
    assert registry.reap_interval_seconds == 300
