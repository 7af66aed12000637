"""Tests for the per-user lock registry."""

import asyncio

from smart_tracker.goals import GoalLockRegistry

from conftest import OTHER_USER, USER


class TestGoalLockRegistry:

    def test_lock_dropped_after_release(self, run):
        locks = GoalLockRegistry()

        async def scenario():
            async with locks.hold(USER):
                async with locks.hold(OTHER_USER):
                    held = len(locks)
            return held, len(locks)

        assert run(scenario()) == (2, 0)

    def test_waiters_share_one_lock(self, run):
        locks = GoalLockRegistry()
        order = []

        async def worker(name: str):
            async with locks.hold(USER):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        async def scenario():
            await asyncio.gather(worker("a"), worker("b"), worker("c"))
            return len(locks)

        assert run(scenario()) == 0
        assert order == ["a-in", "a-out", "b-in", "b-out", "c-in", "c-out"]

    def test_lock_released_on_error(self, run):
        locks = GoalLockRegistry()

        async def scenario():
            try:
                async with locks.hold(USER):
                    raise RuntimeError("boom")
            except RuntimeError:
                pass
            return len(locks)

        assert run(scenario()) == 0

    def test_services_leave_no_locks_behind(self, app, run):
        async def scenario():
            await app.entries.add_monthly_savings(USER, "2026-01", "250")
            await app.goals.create_goal(USER, "Bike", "500", "2026-04-15")
            return len(app.goals._locks)

        assert run(scenario()) == 0
