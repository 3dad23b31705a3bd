"""
Unit Tests - Cancellation and Authentication Context
"""
import asyncio

import pytest

from pos_dashboard.errors import AuthStuck, FetchCancelled, NotAuthenticated
from pos_dashboard.ingestion.auth import AuthContext, AuthSession
from pos_dashboard.ingestion.cancellation import CancellationToken


class TestCancellationToken:
    """Tests for CancellationToken"""

    async def test_cancel_once(self):
        token = CancellationToken()

        assert token.cancel("superseded") is True
        assert token.cancel("again") is False
        assert token.cancelled
        assert token.reason == "superseded"

    async def test_cascades_to_children(self):
        parent = CancellationToken()
        child = parent.child()

        parent.cancel("timed out")

        assert child.cancelled
        assert child.reason == "timed out"

    async def test_child_cancel_leaves_parent(self):
        parent = CancellationToken()
        child = parent.child()

        child.cancel()

        assert not parent.cancelled

    async def test_child_of_cancelled_parent_starts_cancelled(self):
        parent = CancellationToken()
        parent.cancel("gone")

        assert parent.child().cancelled

    async def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()

        token.cancel("superseded")
        with pytest.raises(FetchCancelled) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.reason == "superseded"

    async def test_guard_returns_result(self):
        token = CancellationToken()

        async def work():
            await asyncio.sleep(0)
            return 42

        assert await token.guard(work()) == 42

    async def test_guard_aborts_pending_work(self):
        token = CancellationToken()
        started = asyncio.Event()
        aborted = asyncio.Event()

        async def work():
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                aborted.set()
                raise

        guarded = asyncio.create_task(token.guard(work()))
        await started.wait()
        token.cancel("navigation")

        with pytest.raises(FetchCancelled):
            await guarded
        await asyncio.wait_for(aborted.wait(), 1)

    async def test_guard_refuses_when_already_cancelled(self):
        token = CancellationToken()
        token.cancel()

        async def work():
            return 1

        with pytest.raises(FetchCancelled):
            await token.guard(work())


class TestAuthContext:
    """Tests for AuthContext readiness and session"""

    async def test_waits_for_resolution(self):
        auth = AuthContext()

        async def resolve_later():
            await asyncio.sleep(0.01)
            auth.resolve(AuthSession(user_id="u1"))

        resolver = asyncio.create_task(resolve_later())
        await auth.wait_until_ready(1)
        await resolver

        assert auth.is_ready
        assert auth.require_session().user_id == "u1"

    async def test_watchdog_raises_auth_stuck(self):
        auth = AuthContext()

        with pytest.raises(AuthStuck) as exc_info:
            await auth.wait_until_ready(0.01)
        assert exc_info.value.user_message() == "Connection slow. Please refresh."

    async def test_require_session_without_user(self):
        auth = AuthContext(ready=True)

        with pytest.raises(NotAuthenticated) as exc_info:
            auth.require_session()
        assert exc_info.value.user_message() == "User session not found. Please log in."

    async def test_sign_out(self):
        auth = AuthContext(session=AuthSession(user_id="u1"), ready=True)
        auth.sign_out()

        with pytest.raises(NotAuthenticated):
            auth.require_session()
