"""Tests for lock evaluation, heartbeats and release."""

import urllib.parse

import pytest

from conftest import ALICE, BOB, CAROL, NOTES, ROADMAP
from editlock.models import Document, DocumentLock
from editlock.services.edit_lock import (
    DocumentNotFound,
    LockConflict,
    LockState,
    Unauthorized,
    cancel_edit_lock_action,
)
from editlock.services.lock_store import LockStore


class TestEvaluate:
    """Free / held-by-self / held-by-other decisions."""

    async def test_no_lock_is_free(self, make_service):
        status = await make_service().evaluate(NOTES, ALICE)
        assert status.state is LockState.FREE
        assert status.holder_id is None

    async def test_own_live_lock_is_held_by_self(self, make_service, clock):
        await make_service().on_heartbeat(NOTES, ALICE)
        clock.advance(599)
        status = await make_service().evaluate(NOTES, ALICE)
        assert status.state is LockState.HELD_BY_SELF
        assert status.holder_id == ALICE

    async def test_foreign_live_lock_is_held_by_other(self, make_service, clock):
        await make_service().on_heartbeat(NOTES, ALICE)
        clock.advance(10)
        status = await make_service().evaluate(NOTES, BOB)
        assert status.state is LockState.HELD_BY_OTHER
        assert status.holder_id == ALICE
        assert status.expires_at == status.acquired_at + 600

    async def test_stale_lock_is_free_for_everyone(self, make_service, clock):
        await make_service().on_heartbeat(NOTES, ALICE)
        clock.advance(600)
        service = make_service()
        assert (await service.evaluate(NOTES, ALICE)).state is LockState.FREE
        assert (await service.evaluate(NOTES, BOB)).state is LockState.FREE

    async def test_missing_document(self, make_service):
        with pytest.raises(DocumentNotFound):
            await make_service().evaluate(999, ALICE)

    async def test_scenario_heartbeat_then_expire(self, make_service, clock):
        """A heartbeats at t=0; B sees A until the window lapses."""
        await make_service().on_heartbeat(NOTES, ALICE)

        clock.advance(300)
        service = make_service()
        assert (await service.evaluate(NOTES, ALICE)).state is LockState.HELD_BY_SELF
        other = await service.evaluate(NOTES, BOB)
        assert other.state is LockState.HELD_BY_OTHER
        assert other.holder_id == ALICE

        clock.advance(400)
        assert (await make_service().evaluate(NOTES, BOB)).state is LockState.FREE

    async def test_locks_are_per_document(self, make_service):
        await make_service().on_heartbeat(NOTES, ALICE)
        assert (await make_service().evaluate(ROADMAP, BOB)).state is LockState.FREE

    async def test_is_locked(self, make_service):
        await make_service().on_heartbeat(NOTES, ALICE)
        service = make_service()
        assert await service.is_locked(NOTES, BOB) == ALICE
        assert await service.is_locked(NOTES, ALICE) is None
        assert await service.is_locked(ROADMAP, BOB) is None


class TestUnknownHolder:
    """A live lock row without a holder falls back to the last editor for display."""

    @pytest.fixture
    async def holderless(self, session, clock):
        document = await session.get(Document, NOTES)
        document.last_editor_id = ALICE
        session.add(DocumentLock(document_id=NOTES, holder_id=None, acquired_at=clock()))
        await session.commit()

    async def test_shown_as_last_editor(self, make_service, holderless):
        status = await make_service().evaluate(NOTES, BOB)
        assert status.state is LockState.HELD_BY_OTHER
        assert status.holder_id is None
        assert status.display_holder_id == ALICE

    async def test_last_editor_gets_no_exclusivity(self, make_service, holderless):
        service = make_service()
        assert (await service.evaluate(NOTES, ALICE)).state is LockState.HELD_BY_OTHER
        with pytest.raises(LockConflict):
            await service.on_heartbeat(NOTES, ALICE)

    async def test_locker_name_uses_last_editor(self, make_service, holderless):
        assert await make_service().locker_display_name(NOTES, BOB) == "Alice Liddell"


class TestHeartbeat:
    """Heartbeats create, refresh, and never steal locks."""

    async def test_creates_lock(self, make_service, session, clock):
        result = await make_service().on_heartbeat(NOTES, ALICE)
        assert result.holder_id == ALICE
        assert result.acquired_at == clock()
        assert result.expires_at == clock() + 600

        lock = await LockStore(session).get(NOTES)
        assert lock.holder_id == ALICE

    async def test_refreshes_own_lock(self, make_service, session, clock):
        await make_service().on_heartbeat(NOTES, ALICE)
        clock.advance(500)
        await make_service().on_heartbeat(NOTES, ALICE)
        clock.advance(500)

        # 1000s after the first heartbeat but only 500s after the last one
        status = await make_service().evaluate(NOTES, BOB)
        assert status.state is LockState.HELD_BY_OTHER

    async def test_conflict_leaves_lock_alone(self, make_service, session, clock):
        await make_service().on_heartbeat(NOTES, ALICE)
        acquired_at = clock()
        clock.advance(100)

        with pytest.raises(LockConflict) as excinfo:
            await make_service().on_heartbeat(NOTES, BOB)

        assert excinfo.value.status.holder_id == ALICE
        lock = await LockStore(session).get(NOTES)
        assert lock.holder_id == ALICE
        assert lock.acquired_at == acquired_at

    async def test_takes_over_stale_lock(self, make_service, clock):
        await make_service().on_heartbeat(NOTES, ALICE)
        clock.advance(600)

        result = await make_service().on_heartbeat(NOTES, BOB)
        assert result.holder_id == BOB
        assert (await make_service().evaluate(NOTES, ALICE)).holder_id == BOB

    async def test_missing_document(self, make_service):
        with pytest.raises(DocumentNotFound):
            await make_service().on_heartbeat(999, ALICE)

    async def test_start_edit_records_last_editor(self, make_service, session):
        await make_service().start_edit(NOTES, BOB)
        document = await session.get(Document, NOTES)
        assert document.last_editor_id == BOB


class TestRelease:
    """Only the holder's own lock is released."""

    async def test_holder_releases(self, make_service):
        await make_service().on_heartbeat(NOTES, ALICE)
        result = await make_service().release(NOTES, ALICE)
        assert result.released is True
        assert (await make_service().evaluate(NOTES, BOB)).state is LockState.FREE

    async def test_non_holder_is_noop(self, make_service, session):
        await make_service().on_heartbeat(NOTES, ALICE)
        result = await make_service().release(NOTES, BOB)
        assert result.released is False
        assert (await make_service().evaluate(NOTES, ALICE)).state is LockState.HELD_BY_SELF
        assert (await LockStore(session).get(NOTES)).holder_id == ALICE

    async def test_release_without_lock(self, make_service):
        result = await make_service().release(NOTES, ALICE)
        assert result.released is False

    async def test_missing_document(self, make_service):
        with pytest.raises(DocumentNotFound):
            await make_service().release(999, ALICE)


class TestForceCancel:
    """Administrative override guarded by a CSRF token."""

    def _token(self, service, document_id, actor_id):
        return service.nonces.create(cancel_edit_lock_action(document_id), actor_id, service.clock())

    async def test_admin_clears_foreign_lock(self, make_service):
        await make_service().on_heartbeat(NOTES, ALICE)
        service = make_service()

        result = await service.force_cancel(NOTES, CAROL, self._token(service, NOTES, CAROL))
        assert result.released is True
        assert (await make_service().evaluate(NOTES, BOB)).state is LockState.FREE

    async def test_non_admin_rejected(self, make_service):
        await make_service().on_heartbeat(NOTES, ALICE)
        service = make_service()

        with pytest.raises(Unauthorized):
            await service.force_cancel(NOTES, BOB, self._token(service, NOTES, BOB))
        assert (await make_service().evaluate(NOTES, BOB)).holder_id == ALICE

    async def test_bad_token_rejected(self, make_service):
        await make_service().on_heartbeat(NOTES, ALICE)
        with pytest.raises(Unauthorized):
            await make_service().force_cancel(NOTES, CAROL, "0000000000")

    async def test_token_bound_to_document(self, make_service):
        await make_service().on_heartbeat(NOTES, ALICE)
        service = make_service()
        with pytest.raises(Unauthorized):
            await service.force_cancel(NOTES, CAROL, self._token(service, ROADMAP, CAROL))

    async def test_admin_from_settings(self, session, settings, clock):
        from dataclasses import replace

        from editlock.services.edit_lock import EditLockService

        service = EditLockService(session, replace(settings, admin_ids=[BOB]), clock=clock)
        await service.on_heartbeat(NOTES, ALICE)
        result = await service.force_cancel(NOTES, BOB, self._token(service, NOTES, BOB))
        assert result.released is True


class TestPresentation:
    """Locker names and action links."""

    async def test_locker_name_for_other(self, make_service):
        await make_service().on_heartbeat(NOTES, ALICE)
        assert await make_service().locker_display_name(NOTES, BOB) == "Alice Liddell"

    async def test_locker_name_falls_back_to_username(self, make_service):
        await make_service().on_heartbeat(NOTES, BOB)
        assert await make_service().locker_display_name(NOTES, ALICE) == "bob"

    async def test_locker_name_empty_when_free_or_self(self, make_service):
        service = make_service()
        assert await service.locker_display_name(NOTES, ALICE) == ""
        await service.on_heartbeat(NOTES, ALICE)
        assert await service.locker_display_name(NOTES, ALICE) == ""

    async def test_cancel_edit_link(self, make_service):
        link = await make_service().cancel_edit_link(NOTES)
        assert link == "http://docs.test/docs/meeting-notes/?bpd_action=cancel_edit"

    async def test_force_cancel_link_carries_valid_nonce(self, make_service):
        service = make_service()
        link = await service.force_cancel_link(NOTES, CAROL)

        parsed = urllib.parse.urlparse(link)
        query = dict(urllib.parse.parse_qsl(parsed.query))
        assert parsed.path == "/docs/meeting-notes/"
        assert query["bpd_action"] == "cancel_edit_lock"
        assert service.nonces.verify(
            query["_nonce"], cancel_edit_lock_action(NOTES), CAROL, service.clock()
        ) == 1

    async def test_links_for_missing_document(self, make_service):
        with pytest.raises(DocumentNotFound):
            await make_service().cancel_edit_link(999)


class TestRequestCache:
    """Lookups are memoized per service instance."""

    async def test_second_evaluate_hits_cache(self, make_service):
        service = make_service()
        await service.evaluate(NOTES, ALICE)
        await service.evaluate(NOTES, BOB)
        assert service.cache.hits == 1

    async def test_write_invalidates_cache(self, make_service):
        service = make_service()
        assert (await service.evaluate(NOTES, ALICE)).state is LockState.FREE
        await service.on_heartbeat(NOTES, ALICE)
        assert (await service.evaluate(NOTES, ALICE)).state is LockState.HELD_BY_SELF
        await service.release(NOTES, ALICE)
        assert (await service.evaluate(NOTES, ALICE)).state is LockState.FREE

    async def test_new_service_starts_empty(self, make_service):
        first = make_service()
        await first.evaluate(NOTES, ALICE)
        assert make_service().cache.get(NOTES) is None


class TestHousekeeping:
    async def test_active_locks_and_purge(self, make_service, clock):
        await make_service().on_heartbeat(NOTES, ALICE)
        clock.advance(400)
        await make_service().on_heartbeat(ROADMAP, BOB)
        clock.advance(300)

        service = make_service()
        active = await service.active_locks()
        assert [lock.document_id for lock in active] == [ROADMAP]

        assert await service.purge_stale() == 1
        assert await make_service().purge_stale() == 0
