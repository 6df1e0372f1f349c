from datetime import timedelta

import pytest
from django.utils import timezone

from shipsync.lock import RunLock
from shipsync.models import SyncLock


@pytest.mark.django_db
class TestRunLock:
    def test_acquire_free_lock(self):
        lock = RunLock()
        assert lock.acquire() is True
        assert lock.is_held()

    def test_second_holder_fails_fast(self):
        first, second = RunLock(), RunLock()
        assert first.acquire()
        assert second.acquire() is False

    def test_release_frees_lock(self):
        first, second = RunLock(), RunLock()
        first.acquire()
        assert first.release() is True
        assert not first.is_held()
        assert second.acquire() is True

    def test_release_by_non_owner_is_a_noop(self):
        first, second = RunLock(), RunLock()
        first.acquire()
        assert second.release() is False
        assert first.is_held()

    def test_stale_lock_can_be_taken_over(self):
        first, second = RunLock(stale_after=60), RunLock(stale_after=60)
        first.acquire()
        SyncLock.objects.filter(name=first.name).update(acquired_at=timezone.now() - timedelta(minutes=5))

        assert second.acquire() is True
        assert SyncLock.objects.get(name=first.name).owner == second.owner
        # the crashed holder can no longer release what it lost
        assert first.release() is False

    def test_fresh_lock_is_not_stale(self):
        first, second = RunLock(stale_after=60), RunLock(stale_after=60)
        first.acquire()
        assert second.acquire() is False

    def test_force_release(self):
        first = RunLock()
        first.acquire()
        assert RunLock().force_release() is True
        assert not first.is_held()

    def test_independent_names_do_not_collide(self):
        assert RunLock(name='a').acquire()
        assert RunLock(name='b').acquire()


@pytest.mark.django_db
class TestHeldContext:
    def test_held_yields_true_and_releases(self):
        lock = RunLock()
        with lock.held() as acquired:
            assert acquired is True
            assert lock.is_held()
        assert not lock.is_held()

    def test_held_yields_false_when_busy_and_leaves_holder_alone(self):
        holder = RunLock()
        holder.acquire()
        with RunLock().held() as acquired:
            assert acquired is False
        assert holder.is_held()

    def test_held_releases_on_exception(self):
        lock = RunLock()
        with pytest.raises(RuntimeError):
            with lock.held():
                raise RuntimeError('boom')
        assert not lock.is_held()
