"""
Tests for server-side usage sessions
"""
import pytest
from datetime import timedelta

from creator_subscriptions.db.models import UsageSession, UsageSessionState, UsageSessionEndReason
from creator_subscriptions.exceptions import NotFoundError
from creator_subscriptions.services.usage_session_service import UsageSessionService, format_duration


@pytest.fixture
def service(db_session, clock):
    return UsageSessionService(db_session, clock=clock, heartbeat_grace_seconds=60, orphaned_max_age_hours=2)


@pytest.fixture
def user(make_user):
    return make_user()


def heartbeat_for(service, clock, user_id, seconds, every=30):
    """Run ``seconds`` of activity with a heartbeat every ``every`` seconds"""
    elapsed = 0
    while elapsed + every <= seconds:
        clock.advance(seconds=every)
        elapsed += every
        service.heartbeat(user_id)
    clock.advance(seconds=seconds - elapsed)


class TestSessionLifecycle:
    """start / pause / resume / end"""

    def test_start_then_end_is_zero(self, service, user):
        session = service.start(user.id)
        assert session.state == UsageSessionState.RUNNING.value

        result = service.end(user.id)
        assert result.duration_seconds == 0
        assert result.session.state == UsageSessionState.ENDED.value
        assert result.session.end_reason == UsageSessionEndReason.ENDED.value

    def test_pause_and_resume_accumulate_running_time(self, service, clock, user):
        service.start(user.id)
        heartbeat_for(service, clock, user.id, 100)
        paused = service.pause(user.id)
        assert paused.state == UsageSessionState.PAUSED.value
        assert paused.accumulated_seconds == 100

        clock.advance(seconds=300)
        service.resume(user.id, paused.id)
        heartbeat_for(service, clock, user.id, 50)

        result = service.end(user.id)
        assert result.duration_seconds == 150
        assert result.total_day_seconds == 150

    def test_start_reuses_open_session(self, service, user):
        first = service.start(user.id)
        assert service.start(user.id).id == first.id

    def test_start_resumes_paused_session(self, service, clock, user):
        session = service.start(user.id)
        clock.advance(seconds=20)
        service.pause(user.id)
        clock.advance(minutes=5)

        resumed = service.start(user.id)
        assert resumed.id == session.id
        assert resumed.state == UsageSessionState.RUNNING.value
        assert resumed.accumulated_seconds == 20

    def test_start_replaces_abandoned_session(self, service, clock, user):
        old = service.start(user.id)
        clock.advance(seconds=30)
        service.heartbeat(user.id)
        clock.advance(hours=3)

        new = service.start(user.id)
        assert new.id != old.id
        assert old.state == UsageSessionState.ENDED.value
        assert old.end_reason == UsageSessionEndReason.ORPHANED.value
        assert old.accumulated_seconds == 30

    def test_resume_after_end_starts_new_session(self, service, user):
        old = service.start(user.id)
        service.end(user.id)

        new = service.resume(user.id, old.id)
        assert new.id != old.id
        assert new.state == UsageSessionState.RUNNING.value

    def test_pause_and_heartbeat_need_open_session(self, service, user):
        with pytest.raises(NotFoundError):
            service.pause(user.id)
        with pytest.raises(NotFoundError):
            service.heartbeat(user.id)

    def test_end_without_session(self, service, user):
        result = service.end(user.id)
        assert result.session is None
        assert result.duration_seconds == 0


class TestHeartbeatGrace:
    """Time is only credited while the client keeps reporting"""

    def test_silent_session_credits_only_grace(self, service, clock, user):
        service.start(user.id)
        clock.advance(minutes=10)
        assert service.end(user.id).duration_seconds == 60

    def test_late_heartbeat_starts_new_segment(self, service, clock, user):
        service.start(user.id)
        clock.advance(seconds=200)
        session = service.heartbeat(user.id)
        assert session.accumulated_seconds == 60

        clock.advance(seconds=30)
        assert service.end(user.id).duration_seconds == 90

    def test_elapsed_includes_running_segment(self, service, clock, user):
        session = service.start(user.id)
        clock.advance(seconds=45)
        assert service.elapsed_seconds(session) == 45

    def test_heartbeat_resumes_paused_session(self, service, clock, user):
        service.start(user.id)
        clock.advance(seconds=10)
        service.pause(user.id)
        clock.advance(seconds=30)

        session = service.heartbeat(user.id)
        assert session.state == UsageSessionState.RUNNING.value
        assert session.accumulated_seconds == 10

        clock.advance(seconds=20)
        assert service.end(user.id).duration_seconds == 30

    def test_late_pause_after_resume_is_undone_by_heartbeat(self, service, clock, user):
        session = service.start(user.id)
        clock.advance(seconds=40)
        service.resume(user.id, session.id)
        service.pause(user.id, session.id)

        clock.advance(seconds=30)
        service.heartbeat(user.id)
        clock.advance(seconds=30)
        service.heartbeat(user.id)

        assert service.end(user.id).duration_seconds == 70

    def test_resume_of_silent_running_session_skips_gap(self, service, clock, user):
        session = service.start(user.id)
        clock.advance(seconds=20)
        service.heartbeat(user.id)
        clock.advance(minutes=10)

        resumed = service.resume(user.id, session.id)
        assert resumed.id == session.id
        assert resumed.accumulated_seconds == 80

        clock.advance(seconds=10)
        assert service.end(user.id).duration_seconds == 90


class TestOrphanCleanup:
    """Closing sessions whose client went away"""

    def test_cleanup_closes_stale_sessions(self, db_session, service, clock, make_user):
        stale_user, paused_user, live_user = make_user(), make_user(), make_user()

        service.start(stale_user.id)
        clock.advance(seconds=30)
        service.heartbeat(stale_user.id)

        service.start(paused_user.id)
        clock.advance(seconds=15)
        service.pause(paused_user.id)

        clock.advance(hours=3)
        service.start(live_user.id)

        assert service.cleanup_orphaned() == 2

        stale = db_session.query(UsageSession).filter(UsageSession.user_id == stale_user.id).one()
        assert stale.state == UsageSessionState.ENDED.value
        assert stale.end_reason == UsageSessionEndReason.ORPHANED.value
        assert stale.accumulated_seconds == 30
        assert stale.ended_at == stale.last_heartbeat_at

        paused = db_session.query(UsageSession).filter(UsageSession.user_id == paused_user.id).one()
        assert paused.state == UsageSessionState.ENDED.value
        assert paused.accumulated_seconds == 15

        live = db_session.query(UsageSession).filter(UsageSession.user_id == live_user.id).one()
        assert live.state == UsageSessionState.RUNNING.value

    def test_cleanup_with_custom_age(self, service, clock, user):
        service.start(user.id)
        clock.advance(minutes=45)
        assert service.cleanup_orphaned() == 0
        assert service.cleanup_orphaned(max_age_hours=0) == 1


class TestStats:
    """Reporting over ended sessions"""

    def test_totals_and_rollups(self, service, clock, make_user):
        alice = make_user(name="Alice")
        bob = make_user(name="Bob")

        service.start(alice.id)
        heartbeat_for(service, clock, alice.id, 60)
        service.end(alice.id)

        service.start(bob.id)
        heartbeat_for(service, clock, bob.id, 120)
        service.end(bob.id)

        service.start(alice.id)  # still open, not counted

        stats = service.stats()
        assert stats["total_sessions"] == 2
        assert stats["total_time_seconds"] == 180
        assert stats["total_time_formatted"] == "3m 0s"
        assert stats["average_session_time"] == 90
        assert {entry["user"]["name"] for entry in stats["user_stats"]} == {"Alice", "Bob"}
        assert stats["daily_stats"][0]["unique_users"] == 2
        assert len(stats["sessions"]) == 2

    def test_filters(self, service, clock, make_user):
        alice = make_user()
        bob = make_user()
        for person in (alice, bob):
            service.start(person.id)
            heartbeat_for(service, clock, person.id, 30)
            service.end(person.id)

        assert service.stats(user_id=alice.id)["total_sessions"] == 1
        assert service.stats(start=clock() + timedelta(days=1))["total_sessions"] == 0

    def test_empty(self, service):
        stats = service.stats()
        assert stats["total_sessions"] == 0
        assert stats["average_session_time_formatted"] == "0s"


@pytest.mark.parametrize("seconds,expected", [
    (0, "0s"),
    (59, "59s"),
    (61, "1m 1s"),
    (3600, "1h 0m 0s"),
    (3723, "1h 2m 3s"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
