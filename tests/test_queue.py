import asyncio
import uuid

import pytest

from app.matching.matcher import evaluate
from app.models.user import User
from app.notifications.jobs import JobType, NotificationJob, pair_key
from app.notifications.queue import NotificationQueue
from app.services.audit_log import EmailType
from conftest import RecordingAuditLog, RecordingMailSender, RecordingSleep, found_report, lost_report


def make_reporter(n):
    return User(id=n, public_id=uuid.uuid4().hex, full_name=f"User {n}", email=f"user{n}@campus.edu")


def make_job(job_type=JobType.MATCH, lost=None, found=None, lost_user=None, found_user=None):
    lost = lost or lost_report()
    found = found or found_report()
    return NotificationJob(
        job_type=job_type,
        lost_item=lost,
        found_item=found,
        lost_user=lost_user or make_reporter(1),
        found_user=found_user or make_reporter(2),
        match=evaluate(lost, found),
    )


def make_queue(mail_sender=None, audit_log=None, sleep=None, **kwargs):
    kwargs.setdefault("email_delay", 2.0)
    kwargs.setdefault("batch_delay", 5.0)
    return NotificationQueue(
        mail_sender=mail_sender or RecordingMailSender(),
        audit_log=audit_log or RecordingAuditLog(),
        client_url="http://campus.test",
        sleep=sleep or RecordingSleep(),
        **kwargs,
    )


class TestPairKey:
    def test_order_independent(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        assert pair_key(a, b) == pair_key(b, a)

    def test_accepts_strings_and_uuids(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        assert pair_key(str(a).upper(), b) == pair_key(a, str(b))

    def test_only_match_jobs_have_a_key(self):
        assert make_job().pair_key is not None
        assert make_job(JobType.ITEM_RECOVERED).pair_key is None


@pytest.mark.asyncio
class TestDeduplication:
    async def test_duplicate_while_pending_is_dropped(self):
        queue = make_queue()
        lost, found = lost_report(), found_report()

        assert queue.enqueue(make_job(lost=lost, found=found)) is True
        assert queue.enqueue(make_job(lost=lost, found=found)) is False
        assert queue.pending_count == 1

        await queue.drain_task
        assert len(queue.mail_sender.sent) == 2

    async def test_duplicate_while_in_flight_is_dropped(self):
        release = asyncio.Event()

        class BlockingSender(RecordingMailSender):
            async def send(self, email):
                await release.wait()
                return await super().send(email)

        queue = make_queue(mail_sender=BlockingSender())
        lost, found = lost_report(), found_report()

        queue.enqueue(make_job(lost=lost, found=found))
        await asyncio.sleep(0)  # let the drain task pick the job up
        assert queue.pending_count == 0

        assert queue.enqueue(make_job(lost=lost, found=found)) is False

        release.set()
        await queue.drain_task
        assert len(queue.mail_sender.sent) == 2

    async def test_sent_pair_is_never_renotified(self):
        queue = make_queue()
        lost, found = lost_report(), found_report()

        queue.enqueue(make_job(lost=lost, found=found))
        await queue.drain_task

        assert queue.was_notified(lost.id, found.id)
        assert queue.was_notified(found.id, lost.id)
        assert queue.enqueue(make_job(lost=lost, found=found)) is False
        assert len(queue.mail_sender.sent) == 2

    async def test_clear_history_allows_renotification(self):
        queue = make_queue()
        lost, found = lost_report(), found_report()

        queue.enqueue(make_job(lost=lost, found=found))
        await queue.drain_task
        queue.clear_history()

        assert not queue.was_notified(lost.id, found.id)
        assert queue.enqueue(make_job(lost=lost, found=found)) is True
        await queue.drain_task
        assert len(queue.mail_sender.sent) == 4

    async def test_failed_pair_can_be_queued_again(self):
        sender = RecordingMailSender(fail_for={"user2@campus.edu"})
        queue = make_queue(mail_sender=sender)
        lost, found = lost_report(), found_report()

        queue.enqueue(make_job(lost=lost, found=found))
        await queue.drain_task

        assert not queue.was_notified(lost.id, found.id)
        assert queue.enqueue(make_job(lost=lost, found=found)) is True
        await queue.drain_task

    async def test_different_pairs_are_independent(self):
        queue = make_queue()
        lost = lost_report()

        assert queue.enqueue(make_job(lost=lost, found=found_report())) is True
        assert queue.enqueue(make_job(lost=lost, found=found_report())) is True
        await queue.drain_task

        assert queue.status()["total_sent_pairs"] == 2

    async def test_resolution_notices_are_not_deduplicated(self):
        queue = make_queue()
        lost, found = lost_report(), found_report()

        assert queue.enqueue(make_job(JobType.ITEM_RECOVERED, lost=lost, found=found)) is True
        assert queue.enqueue(make_job(JobType.ITEM_RECOVERED, lost=lost, found=found)) is True
        await queue.drain_task

        assert len(queue.mail_sender.sent) == 2
        assert queue.status()["total_sent_pairs"] == 0


@pytest.mark.asyncio
class TestDraining:
    async def test_match_emails_lost_reporter_first(self):
        queue = make_queue()

        queue.enqueue(make_job())
        await queue.drain_task

        first, second = queue.mail_sender.sent
        assert first.recipient_email == "user1@campus.edu"
        assert first.subject == "Potential Match Found for Your Lost Item!"
        assert second.recipient_email == "user2@campus.edu"
        assert second.subject == "Potential Match for Item You Found!"
        assert "Black Dell Laptop" in second.html

    async def test_resolution_notices_go_to_the_other_side(self):
        queue = make_queue()

        queue.enqueue(make_job(JobType.ITEM_RECOVERED))
        queue.enqueue(make_job(JobType.FOUND_ITEM_CLOSED))
        await queue.drain_task

        recovered, closed = queue.mail_sender.sent
        assert recovered.recipient_email == "user2@campus.edu"
        assert recovered.email_type == EmailType.ITEM_RECOVERED_NOTIFICATION
        assert closed.recipient_email == "user1@campus.edu"
        assert closed.email_type == EmailType.FOUND_ITEM_CLOSED_NOTIFICATION

    async def test_jobs_are_sent_in_fifo_order(self):
        queue = make_queue()
        jobs = [make_job(lost_user=make_reporter(10 + i)) for i in range(3)]

        for job in jobs:
            queue.enqueue(job)
        await queue.drain_task

        lost_recipients = [e.recipient_email for e in queue.mail_sender.sent[::2]]
        assert lost_recipients == ["user10@campus.edu", "user11@campus.edu", "user12@campus.edu"]

    async def test_batches_with_pause_between(self):
        events = []
        sleep = RecordingSleep(events)
        queue = make_queue(mail_sender=RecordingMailSender(events), sleep=sleep, batch_size=5)

        for _ in range(7):
            queue.enqueue(make_job())
        await queue.drain_task

        sends = [i for i, event in enumerate(events) if event[0] == "send"]
        batch_pause = events.index(("sleep", 5.0))

        assert len(sends) == 14
        assert sleep.delays.count(5.0) == 1
        assert sends[9] < batch_pause < sends[10]
        # no pause after the very last email
        assert events[-1][0] == "send"

    async def test_email_delay_between_every_email(self):
        events = []
        queue = make_queue(mail_sender=RecordingMailSender(events), sleep=RecordingSleep(events))

        queue.enqueue(make_job())
        queue.enqueue(make_job(JobType.ITEM_RECOVERED))
        await queue.drain_task

        assert events == [
            ("send", "user1@campus.edu"),
            ("sleep", 2.0),
            ("send", "user2@campus.edu"),
            ("sleep", 2.0),
            ("send", "user2@campus.edu"),
        ]

    async def test_single_drain_task(self):
        queue = make_queue()

        queue.enqueue(make_job())
        first_task = queue.drain_task
        queue.enqueue(make_job())

        assert queue.drain_task is first_task
        assert queue.draining is True

        await first_task
        assert queue.draining is False

    async def test_enqueue_after_drain_starts_new_task(self):
        queue = make_queue()

        queue.enqueue(make_job())
        first_task = queue.drain_task
        await first_task

        queue.enqueue(make_job())
        assert queue.drain_task is not first_task
        await queue.drain_task
        assert len(queue.mail_sender.sent) == 4


@pytest.mark.asyncio
class TestFailures:
    async def test_failed_send_is_logged_and_stops_the_job(self):
        audit_log = RecordingAuditLog()
        sender = RecordingMailSender(fail_for={"user1@campus.edu"})
        queue = make_queue(mail_sender=sender, audit_log=audit_log)

        queue.enqueue(make_job())
        await queue.drain_task

        assert [event[1] for event in sender.events] == ["user1@campus.edu"]
        assert len(audit_log.emails) == 1
        assert audit_log.emails[0]["status"] == "failed"
        assert audit_log.emails[0]["email_type"] == EmailType.MATCH_NOTIFICATION

    async def test_exception_from_sender_is_recorded_and_queue_continues(self):
        audit_log = RecordingAuditLog()
        sender = RecordingMailSender(raise_for={"user1@campus.edu"})
        queue = make_queue(mail_sender=sender, audit_log=audit_log)

        queue.enqueue(make_job())
        queue.enqueue(make_job(JobType.ITEM_RECOVERED))
        await queue.drain_task

        failed = audit_log.emails[0]
        assert failed["status"] == "failed"
        assert failed["error_message"] == "SMTP connection refused"

        delivered = audit_log.emails[1]
        assert delivered["recipient_email"] == "user2@campus.edu"
        assert delivered["status"] == "sent"
        assert queue.draining is False

    async def test_each_sent_email_is_audited(self):
        audit_log = RecordingAuditLog()
        queue = make_queue(audit_log=audit_log)

        queue.enqueue(make_job())
        await queue.drain_task

        assert [entry["status"] for entry in audit_log.emails] == ["sent", "sent"]
        assert audit_log.emails[0]["subject"] == "Potential Match Found for Your Lost Item!"
        assert audit_log.emails[0]["error_message"] is None


@pytest.mark.asyncio
class TestAdministration:
    async def test_status_of_idle_queue(self):
        queue = make_queue()
        assert queue.status() == {
            "pending_count": 0,
            "draining": False,
            "total_sent_pairs": 0,
            "next_job": None,
        }

    async def test_status_shows_next_job(self):
        queue = make_queue()
        queue.enqueue(make_job(lost=lost_report(item_name="Blue Umbrella")))
        queue.enqueue(make_job())

        status = queue.status()
        assert status["pending_count"] == 2
        assert status["draining"] is True
        assert status["next_job"]["type"] == "match"
        assert status["next_job"]["lost_item"] == "Blue Umbrella"

        await queue.drain_task

    async def test_clear_queue_drops_pending_jobs(self):
        queue = make_queue()
        for _ in range(3):
            queue.enqueue(make_job())

        assert queue.clear_queue() == 3
        await queue.drain_task

        assert queue.mail_sender.sent == []
        assert queue.pending_count == 0

    async def test_clear_queue_lets_in_flight_send_finish(self):
        release = asyncio.Event()

        class BlockingSender(RecordingMailSender):
            async def send(self, email):
                await release.wait()
                return await super().send(email)

        queue = make_queue(mail_sender=BlockingSender())
        queue.enqueue(make_job(JobType.ITEM_RECOVERED))
        queue.enqueue(make_job(JobType.ITEM_RECOVERED))
        queue.enqueue(make_job(JobType.ITEM_RECOVERED))
        await asyncio.sleep(0)

        assert queue.clear_queue() == 2

        release.set()
        await queue.drain_task
        assert len(queue.mail_sender.sent) == 1

    async def test_clear_queue_keeps_history(self):
        queue = make_queue()
        lost, found = lost_report(), found_report()

        queue.enqueue(make_job(lost=lost, found=found))
        await queue.drain_task
        queue.clear_queue()

        assert queue.was_notified(lost.id, found.id)


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        make_queue(batch_size=0)


def test_enqueue_without_event_loop_leaves_queue_restartable():
    queue = make_queue()

    with pytest.raises(RuntimeError):
        queue.enqueue(make_job(JobType.ITEM_RECOVERED))

    assert queue.draining is False
    assert queue.pending_count == 1

    async def enqueue_again():
        queue.enqueue(make_job(JobType.FOUND_ITEM_CLOSED))
        await queue.drain_task

    asyncio.run(enqueue_again())

    assert queue.draining is False
    assert len(queue.mail_sender.sent) == 2
