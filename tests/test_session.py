"""Tests for the front-end session (no threads, channels driven by hand)."""

import pytest

from ectt.core.channel import Empty, channel
from ectt.core.commands import ErrorResponse, Inbox, ReadInbox, SendMail, SendMailSuccess
from ectt.core.errors import ProtocolError, RefreshError
from ectt.core.message import ParsedEmail, PartialMessage
from ectt.session import (
    InboxLoaded,
    InboxLoadFailed,
    MailSent,
    ProtocolMismatch,
    SendFailed,
    Session,
    SessionEnded,
    WorkerDisconnected,
)
from ectt.smtp.client import TransportError


class Backends:
    """The worker-side channel ends of a Session."""

    def __init__(self, page_size: int = 5) -> None:
        imap_cmd_tx, self.imap_commands = channel()
        self.imap_responses, imap_resp_rx = channel()
        smtp_cmd_tx, self.smtp_commands = channel()
        self.smtp_responses, smtp_resp_rx = channel()
        self.session = Session(
            imap_cmd_tx, imap_resp_rx, smtp_cmd_tx, smtp_resp_rx, page_size=page_size
        )


@pytest.fixture
def backends():
    return Backends()


def emails(*uids: int) -> list[ParsedEmail]:
    return [ParsedEmail(uid=uid) for uid in uids]


class TestInbox:
    def test_load_sends_first_page(self, backends):
        assert backends.session.load()
        assert backends.imap_commands.try_recv() == ReadInbox(count=5, offset=0)
        assert backends.session.imap_inflight

    def test_no_overlapping_reads(self, backends):
        assert backends.session.load()
        assert not backends.session.load()
        backends.imap_commands.try_recv()
        with pytest.raises(Empty):
            backends.imap_commands.try_recv()

    def test_inbox_appended(self, backends):
        session = backends.session
        session.load()
        backends.imap_responses.send(Inbox(emails(10, 9, 8)))

        events = session.poll()

        assert events == [InboxLoaded(emails(10, 9, 8))]
        assert [e.uid for e in session.inbox] == [10, 9, 8]
        assert not session.imap_inflight

    def test_load_more_only_on_last_row(self, backends):
        session = backends.session
        session.load()
        backends.imap_commands.try_recv()
        backends.imap_responses.send(Inbox(emails(10, 9, 8)))
        session.poll()

        assert not session.load_more(1)
        assert session.load_more(2)
        assert backends.imap_commands.try_recv() == ReadInbox(count=5, offset=3)

    def test_load_more_on_empty_inbox(self, backends):
        assert not backends.session.load_more(0)

    def test_pages_are_not_deduplicated(self, backends):
        session = backends.session
        session.load()
        backends.imap_responses.send(Inbox(emails(2, 1)))
        session.poll()
        session.load_more(1)
        backends.imap_responses.send(Inbox(emails(1)))
        session.poll()

        assert [e.uid for e in session.inbox] == [2, 1, 1]

    def test_non_fatal_error(self, backends):
        session = backends.session
        session.load()
        error = ProtocolError("SELECT failed")
        backends.imap_responses.send(ErrorResponse(error))

        assert session.poll() == [InboxLoadFailed(error)]
        assert not session.imap_inflight

    def test_fatal_error_ends_session(self, backends):
        backends.session.load()
        backends.imap_responses.send(ErrorResponse(RefreshError("invalid_grant")))

        with pytest.raises(SessionEnded, match="invalid_grant"):
            backends.session.poll()

    def test_unexpected_response(self, backends):
        backends.imap_responses.send(SendMailSuccess())
        with pytest.raises(ProtocolMismatch):
            backends.session.poll()


class TestSend:
    def test_send_and_success(self, backends):
        session = backends.session
        message = PartialMessage(to="a@b.com")

        assert session.send_mail(message)
        assert not session.send_mail(message)
        assert backends.smtp_commands.try_recv() == SendMail(message)

        backends.smtp_responses.send(SendMailSuccess())
        assert session.poll() == [MailSent()]
        assert not session.smtp_inflight

    def test_transient_failure(self, backends):
        backends.session.send_mail(PartialMessage(to="a@b.com"))
        error = TransportError("SMTP error 421: try later", code=421)
        backends.smtp_responses.send(ErrorResponse(error))

        assert backends.session.poll() == [SendFailed(error, transient=True)]

    def test_permanent_failure(self, backends):
        backends.session.send_mail(PartialMessage(to="a@b.com"))
        error = TransportError("SMTP error 550: no such user", code=550)
        backends.smtp_responses.send(ErrorResponse(error))

        [event] = backends.session.poll()
        assert not event.transient


class TestDisconnect:
    def test_idle_poll(self, backends):
        assert backends.session.poll() == []

    def test_worker_gone(self, backends):
        backends.imap_responses.close()
        with pytest.raises(WorkerDisconnected, match="imap"):
            backends.session.poll()

    def test_queued_responses_delivered_before_hangup(self, backends):
        session = backends.session
        backends.imap_responses.send(ErrorResponse(ProtocolError("boom")))
        backends.imap_responses.close()

        [event] = session.poll()
        assert isinstance(event, InboxLoadFailed)

        with pytest.raises(WorkerDisconnected, match="boom") as exc_info:
            session.poll()
        assert isinstance(exc_info.value.__cause__, ProtocolError)

    def test_send_to_dead_worker(self, backends):
        backends.smtp_commands.close()
        with pytest.raises(WorkerDisconnected):
            backends.session.send_mail(PartialMessage(to="a@b.com"))

    def test_shutdown_hangs_up(self, backends):
        backends.session.shutdown(timeout=0.1)

        assert list(backends.imap_commands) == []
        assert list(backends.smtp_commands) == []
