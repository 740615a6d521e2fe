"""Tests for the SMTP worker thread."""

import aiosmtplib

from ectt.core.channel import channel
from ectt.core.commands import ErrorResponse, ReadInbox, SendMail, SendMailSuccess
from ectt.core.errors import ProtocolError
from ectt.core.message import PartialMessage
from ectt.smtp.client import SmtpTransport, TransportError
from ectt.smtp.worker import SmtpWorker


def start_worker(config):
    commands_tx, commands_rx = channel()
    responses_tx, responses_rx = channel()
    worker = SmtpWorker(config, commands_rx, responses_tx)
    worker.start()
    return worker, commands_tx, responses_rx


def test_send_and_keep_serving(password_smtp_config, monkeypatch):
    outcomes = [aiosmtplib.SMTPResponseException(550, "No such user"), None]

    async def send(self, message, recipients):
        error = outcomes.pop(0)
        if error is not None:
            raise error

    monkeypatch.setattr(SmtpTransport, "send", send)
    worker, commands_tx, responses_rx = start_worker(password_smtp_config)
    message = PartialMessage(to="a@b.com")

    commands_tx.send(SendMail(message))
    failure = responses_rx.recv(timeout=5)
    commands_tx.send(SendMail(message))
    success = responses_rx.recv(timeout=5)

    assert isinstance(failure, ErrorResponse)
    assert isinstance(failure.error, TransportError)
    assert failure.error.code == 550
    assert success == SendMailSuccess()

    commands_tx.close()
    worker.join(timeout=5)
    assert not worker.is_alive()


def test_rejects_read_commands(password_smtp_config):
    worker, commands_tx, responses_rx = start_worker(password_smtp_config)

    commands_tx.send(ReadInbox(count=5))
    response = responses_rx.recv(timeout=5)

    assert isinstance(response, ErrorResponse)
    assert isinstance(response.error, ProtocolError)

    commands_tx.close()
    worker.join(timeout=5)
    assert list(responses_rx) == []
    assert responses_rx.disconnected


def test_config_is_copied(oauth_smtp_config):
    worker, commands_tx, _ = start_worker(oauth_smtp_config)
    commands_tx.close()
    worker.join(timeout=5)

    assert worker.config == oauth_smtp_config
    assert worker.config.auth is not oauth_smtp_config.auth
