# =============================================================================
# SMTP Worker
# =============================================================================
# The send backend's thread. There is no long-lived connection: every
# SendMail opens, authenticates, sends and quits. Failures are answered with
# an ErrorResponse and the worker keeps serving.
# =============================================================================

import copy
import logging

from ectt.core.account import SmtpConfig
from ectt.core.channel import Receiver, Sender
from ectt.core.commands import Command, Response, SendMail, SendMailSuccess
from ectt.core.errors import ProtocolError
from ectt.core.worker import BackendWorker
from ectt.smtp.client import SMTPClient

logger = logging.getLogger(__name__)


class SmtpWorker(BackendWorker[Command, Response]):
    """Worker thread owning the SMTP client."""

    def __init__(
        self,
        config: SmtpConfig,
        commands: Receiver[Command],
        responses: Sender[Response],
    ) -> None:
        super().__init__(commands, responses, name="smtp")
        self.config = copy.deepcopy(config)
        self.client = SMTPClient(self.config)

    async def handle(self, command: Command) -> Response:
        if isinstance(command, SendMail):
            await self.client.send(command.message)
            return SendMailSuccess()
        raise ProtocolError(f"SMTP worker cannot handle {type(command).__name__}")
