"""Maps relay commands to single command bytes and hands them to the session."""

from __future__ import annotations

import logging

from relayctl.core.errors import UnknownCommandError
from relayctl.core.model import CommandTable
from relayctl.core.session import SessionManager

LOGGER = logging.getLogger(__name__)


class CommandDispatcher:
    def __init__(self, session: SessionManager, table: CommandTable) -> None:
        self._session = session
        self.table = table

    def labels(self) -> list[str]:
        return list(self.table.commands)

    async def send(self, label: str, turn_on: bool) -> bytes:
        """Send the on or off byte for ``label``.

        Session errors (NotConnectedError, TransportWriteError) propagate unchanged.
        """
        command = self.table.commands.get(label)
        if command is None:
            available = ", ".join(self.table.commands)
            raise UnknownCommandError(
                f"Command table '{self.table.id}' does not define '{label}'. Available: {available}"
            )

        payload = command.payload(turn_on)
        await self._session.send(payload)
        LOGGER.info("%s %s (%r)", command.label, "on" if turn_on else "off", payload.decode("latin-1"))
        return payload
