"""Terminal front-end: prints status and turns, maps input lines to session operations."""

import asyncio
import logging
import sys
from typing import TextIO

from dialogue.models import ConversationTurn, Originator
from dialogue.session import DialogueSession, SessionStatus

logger = logging.getLogger(__name__)

HELP = (
    "Commands: /mic (start/stop recording), /yes, /no (answer the last question), "
    "/sos, /sos yes, /sos no, /retry, /quit. Anything else is sent as text."
)

_PREFIX = {
    Originator.USER: "you",
    Originator.AGENT: "robot",
    Originator.SYSTEM: "system",
}


class ConsoleFrontEnd:
    """Line-oriented front-end for headless robots and development."""

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._in = stdin or sys.stdin
        self._out = stdout or sys.stdout

    def _print(self, text: str) -> None:
        print(text, file=self._out, flush=True)

    def show_status(self, message: str) -> None:
        self._print(f"* {message}")

    def show_session_status(self, status: SessionStatus, message: str) -> None:
        marker = "!" if status in (SessionStatus.ERROR, SessionStatus.URGENT) else "*"
        self._print(f"{marker} {message}")

    def show_turn(self, turn: ConversationTurn) -> None:
        line = f"{_PREFIX[turn.originator]}> {turn.text}"
        if turn.awaiting_answer:
            line += "  [/yes | /no]"
        self._print(line)

    def set_speaking(self, speaking: bool) -> None:
        logger.debug("Speaking: %s", speaking)

    async def handle_line(self, session: DialogueSession, line: str) -> bool:
        """Apply one input line to the session. Returns False on /quit."""
        cmd = line.strip()
        if not cmd:
            return True
        lowered = cmd.lower()
        if lowered in ("/quit", "/exit"):
            return False
        if lowered == "/help":
            self._print(HELP)
        elif lowered == "/mic":
            await session.toggle_microphone()
        elif lowered in ("/yes", "/no"):
            pending = session.transcript.pending()
            if not pending:
                self._print("Nothing to answer.")
            else:
                await session.confirm_turn(pending[-1].id, lowered == "/yes")
        elif lowered == "/sos":
            session.trigger_escalation()
            self._print("Send an emergency call? /sos yes | /sos no")
        elif lowered == "/sos yes":
            await session.confirm_escalation()
        elif lowered == "/sos no":
            session.cancel_escalation()
        elif lowered == "/retry":
            if not await session.retry():
                self._print("Nothing to retry.")
        elif cmd.startswith("/"):
            self._print(f"Unknown command {cmd}. {HELP}")
        else:
            await session.submit_text(cmd)
        return True

    async def run(self, session: DialogueSession) -> None:
        """Read lines until /quit or end of input."""
        self._print(HELP)
        loop = asyncio.get_running_loop()
        while True:
            line = await loop.run_in_executor(None, self._in.readline)
            if not line:
                break
            if not await self.handle_line(session, line):
                break
