"""Identity, conversation turns and the append-only transcript."""

import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Originator(Enum):
    """Who produced a turn."""

    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class TurnKind(Enum):
    """Simple turns are informational; Confirmable turns need a yes/no answer."""

    SIMPLE = "simple"
    CONFIRMABLE = "confirm"


@dataclass(frozen=True)
class Identity:
    """User identity returned by the remote service on successful identification."""

    id: str
    display_name: str


@dataclass
class ConversationTurn:
    """One rendered unit of the transcript.

    ``resolved`` starts False only for Confirmable turns and flips to True
    exactly once, through :meth:`resolve`.
    """

    originator: Originator
    text: str
    kind: TurnKind = TurnKind.SIMPLE
    action_token: Any = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    resolved: bool = field(init=False)

    def __post_init__(self) -> None:
        self.resolved = self.kind is not TurnKind.CONFIRMABLE

    @property
    def awaiting_answer(self) -> bool:
        """True while the yes/no affordance should be shown."""
        return self.kind is TurnKind.CONFIRMABLE and not self.resolved

    def resolve(self) -> bool:
        """Mark answered. Returns False if it was already resolved."""
        if self.resolved:
            return False
        self.resolved = True
        return True


class Transcript:
    """Append-only, insertion-ordered sequence of turns."""

    def __init__(self) -> None:
        self._turns: list[ConversationTurn] = []
        self._by_id: dict[str, ConversationTurn] = {}

    def append(self, turn: ConversationTurn) -> ConversationTurn:
        if turn.id in self._by_id:
            raise ValueError(f"Duplicate turn id: {turn.id}")
        self._turns.append(turn)
        self._by_id[turn.id] = turn
        return turn

    def get(self, turn_id: str) -> ConversationTurn | None:
        return self._by_id.get(turn_id)

    def pending(self) -> list[ConversationTurn]:
        """Confirmable turns still awaiting an answer, oldest first."""
        return [t for t in self._turns if t.awaiting_answer]

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(list(self._turns))

    def __len__(self) -> int:
        return len(self._turns)

    def __getitem__(self, index: int) -> ConversationTurn:
        return self._turns[index]
