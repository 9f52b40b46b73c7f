from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence

ROLES = ("user", "assistant")
ROLE_ALIASES = {"bot": "assistant", "model": "assistant"}


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    content: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown conversation role: {self.role!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConversationTurn":
        role = str(data.get("role", "")).lower()
        return cls(role=ROLE_ALIASES.get(role, role), content=str(data.get("content", "")))


def build_context(history: Sequence[ConversationTurn]) -> str:
    """
    Flatten prior turns into the context blob the chat flow expects.

    The last turn is the question being asked right now and is left out.
    No truncation happens here; how much history to send is the caller's call.
    """
    return "\n".join(f"{turn.role}: {turn.content}" for turn in history[:-1])


def append_turn(history: Sequence[ConversationTurn], role: str, content: str) -> List[ConversationTurn]:
    return [*history, ConversationTurn(role=role, content=content)]
