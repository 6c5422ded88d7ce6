"""Builds the provider request from a persisted transcript."""

from typing import List, Optional, Sequence

import structlog

from ..domain.models import AssembledConversation, Message, Role, Turn
from .prompts import get_template

logger = structlog.get_logger()


class ConversationAssembler:
    """Pure transformation from messages to a system instruction plus turns.

    ``max_turns`` bounds the forwarded history to the most recent turns; 0 or
    None forwards everything.
    """

    def __init__(
        self,
        default_service_type: Optional[str] = None,
        max_turns: Optional[int] = None,
    ) -> None:
        self.default_service_type = default_service_type
        self.max_turns = max_turns or None

    def system_instruction(self, service_type: Optional[str] = None) -> str:
        return get_template(service_type or self.default_service_type).system_instruction

    def _window(self, turns: List[Turn]) -> List[Turn]:
        if self.max_turns is None or len(turns) <= self.max_turns:
            return turns

        window = turns[-self.max_turns:]
        # Providers expect the conversation to open with a user turn
        while window and window[0].role is not Role.USER:
            window = window[1:]
        logger.debug(
            "context_window_applied",
            total_turns=len(turns),
            forwarded_turns=len(window),
        )
        return window

    def assemble(
        self, messages: Sequence[Message], service_type: Optional[str] = None
    ) -> AssembledConversation:
        """Convert messages, in order, into provider turns."""
        turns = [Turn(role=m.role, content=m.content) for m in messages]
        return AssembledConversation(
            system_instruction=self.system_instruction(service_type),
            turns=self._window(turns),
        )
