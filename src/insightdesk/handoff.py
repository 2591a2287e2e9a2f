"""Summary: Conversation handoff collaborators.

Importance: Opens a follow-up conversation when the user asks to hear more about an insight.
Alternatives: Let the delivery controller talk to the chat product directly.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from insightdesk.storage.sqlite_store import StoredInsight

logger = logging.getLogger(__name__)


class ConversationHandoff(ABC):
    """Summary: Abstract interface for starting a conversation about an insight.

    Importance: Keeps the bubble state machine independent of the chat surface.
    Alternatives: Emit an event and let the host application react.
    """

    @abstractmethod
    def open_conversation(self, entry: StoredInsight) -> None:
        """Summary: Start a conversation seeded with the insight.

        Importance: Fulfils the "tell me more" action.
        Alternatives: Return a URL for the client to open.
        """


class LoggingConversationHandoff(ConversationHandoff):
    """Summary: Handoff that only records the request.

    Importance: Default for local runs where no chat surface is attached.
    Alternatives: Raise until a real handoff is configured.
    """

    def __init__(self) -> None:
        self.opened: list[int] = []

    def open_conversation(self, entry: StoredInsight) -> None:
        self.opened.append(entry.id)
        logger.info("Opening conversation for insight %s (%s)", entry.id, entry.category.value)
