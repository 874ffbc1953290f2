"""Chat-driven ledger mutations behind an explicit confirmation turn.

The gate is a two-state machine. In IDLE a user message goes to the assistant,
which either answers a question or proposes a mutation. A proposal moves the
gate to AWAITING_CONFIRMATION, and the next user message is matched locally
against a closed list of affirmative answers: a match applies the proposal,
anything else discards it. The assistant is never called on that turn.
"""

import logging
import unicodedata
from collections.abc import Awaitable, Callable
from enum import Enum

from statement_ledger.models import (
    AssistantReply,
    ChatAction,
    ChatMessage,
    ChatRole,
    ImagePart,
    Ledger,
    PendingAction,
)
from statement_ledger.parsers.assistant import chat_with_assistant
from statement_ledger.parsers.llm_client import ExtractionServiceError
from statement_ledger.services.ledger_store import LedgerError, LedgerStore

logger = logging.getLogger(__name__)

AFFIRMATIVE_ANSWERS = frozenset({"có", "ok", "yes", "đồng ý", "ừ", "uhm", "uh", "confirm", "được"})

GREETING_MESSAGE = (
    "Chào anh/chị, em là trợ lý kế toán ảo. Em có thể giúp gì trong việc đối chiếu và chỉnh sửa báo cáo này ạ?"
)
APPLIED_MESSAGE = "Dạ, em đã điều chỉnh xong ạ."
CANCELLED_MESSAGE = "Dạ vâng, em đã hủy yêu cầu điều chỉnh."
APPLY_FAILED_MESSAGE = "Dạ, báo cáo đã thay đổi nên em không thể áp dụng điều chỉnh này. Anh/chị vui lòng yêu cầu lại nhé."
ERROR_MESSAGE = "Xin lỗi anh/chị, em gặp sự cố khi xử lý yêu cầu. Anh/chị vui lòng thử lại nhé."

AssistantFn = Callable[..., Awaitable[AssistantReply]]


class GateState(str, Enum):
    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


class ChatBusyError(Exception):
    """Raised when a message arrives while the previous one is still being answered."""

    pass


class AttachmentNotAllowedError(Exception):
    """Raised when an image is attached to a confirmation answer."""

    pass


def is_affirmative(answer: str) -> bool:
    """Exact, case-insensitive match against the affirmative vocabulary."""
    normalized = unicodedata.normalize("NFC", answer).strip().lower()
    return normalized in AFFIRMATIVE_ANSWERS


class ConfirmationGate:
    """Turns chat requests into ledger mutations, one confirmed proposal at a time."""

    def __init__(self, store: LedgerStore, assistant: AssistantFn = chat_with_assistant):
        self._store = store
        self._assistant = assistant
        self.messages: list[ChatMessage] = []
        self.pending_action: PendingAction | None = None
        self.is_loading = False
        self._generation = 0
        self.reset()

    @property
    def state(self) -> GateState:
        if self.pending_action is not None:
            return GateState.AWAITING_CONFIRMATION
        return GateState.IDLE

    def reset(self) -> None:
        """Start a fresh conversation for a newly extracted ledger.

        A reply still in flight belongs to the previous conversation and is
        dropped when it arrives.
        """
        self.messages = [ChatMessage(role=ChatRole.MODEL, content=GREETING_MESSAGE)]
        self.pending_action = None
        self._generation += 1

    async def handle_message(
        self, message: str, raw_statement: str, image: ImagePart | None = None
    ) -> ChatMessage:
        """
        Process one user turn and return the assistant's reply.

        Raises:
            ChatBusyError: If the previous message is still in flight
            AttachmentNotAllowedError: If an image accompanies a confirmation answer
            LedgerNotLoadedError: If there is no ledger to talk about
            ValueError: If the message is empty and has no image
        """
        if self.is_loading:
            raise ChatBusyError("Previous message is still being processed")

        text = message.strip()
        if not text and image is None:
            raise ValueError("Message is empty")
        if image is not None and self.state == GateState.AWAITING_CONFIRMATION:
            raise AttachmentNotAllowedError("Answer the pending confirmation before attaching an image")

        ledger = self._store.require_current()
        history = list(self.messages)
        self.messages.append(
            ChatMessage(role=ChatRole.USER, content=text, image=image.to_data_url() if image else None)
        )

        generation = self._generation
        self.is_loading = True
        try:
            if self.pending_action is not None:
                reply = self._resolve_pending(text)
            else:
                reply, proposal = await self._propose(text, ledger, history, raw_statement, image)
                if generation != self._generation:
                    logger.warning("Conversation was reset while the assistant was answering, reply dropped")
                    return reply
                self.pending_action = proposal
        finally:
            self.is_loading = False

        self.messages.append(reply)
        return reply

    def _resolve_pending(self, answer: str) -> ChatMessage:
        action = self.pending_action
        self.pending_action = None

        if not is_affirmative(answer):
            logger.info(f"Pending {action.kind.value} declined")
            return ChatMessage(role=ChatRole.MODEL, content=CANCELLED_MESSAGE)

        try:
            self._apply(action)
        except (LedgerError, ValueError) as e:
            logger.warning(f"Could not apply confirmed {action.kind.value}: {e}")
            return ChatMessage(role=ChatRole.MODEL, content=APPLY_FAILED_MESSAGE)

        logger.info(f"Pending {action.kind.value} applied")
        return ChatMessage(role=ChatRole.MODEL, content=APPLIED_MESSAGE)

    def _apply(self, action: PendingAction) -> None:
        if action.kind == ChatAction.UPDATE and action.update is not None:
            update = action.update
            # Bounds are checked against the ledger as it is now, not as it was proposed
            self._store.update_field(update.index, update.field, update.new_value)
        elif action.kind == ChatAction.ADD and action.add is not None:
            self._store.add_transaction(action.add)
        elif action.kind == ChatAction.UNDO:
            self._store.undo()

    async def _propose(
        self,
        text: str,
        ledger: Ledger,
        history: list[ChatMessage],
        raw_statement: str,
        image: ImagePart | None,
    ) -> tuple[ChatMessage, PendingAction | None]:
        try:
            reply = await self._assistant(
                message=text,
                ledger=ledger,
                history=history,
                raw_statement=raw_statement,
                image=image,
            )
        except ExtractionServiceError as e:
            logger.error(f"Assistant call failed: {e}")
            return ChatMessage(role=ChatRole.MODEL, content=ERROR_MESSAGE), None

        proposal = None
        if reply.proposes_mutation():
            proposal = PendingAction.from_reply(reply)
            logger.info(f"Awaiting confirmation for {reply.action.value}")

        return ChatMessage(role=ChatRole.MODEL, content=reply.response_text), proposal
