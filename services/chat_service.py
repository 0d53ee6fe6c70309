"""Chat service: conversation history plus the send-message flow.

A conversation is keyed by a document id (single-document chat) or a project
id (project chat). Messages are appended in send order and never modified.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from loguru import logger

from config.config import Settings, get_settings
from models.state import Answer, AnswerStatus, ChatMessage, DocumentText
from services.exceptions import EmptyDocument, NoDocumentsError
from services.rag_service import RAGService

PROJECT_NO_CONTENT_MESSAGE = (
    "I cannot answer without any document content. "
    "Please upload and open documents in this project first."
)
DOCUMENT_NO_CONTENT_MESSAGE = (
    "I cannot answer without any document content. Please upload documents first."
)
PROCESSING_ERROR_MESSAGE = (
    "I apologize, but I encountered an error processing your request."
)

DOCUMENT_SUGGESTIONS = (
    "Can you summarize this document?",
    "What are the key points?",
    "Extract the main arguments.",
    "What recommendations does this document make?",
)
PROJECT_SUGGESTIONS = (
    "What are the main themes across all documents?",
    "Compare and contrast the documents in this project.",
    "What key insights can you extract from all documents?",
    "Summarize all documents in this project.",
)


def suggestions(project_chat: bool = False) -> Tuple[str, ...]:
    """Starter questions shown for an empty conversation."""
    return PROJECT_SUGGESTIONS if project_chat else DOCUMENT_SUGGESTIONS


class ChatHistoryStore:
    """In-memory, append-only message log per conversation id."""

    def __init__(self) -> None:
        self._messages: Dict[str, List[ChatMessage]] = {}

    def append(
        self, conversation_id: str, role: Literal["user", "assistant"], content: str
    ) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        self._messages.setdefault(conversation_id, []).append(message)
        return message

    def history(self, conversation_id: str) -> Tuple[ChatMessage, ...]:
        return tuple(self._messages.get(conversation_id, ()))

    def conversations(self) -> List[str]:
        return list(self._messages)

    def remove_conversation(self, conversation_id: str) -> bool:
        return self._messages.pop(conversation_id, None) is not None


@dataclass
class ChatReply:
    """Outcome of one send: the assistant message and, if any, the answer."""

    message: ChatMessage
    answer: Optional[Answer] = None

    @property
    def grounded(self) -> bool:
        return self.answer is not None and self.answer.grounded

    @property
    def status(self) -> str:
        return self.answer.status.value if self.answer else "precondition"


class ChatService:
    """Sends user questions to the RAG service and records the exchange."""

    def __init__(
        self,
        rag_service: RAGService,
        store: Optional[ChatHistoryStore] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.rag_service = rag_service
        self.store = store or ChatHistoryStore()
        self.preview_chars = settings.PROJECT_DOC_PREVIEW_CHARS
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._processing: Dict[str, bool] = {}

    def is_processing(self, conversation_id: str) -> bool:
        return self._processing.get(conversation_id, False)

    def history(self, conversation_id: str) -> Tuple[ChatMessage, ...]:
        return self.store.history(conversation_id)

    def remove_conversation(self, conversation_id: str) -> bool:
        lock = self._locks.get(conversation_id)
        if lock is not None and not lock.locked():
            del self._locks[conversation_id]
            self._processing.pop(conversation_id, None)
        return self.store.remove_conversation(conversation_id)

    def build_context(
        self, documents: Sequence[DocumentText], project_chat: bool = False
    ) -> str:
        """Build the context text for a conversation.

        Project chat concatenates a preview of every document with content;
        document chat uses the first document's full content.

        Raises:
            NoDocumentsError: If no document has content.
        """
        with_content = [doc for doc in documents if doc.has_content]
        if not with_content:
            raise NoDocumentsError()

        if project_chat:
            return "\n\n".join(
                f'Document "{doc.name}": {doc.content[: self.preview_chars]}...'
                for doc in with_content
            )
        return with_content[0].content

    async def send_message(
        self,
        conversation_id: str,
        query: str,
        documents: Sequence[DocumentText],
        project_chat: bool = False,
    ) -> ChatReply:
        """Record ``query``, answer it and record the answer.

        Messages for one conversation are handled strictly one at a time in
        send order.

        Raises:
            ValueError: If the query is blank.
        """
        if not query or not query.strip():
            raise ValueError("Query must not be empty")

        async with self._locks[conversation_id]:
            self._processing[conversation_id] = True
            try:
                self.store.append(conversation_id, "user", query)
                return await self._reply(conversation_id, query, documents, project_chat)
            finally:
                self._processing[conversation_id] = False

    async def _reply(
        self,
        conversation_id: str,
        query: str,
        documents: Sequence[DocumentText],
        project_chat: bool,
    ) -> ChatReply:
        no_content = PROJECT_NO_CONTENT_MESSAGE if project_chat else DOCUMENT_NO_CONTENT_MESSAGE

        try:
            context_text = self.build_context(documents, project_chat)
            logger.info(
                "Sending message for {} with context length {}",
                conversation_id,
                len(context_text),
            )
            answer = await self.rag_service.answer_query(context_text, query)
        except (NoDocumentsError, EmptyDocument) as e:
            logger.warning("⚠️ {}: {}", conversation_id, e.message)
            message = self.store.append(conversation_id, "assistant", no_content)
            return ChatReply(message=message)
        except Exception:
            logger.exception("Error generating AI response for {}", conversation_id)
            message = self.store.append(
                conversation_id, "assistant", PROCESSING_ERROR_MESSAGE
            )
            return ChatReply(
                message=message,
                answer=Answer(
                    text=PROCESSING_ERROR_MESSAGE,
                    grounded=False,
                    status=AnswerStatus.FALLBACK,
                ),
            )

        message = self.store.append(conversation_id, "assistant", answer.text)
        return ChatReply(message=message, answer=answer)
