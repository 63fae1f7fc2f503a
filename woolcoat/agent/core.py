"""
Agent core facade.

Module: woolcoat/agent/core.py

Wires the tool catalog, invocation pipeline, reflection loop and task
planner together and exposes the three public operations, plus session
chat shaped by long-term user memory and knowledge base document
management used by the HTTP and CLI layers.
"""

import logging
import uuid
from dataclasses import dataclass
from pathlib import PurePath
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from woolcoat.llm import ChunkCallback, GatewayResponse, LLMGateway, LLMMessage
from woolcoat.memory import DEFAULT_MEMORY_TYPE, UserMemory, format_memories
from woolcoat.prompts import CHAT_SYSTEM_PROMPT, PromptManager
from woolcoat.rag import DocumentChunk, DocumentInfo

from .errors import DocumentNotFoundError, GatewayFailureError, InvalidInputError
from .invocation import InvocationPipeline
from .reflection import ReflectionLoop
from .task_planner import Task, TaskPlanner
from .tool_catalog import AgentTool, ToolCatalog, ToolDescriptor

if TYPE_CHECKING:
    from woolcoat.config import AgentSettings
    from woolcoat.memory import LongTermMemoryStore, SessionStore
    from woolcoat.rag import DocumentSearch

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    """Reply from a plain chat turn."""

    session_id: str
    response: GatewayResponse


class AgentCore:
    """
    Entry point for tool calling and multi-step tasks.

    Example:
        core = await create_agent_core(settings)
        print(await core.invoke("compute 1+2*3"))
        task = await core.submit_task("compute 3*7 and export the result as markdown")
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        gateway: LLMGateway,
        prompts: Optional[PromptManager] = None,
        session_store: Optional["SessionStore"] = None,
        *,
        tool_call_temperature: float = 0.1,
        reflection_temperature: float = 0.2,
        reflection_max_attempts: int = 3,
        reflection_backoff_seconds: float = 0.0,
        plan_temperature: float = 0.1,
        max_plan_steps: int = 5,
        default_user_id: str = "default_user",
        search: Optional["DocumentSearch"] = None,
        memory_store: Optional["LongTermMemoryStore"] = None,
        memory_max_tokens: int = 1024,
        token_coefficient: float = 2.0,
        document_suffixes: Sequence[str] = ("md", "txt"),
    ) -> None:
        self.catalog = catalog
        self.gateway = gateway
        self.prompts = prompts or PromptManager()
        self.session_store = session_store
        self.search = search
        self.memory_store = memory_store
        self.memory_max_tokens = memory_max_tokens
        self.token_coefficient = token_coefficient
        self.document_suffixes = [s.lower().lstrip(".") for s in document_suffixes]
        self.default_user_id = default_user_id

        self.reflection = ReflectionLoop(
            catalog,
            gateway,
            self.prompts,
            max_attempts=reflection_max_attempts,
            temperature=reflection_temperature,
            backoff_seconds=reflection_backoff_seconds,
        )
        self.pipeline = InvocationPipeline(
            catalog, gateway, self.prompts, self.reflection, temperature=tool_call_temperature
        )
        self.planner = TaskPlanner(
            catalog,
            gateway,
            self.prompts,
            session_store,
            max_steps=max_plan_steps,
            temperature=plan_temperature,
            default_user_id=default_user_id,
        )

    async def invoke(self, instruction: str, session_id: Optional[str] = None) -> str:
        """Pick and run one tool for an instruction."""
        return await self.pipeline.invoke(instruction, session_id)

    async def invoke_known(
        self,
        tool_code: str,
        params: Optional[Mapping[str, Any]],
        instruction: str,
        session_id: Optional[str] = None,
    ) -> str:
        """Run a known tool directly, reflecting on failure."""
        return await self.pipeline.invoke_known(tool_code, params, instruction, session_id)

    async def submit_task(
        self,
        instruction: str,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Task:
        """Plan and execute a compound instruction."""
        return await self.planner.submit_task(instruction, session_id, user_id)

    def list_tools(self) -> List[ToolDescriptor]:
        return self.catalog.list_all()

    async def chat(
        self,
        question: str,
        session_id: Optional[str] = None,
        temperature: float = 0.7,
        user_id: Optional[str] = None,
    ) -> ChatResult:
        """
        Plain conversation with session history and the user's long-term memory.

        Args:
            question: User message
            session_id: Conversation id (generated when blank)
            temperature: Sampling temperature
            user_id: User whose stored preferences shape the system prompt

        Returns:
            Chat result; the exchange is saved only when the model call succeeds

        Raises:
            GatewayFailureError: If the model call fails
        """
        session_id, messages = await self._chat_messages(question, session_id, user_id)
        response = await self.gateway.generate(messages, temperature=temperature)
        if not response.success:
            raise GatewayFailureError(response.error_msg or response.content)

        await self._save_exchange(session_id, question, response.content)
        return ChatResult(session_id=session_id, response=response)

    async def chat_stream(
        self,
        question: str,
        on_chunk: ChunkCallback,
        session_id: Optional[str] = None,
        temperature: float = 0.7,
        user_id: Optional[str] = None,
    ) -> ChatResult:
        """
        Streaming conversation with session history.

        Each chunk is passed to ``on_chunk`` as it arrives.

        Raises:
            GatewayFailureError: If the model call fails
        """
        session_id, messages = await self._chat_messages(question, session_id, user_id)
        response = await self.gateway.generate_stream(messages, temperature, on_chunk)
        if not response.success:
            raise GatewayFailureError(response.error_msg or response.content)

        await self._save_exchange(session_id, question, response.content)
        return ChatResult(session_id=session_id, response=response)

    async def build_system_prompt(self, user_id: Optional[str] = None) -> str:
        """Render the chat system prompt with the user's highest weighted preferences."""
        memories = await self.recall(user_id or self.default_user_id)
        lines = format_memories(memories, self.memory_max_tokens, self.token_coefficient)
        block = f"Follow these user preferences:\n{lines}" if lines else "No user preferences are stored yet."
        return self.prompts.render(CHAT_SYSTEM_PROMPT, {"USER_MEMORY": block})

    async def remember(
        self,
        user_id: Optional[str],
        content: str,
        memory_type: str = DEFAULT_MEMORY_TYPE,
        weight: Optional[float] = None,
    ) -> UserMemory:
        """
        Store a long-term memory for a user.

        Args:
            user_id: Owner (default user when blank)
            content: What to remember
            memory_type: Memory category; chat reads ``preference``
            weight: Importance in [0, 1], 0.5 when omitted

        Returns:
            The stored entry

        Raises:
            InvalidInputError: If the content or type is blank
            RuntimeError: If no memory store is configured
        """
        if self.memory_store is None:
            raise RuntimeError("Long-term memory is not configured")
        try:
            memory = UserMemory(
                user_id=user_id or self.default_user_id,
                memory_type=memory_type,
                content=content,
                weight=weight,
            )
        except ValidationError as e:
            raise InvalidInputError(f"Invalid memory: {e.errors()[0]['msg']}")
        return await self.memory_store.save(memory)

    async def recall(
        self, user_id: Optional[str] = None, memory_type: str = DEFAULT_MEMORY_TYPE
    ) -> List[UserMemory]:
        """Return a user's memories of one type, highest weight first."""
        if self.memory_store is None:
            return []
        return await self.memory_store.get(user_id or self.default_user_id, memory_type)

    async def forget(
        self, memory_id: str, user_id: Optional[str] = None, memory_type: str = DEFAULT_MEMORY_TYPE
    ) -> bool:
        """Delete one memory entry; False when it does not exist."""
        if self.memory_store is None:
            return False
        return await self.memory_store.delete(user_id or self.default_user_id, memory_type, memory_id)

    async def index_document(
        self,
        content: str,
        user_id: Optional[str] = None,
        doc_id: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> DocumentInfo:
        """
        Add a document to the knowledge base searched by ``local_rag_search``.

        Returns:
            Summary of the indexed document

        Raises:
            InvalidInputError: If the content is blank
            RuntimeError: If no document search is configured
        """
        search = self._require_search()
        if not content.strip():
            raise InvalidInputError("Document content is empty, nothing to index")
        doc_id = doc_id or str(uuid.uuid4())
        chunks = await search.index_document(
            doc_id, user_id or self.default_user_id, content, file_name
        )
        logger.info(f"Indexed document {doc_id} ({chunks} chunks)")
        return DocumentInfo(doc_id=doc_id, file_name=file_name, chunk_count=chunks)

    async def upload_document(
        self,
        file_name: str,
        data: bytes,
        user_id: Optional[str] = None,
        doc_id: Optional[str] = None,
    ) -> DocumentInfo:
        """
        Index an uploaded text file.

        Raises:
            InvalidInputError: If the suffix is not allowed or the file is not UTF-8 text
        """
        suffix = PurePath(file_name or "").suffix.lower().lstrip(".")
        if suffix not in self.document_suffixes:
            raise InvalidInputError(
                f"Unsupported file format: {suffix or 'none'}, "
                f"supported formats: {', '.join(self.document_suffixes)}"
            )
        try:
            content = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise InvalidInputError(f"File {file_name} is not UTF-8 text: {e.reason}")
        return await self.index_document(content, user_id, doc_id, PurePath(file_name).name)

    async def list_documents(self, user_id: Optional[str] = None) -> List[DocumentInfo]:
        """List a user's documents, newest first."""
        return await self._require_search().list_documents(user_id or self.default_user_id)

    async def list_document_chunks(
        self, doc_id: str, user_id: Optional[str] = None
    ) -> List[DocumentChunk]:
        """
        Return a document's chunks in order.

        Raises:
            DocumentNotFoundError: If the user has no document with this id
        """
        user_id = user_id or self.default_user_id
        chunks = await self._require_search().list_chunks(doc_id, user_id)
        if not chunks:
            raise DocumentNotFoundError(doc_id, user_id)
        return chunks

    async def delete_document(self, doc_id: str, user_id: Optional[str] = None) -> int:
        """
        Delete a user's document from the knowledge base.

        Returns:
            Number of chunks removed

        Raises:
            DocumentNotFoundError: If the user has no document with this id
        """
        user_id = user_id or self.default_user_id
        removed = await self._require_search().delete_document(doc_id, user_id)
        if not removed:
            raise DocumentNotFoundError(doc_id, user_id)
        return removed

    def _require_search(self) -> "DocumentSearch":
        if self.search is None:
            raise RuntimeError("Document search is not configured")
        return self.search

    async def _chat_messages(
        self, question: str, session_id: Optional[str], user_id: Optional[str]
    ) -> Tuple[str, List[LLMMessage]]:
        session_id = session_id if session_id and session_id.strip() else str(uuid.uuid4())
        system = LLMMessage.system(await self.build_system_prompt(user_id))
        history: List[LLMMessage] = []
        if self.session_store is not None:
            history = await self.session_store.get_messages(session_id)
        return session_id, [system] + history + [LLMMessage.user(question)]

    async def _save_exchange(self, session_id: str, question: str, answer: str) -> None:
        if self.session_store is None:
            return
        await self.session_store.append(session_id, LLMMessage.user(question))
        await self.session_store.append(session_id, LLMMessage.assistant(answer))

    async def aclose(self) -> None:
        """Release gateway, memory and session store resources."""
        await self.gateway.aclose()
        if self.memory_store is not None:
            await self.memory_store.close()
        if self.session_store is not None:
            await self.session_store.close()


async def create_agent_core(
    settings: "AgentSettings",
    tools: Optional[Sequence[AgentTool]] = None,
    gateway: Optional[LLMGateway] = None,
) -> AgentCore:
    """
    Build an agent core and its collaborators from settings.

    Args:
        settings: Agent settings
        tools: Tools to register (the built-in set when None)
        gateway: Pre-built gateway (built from settings when None)

    Returns:
        Ready agent core with a sealed catalog
    """
    from woolcoat.llm import create_gateway
    from woolcoat.memory import (
        InMemoryLongTermMemoryStore,
        InMemorySessionStore,
        RedisLongTermMemoryStore,
        RedisSessionStore,
    )
    from woolcoat.rag import HaystackDocumentSearch
    from woolcoat.tools import default_tools

    gateway = gateway or create_gateway(settings)
    search = HaystackDocumentSearch(
        chunk_size=settings.document_chunk_size, chunk_overlap=settings.document_chunk_overlap
    )

    if tools is None:
        tools = default_tools(
            gateway,
            search,
            export_path=settings.markdown_export_path,
            summary_temperature=settings.summary_temperature,
        )
    catalog = ToolCatalog.from_tools(tools)

    session_store: "SessionStore"
    memory_store: "LongTermMemoryStore"
    if settings.session_backend == "redis":
        redis_store = RedisSessionStore(
            settings.redis_url,
            ttl_hours=settings.session_ttl_hours,
            max_tokens=settings.session_max_tokens,
            token_coefficient=settings.token_coefficient,
        )
        await redis_store.connect()
        session_store = redis_store
        memory_store = RedisLongTermMemoryStore(redis_store.require_client())
    else:
        session_store = InMemorySessionStore(
            max_tokens=settings.session_max_tokens,
            token_coefficient=settings.token_coefficient,
        )
        memory_store = InMemoryLongTermMemoryStore()

    logger.info(f"Agent core ready: {gateway}, {len(catalog)} tools, {settings.session_backend} sessions")

    return AgentCore(
        catalog,
        gateway,
        PromptManager(settings.prompt_dir),
        session_store,
        tool_call_temperature=settings.tool_call_temperature,
        reflection_temperature=settings.reflection_temperature,
        reflection_max_attempts=settings.reflection_max_attempts,
        reflection_backoff_seconds=settings.reflection_backoff_seconds,
        plan_temperature=settings.plan_temperature,
        max_plan_steps=settings.max_plan_steps,
        default_user_id=settings.default_user_id,
        search=search,
        memory_store=memory_store,
        memory_max_tokens=settings.long_memory_max_tokens,
        token_coefficient=settings.token_coefficient,
        document_suffixes=settings.document_allowed_suffixes,
    )
