"""
Request orchestration for Joi.

:class:`TicketAgent` drives one request through an explicit state machine::

    START -> INTENT_ANALYZED -> CLARIFICATION_EXIT
                             -> RESPONDING (chat short path) -> DONE
                             -> CONTEXT_LOADING -> PLANNED -> EXECUTING -> RESPONDING -> DONE

Any fatal error (parse failure, model failure, timeout, unknown tool) moves the request to
``FAILED`` and the caller receives :data:`APOLOGY`.  Tool failures are not fatal: they are kept in
the results and narrated.

The agent itself holds no per-request state, so one instance serves concurrent requests.
"""

import logging
from typing import (
    Iterable,
    List,
    Optional,
)

from joi.agent.intent_analyzer import IntentAnalyzer
from joi.agent.response_generator import ResponseGenerator
from joi.agent.tool_executor import ToolExecutor
from joi.agent.tool_planner import ToolPlanner
from joi.config import (
    Settings,
    settings,
)
from joi.core.errors import JoiError
from joi.core.llm import (
    BaseModelClient,
    load_model_client,
)
from joi.core.schema import (
    AgentAction,
    AgentReply,
    AgentState,
    AgentStatus,
    ConversationMessage,
    Intent,
    IntentAnalysis,
)
from joi.services.embeddings import (
    EmbeddingService,
    load_embedding_service,
)
from joi.services.identity import (
    AnonymousIdentityProvider,
    IdentityProvider,
)
from joi.store.base import DataStore
from joi.tools import (
    ToolName,
    ToolRegistry,
    build_tool_registry,
)

logger = logging.getLogger(__name__)

APOLOGY = "I'm sorry, something went wrong while handling your request. Please try again."

_SYSTEM_INTENTS = frozenset({Intent.SYSTEM, Intent.GREETING})


class TicketAgent:
    """Sequences analysis, planning, execution and response generation for one query at a time."""

    def __init__(
        self,
        analyzer: IntentAnalyzer,
        planner: ToolPlanner,
        executor: ToolExecutor,
        responder: ResponseGenerator,
    ) -> None:
        self.analyzer = analyzer
        self.planner = planner
        self.executor = executor
        self.responder = responder

    async def process(
        self,
        query: str,
        history: Optional[Iterable[ConversationMessage]] = None,
        identity: Optional[IdentityProvider] = None,
    ) -> AgentReply:
        """
        Answer *query* given the caller-supplied *history*.

        Parameters
        ----------
        query:
            The user's message.
        history:
            Earlier messages of the conversation, oldest first.  Nothing is remembered between
            calls; callers send the whole history every time.
        identity:
            Who is asking.  Without one every identity-dependent tool is denied.

        Returns
        -------
        AgentReply
            The response text and the final per-request state.
        """
        history = list(history or [])
        identity = identity or AnonymousIdentityProvider()
        state = AgentState(query=query)
        state.context.conversation_history = history

        try:
            response = await self._run(state, history, identity)
        except JoiError as exc:
            state.failure = type(exc).__name__
            state.advance(AgentStatus.FAILED)
            logger.error("Request failed in state %s: %s", state.transitions[-2].value, exc)
            return AgentReply(response=APOLOGY, state=state)

        return AgentReply(response=response, state=state)

    async def _run(
        self,
        state: AgentState,
        history: List[ConversationMessage],
        identity: IdentityProvider,
    ) -> str:
        intent = await self.analyzer.analyze(state.query, history)
        state.intent = intent
        state.context.parameters = intent.parameters
        state.advance(AgentStatus.INTENT_ANALYZED)

        message_context = intent.parameters.message_context
        if message_context is not None and message_context.needs_clarification:
            state.advance(AgentStatus.CLARIFICATION_EXIT)
            logger.info("Asking for clarification; no plan was made")
            return message_context.clarification_question

        if message_context is not None and message_context.type == "chat":
            state.advance(AgentStatus.RESPONDING)
            response = await self.responder.generate(state.query, history, intent, [], state.context)
            state.advance(AgentStatus.DONE)
            return response

        state.advance(AgentStatus.CONTEXT_LOADING)
        await self._load_context(state, intent, identity)

        plan = await self._plan(state, history, intent)
        state.plan = plan
        state.advance(AgentStatus.PLANNED)

        state.advance(AgentStatus.EXECUTING)
        state.result = await self.executor.run_plan(plan, identity)

        state.advance(AgentStatus.RESPONDING)
        response = await self.responder.generate(state.query, history, intent, state.result, state.context)
        state.advance(AgentStatus.DONE)
        return response

    async def _plan(
        self,
        state: AgentState,
        history: List[ConversationMessage],
        intent: IntentAnalysis,
    ) -> List[AgentAction]:
        action = intent.parameters.action
        if action is not None and action.missing_fields:
            logger.info("Skipping planning; missing fields: %s", action.missing_fields)
            return []
        return await self.planner.plan(state.query, history, intent)

    async def _load_context(self, state: AgentState, intent: IntentAnalysis, identity: IdentityProvider) -> None:
        """Fetch system info or the caller's profile; failures leave the context empty."""
        if intent.intent in _SYSTEM_INTENTS:
            tool = ToolName.GET_SYSTEM_INFO
        else:
            tool = ToolName.GET_CURRENT_USER_CONTEXT

        try:
            result = await self.executor.execute(AgentAction(tool=tool.value, reasoning="ambient context"), identity)
        except JoiError as exc:
            logger.warning("Loading %s failed: %s", tool.value, exc)
            return

        if not result.success:
            logger.info("No %s available: %s", tool.value, result.error_kind)
            return

        if tool == ToolName.GET_SYSTEM_INFO:
            state.context.system_info = result.data
        else:
            state.context.current_user = result.data
            state.context.organization = result.data.get("organization")


def build_agent(
    store: DataStore,
    client: BaseModelClient | None = None,
    embedder: EmbeddingService | None = None,
    registry: ToolRegistry | None = None,
    config: Settings | None = None,
) -> TicketAgent:
    """Wire up a :class:`TicketAgent`; each LLM stage shares the same stateless *client*."""
    config = config or settings
    client = client or load_model_client(config=config)
    embedder = embedder or load_embedding_service(config=config)
    registry = registry or build_tool_registry()
    return TicketAgent(
        analyzer=IntentAnalyzer(client, config),
        planner=ToolPlanner(client, registry, config),
        executor=ToolExecutor(registry, store, embedder, config),
        responder=ResponseGenerator(client, config),
    )
