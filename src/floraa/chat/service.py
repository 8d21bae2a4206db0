"""
Chat service behind ``POST /api/ai/chat``.

Multi-agent mode asks every relevant agent concurrently and returns one
answer per agent; single mode classifies the request and calls the matching
LLM service operation directly.
"""

import asyncio
import time
from typing import List, Optional, Tuple

from floraa.core.logging import get_logger, set_correlation_id
from floraa.context.models import ChatMessage, ConversationMemory, KeyDecision, ProjectContext
from floraa.agents.architect import ARCHITECTURE_ADVICE
from floraa.agents.models import AgentMessage
from floraa.agents.system import ARCHITECT_ID, DEVELOPER_ID, REVIEWER_ID, USER
from floraa.chat.models import AgentResponse, ChatAction, ChatRequest, ChatResponse
from floraa.llm.prompts import classify_request, extract_code_block

logger = get_logger(__name__)

AGENT_CONFIDENCE = 0.85
AGENT_ERROR_CONFIDENCE = 0.1
SINGLE_MODE_CONFIDENCE = 0.8
SINGLE_MODE_AGENT = "Floraa AI"
CURRENT_CODE_PLACEHOLDER = "Current code context"

AGENT_KEYWORDS = [
    (ARCHITECT_ID, ("architecture", "design", "structure", "pattern")),
    (DEVELOPER_ID, ("code", "implement", "function", "create", "build")),
    (REVIEWER_ID, ("review", "check", "optimize", "improve", "quality")),
]

CODE_REQUEST_KEYWORDS = ("create", "generate", "implement")

AGENT_ERROR_REPLY = "I encountered an error processing your request. Please try again."

DEVELOPER_GUIDANCE = """As your Senior Developer, I can help you implement this functionality. Here's my approach:

1. **Analysis**: I've reviewed your request and project context
2. **Implementation Strategy**: Based on your tech stack, I recommend a clean, modular approach
3. **Best Practices**: I'll ensure the code follows industry standards and your project patterns

Could you provide more specific details about what you'd like me to implement? For example:
- What specific functionality do you need?
- Are there any particular requirements or constraints?
- Should I focus on any specific part of your application?"""

REVIEWER_GUIDANCE = """As your Code Reviewer, I've analyzed your request. Here's my assessment:

**Code Quality Analysis:**
- Overall structure looks good
- Following established patterns
- Proper error handling in place

**Recommendations:**
1. **Performance**: Consider optimizing for better performance
2. **Security**: Ensure proper input validation
3. **Testing**: Add comprehensive unit tests
4. **Documentation**: Include clear code comments

**Next Steps:**
- Implement the suggested improvements
- Run automated tests to verify functionality
- Consider peer review for critical components

Would you like me to focus on any specific aspect of the code review?"""

DEFAULT_FEATURES = ["Clean, maintainable code", "Proper error handling", "TypeScript support"]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _bullets(items: List[str]) -> str:
    return "\n".join(f"• {item}" for item in items)


def determine_chat_agents(message: str) -> List[str]:
    """Agent ids for a multi-agent chat message; the developer when nothing matches."""
    lowered = message.lower()
    agents = [
        agent_id for agent_id, keywords in AGENT_KEYWORDS
        if any(keyword in lowered for keyword in keywords)
    ]
    return agents or [DEVELOPER_ID]


class ChatService:
    """Handles chat requests in single or multi-agent mode."""

    def __init__(self, multi_agent_system=None, context_manager=None, llm_service=None):
        self._multi_agent_system = multi_agent_system
        self._context_manager = context_manager
        self._llm_service = llm_service

    @property
    def multi_agent_system(self):
        if self._multi_agent_system is None:
            from floraa.agents.system import get_multi_agent_system
            self._multi_agent_system = get_multi_agent_system()
        return self._multi_agent_system

    @property
    def context_manager(self):
        if self._context_manager is None:
            from floraa.context.manager import get_context_manager
            self._context_manager = get_context_manager()
        return self._context_manager

    @property
    def llm_service(self):
        if self._llm_service is None:
            from floraa.llm.llm_service import get_llm_service
            self._llm_service = get_llm_service()
        return self._llm_service

    async def handle(self, request: ChatRequest) -> ChatResponse:
        """
        Answer a chat request.

        Failures are returned as a response with ``error`` set (status 500).
        """
        started = time.monotonic()
        set_correlation_id(request.conversation_id)
        try:
            await self.multi_agent_system.initialize_project(request.project_id)

            if request.chat_mode == "multi-agent":
                return await self._handle_multi_agent(request, started)
            return await self._handle_single(request, started)
        except Exception as e:
            logger.error(f"AI chat error: {e}", exc_info=True)
            return ChatResponse(
                error=str(e) or "An error occurred processing your request",
                confidence=0,
                processing_time=_elapsed_ms(started),
                model="error",
            )

    # Multi-agent mode

    async def _handle_multi_agent(self, request: ChatRequest, started: float) -> ChatResponse:
        agent_ids = determine_chat_agents(request.message)
        responses = list(await asyncio.gather(
            *(self._agent_response(agent_id, request) for agent_id in agent_ids)
        ))

        await self._store_conversation(request, responses)

        return ChatResponse(
            responses=responses,
            confidence=sum(r.confidence for r in responses) / len(responses),
            processing_time=_elapsed_ms(started),
            model=request.selected_model,
        )

    async def _agent_response(self, agent_id: str, request: ChatRequest) -> AgentResponse:
        agent = self.multi_agent_system.get_agent(agent_id)
        agent_started = time.monotonic()
        name = agent.name if agent else agent_id

        try:
            relevant = await self.context_manager.get_relevant_context(
                request.project_id, request.message, agent.agent_type.value
            )
            message = AgentMessage(
                from_agent=USER,
                to=agent_id,
                type="request",
                content=request.message,
                project_id=request.project_id,
                conversation_id=request.conversation_id,
            )

            actions: List[ChatAction] = []
            if agent_id == ARCHITECT_ID:
                content = await agent.ask(message, relevant) or ARCHITECTURE_ADVICE
            elif agent_id == DEVELOPER_ID:
                content, actions = await self._developer_reply(agent, message, relevant)
            else:
                content = await agent.ask(message, relevant) or REVIEWER_GUIDANCE

            return AgentResponse(
                agent=name,
                content=content,
                confidence=AGENT_CONFIDENCE,
                processing_time=_elapsed_ms(agent_started),
                model=request.selected_model,
                actions=actions or None,
            )
        except Exception as e:
            logger.error(f"Error from {name}: {e}")
            return AgentResponse(
                agent=name,
                content=AGENT_ERROR_REPLY,
                confidence=AGENT_ERROR_CONFIDENCE,
                processing_time=_elapsed_ms(agent_started),
                model=request.selected_model,
            )

    async def _developer_reply(self, agent, message: AgentMessage, relevant) -> Tuple[str, List[ChatAction]]:
        lowered = message.content.lower()
        if not any(keyword in lowered for keyword in CODE_REQUEST_KEYWORDS):
            return await agent.ask(message, relevant) or DEVELOPER_GUIDANCE, []

        result = await agent.generate_code(message.content, message.conversation_id)
        language = result.language or "javascript"
        action = ChatAction(type="generate_code", data={
            "code": result.code,
            "explanation": result.explanation,
            "language": language,
        })
        features = _bullets(result.suggestions or DEFAULT_FEATURES)
        content = (
            "I've implemented the requested functionality for you:\n\n"
            f"```{language}\n{result.code}\n```\n\n"
            f"**Explanation:**\n{result.explanation}\n\n"
            f"**Key Features:**\n{features}\n\n"
            "The code is ready to use and follows best practices for your project structure."
        )
        return content, [action]

    # Single mode

    async def _handle_single(self, request: ChatRequest, started: float) -> ChatResponse:
        project_context = (
            await self.context_manager.get_project_context(request.project_id)
            or ProjectContext.default(request.project_id)
        )
        request_type = classify_request(request.message)
        actions: List[ChatAction] = []

        if request_type == "code_generation":
            result = await self.llm_service.generate_code_with_context(
                request.message, project_context, "developer", request.conversation_id
            )
            response = f"I've generated the code for you:\n\n```\n{result.code}\n```\n\n{result.explanation}"
            actions.append(ChatAction(type="generate_code", data={
                "code": result.code,
                "explanation": result.explanation,
            }))

        elif request_type == "code_review":
            code = extract_code_block(request.message) or CURRENT_CODE_PLACEHOLDER
            review = await self.llm_service.review_code_with_context(
                code, project_context, request.conversation_id
            )
            response = (
                f"Code Review Results:\n\nScore: {review.score}/100\n\n{review.summary}\n\n"
                f"Suggestions:\n{_bullets(review.suggestions)}"
            )

        elif request_type == "code_explanation":
            code = extract_code_block(request.message) or CURRENT_CODE_PLACEHOLDER
            explanation = await self.llm_service.explain_code_with_context(
                code, project_context, request.conversation_id
            )
            response = (
                f"Code Explanation:\n\n{explanation.explanation}\n\n"
                f"Key Components:\n{_bullets(explanation.key_components)}"
            )

        else:
            response = await self.multi_agent_system.process_user_query(
                request.project_id, request.message, request.conversation_id
            )

        processing_time = _elapsed_ms(started)
        await self._store_conversation(request, [AgentResponse(
            agent=SINGLE_MODE_AGENT,
            content=response,
            confidence=SINGLE_MODE_CONFIDENCE,
            processing_time=processing_time,
            model=request.selected_model,
            actions=actions or None,
        )])

        return ChatResponse(
            response=response,
            actions=actions or None,
            confidence=SINGLE_MODE_CONFIDENCE,
            processing_time=processing_time,
            model=request.selected_model,
        )

    async def _store_conversation(self, request: ChatRequest, responses: List[AgentResponse]) -> None:
        """Keep the exchange as conversation memory. Failures are logged only."""
        try:
            messages = [ChatMessage(role="user", content=request.message)]
            messages += [
                ChatMessage(role="assistant", content=r.content, context={
                    "agent": r.agent,
                    "confidence": r.confidence,
                    "model": r.model,
                    "actions": [a.model_dump() for a in r.actions or []],
                })
                for r in responses
            ]
            memory = ConversationMemory(
                project_id=request.project_id,
                agent_id="multi-agent-system",
                messages=messages,
                summary=f'User asked: "{request.message}". Agents responded with helpful information.',
                key_decisions=[
                    KeyDecision(
                        decision=r.content[:100] + "...",
                        reasoning=f"Response from {r.agent}",
                        impact="medium",
                    )
                    for r in responses
                ],
            )
            await self.context_manager.store_conversation_memory(memory)
        except Exception as e:
            logger.error(f"Failed to store conversation: {e}")


_chat_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service


def set_chat_service(service: Optional[ChatService]) -> None:
    global _chat_service
    _chat_service = service
