"""
Base class for the role agents of the multi-agent system.
"""

import json
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from floraa.core.exceptions import LLMError, UnsupportedTaskError
from floraa.core.logging import get_logger
from floraa.context.models import ProjectContext, RelevantContext, now_iso
from floraa.agents.models import AgentMessage, AgentType, Task
from floraa.llm.models import ConversationContext
from floraa.llm_providers.base import Message


class BaseAgent(ABC):
    """
    An agent with a role, a message queue and access to project memory.

    Subclasses set ``agent_type``, ``name``, ``capabilities`` and the task
    types they can execute, and implement ``process_message``,
    ``get_system_prompt`` and ``_run_task``.
    """

    agent_type: AgentType
    name: str = "Agent"
    capabilities: List[str] = []
    task_types: tuple = ()

    def __init__(self, agent_id: str, context_manager=None, llm_service=None):
        self.agent_id = agent_id
        self.logger = get_logger(self.__class__.__name__)
        self.is_active = False
        self.project_id: Optional[str] = None
        self.context: Optional[ProjectContext] = None
        self.current_tasks: Dict[str, Task] = {}
        self.message_queue: Deque[AgentMessage] = deque()
        self.system = None

        self._context_manager = context_manager
        self._llm_service = llm_service

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

    @abstractmethod
    async def process_message(self, message: AgentMessage) -> Optional[AgentMessage]:
        """Handle one message; return a reply or None."""
        pass

    @abstractmethod
    def get_system_prompt(self) -> str:
        pass

    @abstractmethod
    async def _run_task(self, task: Task) -> Dict[str, Any]:
        """Produce the result of a supported task."""
        pass

    async def initialize(self, project_id: str) -> None:
        self.project_id = project_id
        self.context = await self.context_manager.get_project_context(project_id)
        self.is_active = True
        self.logger.info(f"{self.name} agent initialized for project {project_id}")

    async def receive_message(self, message: AgentMessage) -> List[AgentMessage]:
        """
        Queue a message and drain the queue.

        Returns:
            Replies that ended up addressed to someone outside the agent system
        """
        self.message_queue.append(message)
        outbound: List[AgentMessage] = []

        while self.message_queue:
            queued = self.message_queue.popleft()
            response = await self.process_message(queued)
            if response:
                outbound.extend(await self.send_message(response))

        return outbound

    async def send_message(self, message: AgentMessage) -> List[AgentMessage]:
        if self.system is None:
            return [message]
        return await self.system.route_message(message)

    async def execute_task(self, task: Task) -> Task:
        """Run a task. Failures (including unsupported types) mark it failed."""
        task.status = "in_progress"
        task.updated_at = now_iso()
        self.current_tasks[task.id] = task
        started = time.monotonic()

        try:
            if task.type not in self.task_types:
                raise UnsupportedTaskError(task.type)
            task.result = await self._run_task(task)
            task.status = "completed"
        except Exception as e:
            self.logger.error(f"Task {task.id} failed: {e}")
            task.status = "failed"
            task.result = {"error": str(e)}
        finally:
            task.actual_time = time.monotonic() - started
            task.updated_at = now_iso()
            self.current_tasks.pop(task.id, None)

        return task

    async def get_relevant_context(self, query: str) -> Optional[RelevantContext]:
        if not self.project_id:
            return None
        return await self.context_manager.get_relevant_context(
            self.project_id, query, self.agent_type.value
        )

    async def update_context(self, updates: Dict[str, Any]) -> None:
        await self.context_manager.update_project_context(self.project_id, updates)
        self.context = await self.context_manager.get_project_context(self.project_id)

    def _context_json(self) -> str:
        if self.context is None:
            return "null"
        return json.dumps(self.context.model_dump(mode="json"), indent=2)

    def _project_or_default(self) -> ProjectContext:
        return self.context or ProjectContext.default(self.project_id or "default")

    def _model_available(self) -> bool:
        try:
            return self.llm_service.has_models()
        except Exception as e:
            self.logger.warning(f"LLM service unavailable: {e}")
            return False

    async def ask(self, message: AgentMessage, relevant: Optional[RelevantContext]) -> Optional[str]:
        """Model answer in this agent's role, or None when no model can answer."""
        if not self._model_available():
            return None
        try:
            return await self.llm_service.generate_response(ConversationContext(
                project_id=message.project_id,
                agent_type=self.agent_type.value,
                conversation_id=message.conversation_id,
                messages=[Message(role="user", content=message.content)],
                system_prompt=self.get_system_prompt(),
                project_context=self.context,
                relevant_memories=relevant.relevant_memories if relevant else None,
            ))
        except LLMError as e:
            self.logger.warning(f"{self.name} falling back to template reply: {e}")
            return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.agent_id,
            "type": self.agent_type.value,
            "name": self.name,
            "capabilities": list(self.capabilities),
            "is_active": self.is_active,
            "project_id": self.project_id,
            "current_tasks": list(self.current_tasks),
        }
