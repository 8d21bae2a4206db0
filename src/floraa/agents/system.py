"""
Multi-agent coordinator.

Owns the default architect / developer / reviewer agents, routes messages
between them, keeps per-conversation transcripts and runs submitted tasks in
dependency order.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from floraa.core.agent_registry import AgentRegistry, AgentStatus
from floraa.core.logging import get_logger
from floraa.core.message_bus import AgentMessageRouted, MessageBus, get_message_bus
from floraa.context.models import now_iso
from floraa.agents.architect import ArchitectAgent
from floraa.agents.base import BaseAgent
from floraa.agents.developer import DeveloperAgent
from floraa.agents.models import PRIORITY_ORDER, AgentMessage, AgentType, Task
from floraa.agents.reviewer import ReviewerAgent

logger = get_logger(__name__)

USER = "user"

ARCHITECT_ID = "architect-001"
DEVELOPER_ID = "developer-001"
REVIEWER_ID = "reviewer-001"

ROUTING_KEYWORDS = [
    (ARCHITECT_ID, ("architecture", "design")),
    (DEVELOPER_ID, ("code", "implement", "function")),
    (REVIEWER_ID, ("review", "check", "optimize")),
]

TASK_ASSIGNMENT = {
    "architecture": ARCHITECT_ID,
    "design": ARCHITECT_ID,
    "review": REVIEWER_ID,
    "security": REVIEWER_ID,
}

Deliver = Callable[[BaseAgent, AgentMessage], Awaitable[List[AgentMessage]]]


class Conversation:
    """Transcript of one conversation."""

    def __init__(self, conversation_id: str, project_id: str):
        self.id = conversation_id
        self.project_id = project_id
        self.created_at = now_iso()
        self.messages: List[Dict[str, str]] = []

    def add_message(self, role: str, content: str) -> None:
        self.messages.append({
            "role": role,
            "content": content,
            "timestamp": now_iso(),
        })

    def get_messages(self) -> List[Dict[str, str]]:
        return list(self.messages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "created_at": self.created_at,
            "messages": self.get_messages(),
        }


class MessageRouter:
    """
    Delivers agent messages.

    A message addressed to a known agent is delivered to it; a message with
    no recipient goes to every agent except the sender; anything addressed
    elsewhere (the user) is handed back to the caller.
    """

    def __init__(self, deliver: Optional[Deliver] = None):
        self._deliver = deliver or (lambda agent, message: agent.receive_message(message))

    async def route_message(self, message: AgentMessage, agents: Dict[str, BaseAgent]) -> List[AgentMessage]:
        if message.to is not None:
            target = agents.get(message.to)
            if target is None:
                return [message]
            return await self._deliver(target, message)

        outbound: List[AgentMessage] = []
        for agent_id, agent in agents.items():
            if agent_id != message.from_agent:
                outbound.extend(await self._deliver(agent, message))
        return outbound


class MultiAgentSystem:
    """Coordinates the agents of every project."""

    def __init__(self,
                 context_manager=None,
                 llm_service=None,
                 registry: Optional[AgentRegistry] = None,
                 message_bus: Optional[MessageBus] = None):
        self.registry = registry or AgentRegistry()
        self.message_bus = message_bus or get_message_bus()
        self.router = MessageRouter(self._deliver)
        self.agents: Dict[str, BaseAgent] = {}
        self.conversations: Dict[str, Conversation] = {}
        self.tasks: Dict[str, Task] = {}
        self._registered = False

        for agent in (
            ArchitectAgent(ARCHITECT_ID, context_manager, llm_service),
            DeveloperAgent(DEVELOPER_ID, context_manager, llm_service),
            ReviewerAgent(REVIEWER_ID, context_manager, llm_service),
        ):
            agent.system = self
            self.agents[agent.agent_id] = agent

    async def register_agents(self) -> None:
        if self._registered:
            return
        for agent in self.agents.values():
            await self.registry.register_agent(
                agent.agent_id, agent.name, agent.agent_type.value,
                capabilities=list(agent.capabilities)
            )
        self._registered = True

    async def initialize_project(self, project_id: str) -> None:
        """Load the project context into every agent."""
        await self.register_agents()
        for agent in self.agents.values():
            await agent.initialize(project_id)
            await self.registry.update_agent_status(agent.agent_id, AgentStatus.IDLE, project_id=project_id)
        logger.info(f"Multi-agent system initialized for project {project_id}")

    def determine_relevant_agents(self, query: str) -> List[str]:
        """Agent ids whose keywords appear in ``query``; the developer when none do."""
        lowered = query.lower()
        relevant = [
            agent_id for agent_id, keywords in ROUTING_KEYWORDS
            if any(keyword in lowered for keyword in keywords)
        ]
        return relevant or [DEVELOPER_ID]

    async def process_user_query(self, project_id: str, query: str, conversation_id: str) -> str:
        """
        Send a user query to the relevant agents and collect their replies.

        Returns:
            The replies, one paragraph per agent
        """
        await self.register_agents()
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            conversation = Conversation(conversation_id, project_id)
            self.conversations[conversation_id] = conversation

        responses: List[str] = []
        for agent_id in self.determine_relevant_agents(query):
            agent = self.agents.get(agent_id)
            if agent is None:
                continue

            message = AgentMessage(
                from_agent=USER,
                to=agent_id,
                type="request",
                content=query,
                project_id=project_id,
                conversation_id=conversation_id,
            )
            replies = [reply.content for reply in await self.route_message(message) if reply.to == USER]
            if replies:
                responses.extend(f"{agent.name}: {content}" for content in replies)
            else:
                responses.append(f"{agent.name}: Processing your request...")

        answer = "\n\n".join(responses)
        conversation.add_message("user", query)
        conversation.add_message("assistant", answer)
        return answer

    async def route_message(self, message: AgentMessage) -> List[AgentMessage]:
        """Route a message; returns replies addressed outside the agent system."""
        await self.message_bus.publish(AgentMessageRouted(
            source="multi_agent_system",
            message_id=message.id,
            from_agent=message.from_agent,
            to_agent=message.to,
            message_type=message.type,
            project_id=message.project_id,
        ))
        return await self.router.route_message(message, self.agents)

    async def _deliver(self, agent: BaseAgent, message: AgentMessage) -> List[AgentMessage]:
        await self.registry.update_agent_status(
            agent.agent_id, AgentStatus.ACTIVE,
            current_task=message.content[:80], project_id=message.project_id
        )
        try:
            outbound = await agent.receive_message(message)
        except Exception as e:
            await self.registry.update_agent_status(agent.agent_id, AgentStatus.ERROR, error_message=str(e))
            raise
        await self.registry.increment_metric(agent.agent_id, "messages_processed")
        await self.registry.update_agent_status(agent.agent_id, AgentStatus.IDLE)
        return outbound

    def get_agents(self) -> List[BaseAgent]:
        return list(self.agents.values())

    def get_agent(self, agent_id: str) -> Optional[BaseAgent]:
        return self.agents.get(agent_id)

    def get_agent_by_type(self, agent_type: Union[AgentType, str]) -> Optional[BaseAgent]:
        agent_type = AgentType(agent_type)
        for agent in self.agents.values():
            if agent.agent_type == agent_type:
                return agent
        return None

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self.conversations.get(conversation_id)

    # Tasks

    def submit_task(self, task: Union[Task, Dict[str, Any]]) -> Task:
        """Queue a task, assigning it by type when it has no assignee."""
        if not isinstance(task, Task):
            task = Task.model_validate(task)
        if not task.assigned_to:
            task.assigned_to = TASK_ASSIGNMENT.get(task.type, DEVELOPER_ID)
        self.tasks[task.id] = task
        logger.info(f"Task {task.id} ({task.type}) assigned to {task.assigned_to}")
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.tasks.get(task_id)

    def _ready_tasks(self) -> List[Task]:
        ready = []
        for task in self.tasks.values():
            if task.status != "pending":
                continue
            dependencies = [self.tasks.get(dep) for dep in task.dependencies]
            if all(dep is not None and dep.status == "completed" for dep in dependencies):
                ready.append(task)
        return sorted(ready, key=lambda t: (PRIORITY_ORDER[t.priority], t.created_at))

    def _block_failed_dependents(self) -> List[Task]:
        blocked = []
        changed = True
        while changed:
            changed = False
            for task in self.tasks.values():
                if task.status != "pending":
                    continue
                for dep_id in task.dependencies:
                    dep = self.tasks.get(dep_id)
                    if dep is not None and dep.status in ("failed", "blocked"):
                        task.status = "blocked"
                        task.updated_at = now_iso()
                        task.result = {"error": f"Dependency {dep_id} {dep.status}"}
                        blocked.append(task)
                        changed = True
                        break
        return blocked

    async def run_pending_tasks(self) -> List[Task]:
        """
        Execute pending tasks whose dependencies have completed.

        Tasks depending on a failed or blocked task become blocked; tasks
        depending on unknown ids stay pending.

        Returns:
            Tasks that changed state during this run
        """
        await self.register_agents()
        processed: List[Task] = []

        while True:
            processed.extend(self._block_failed_dependents())
            ready = self._ready_tasks()
            if not ready:
                break

            for task in ready:
                agent = self.agents.get(task.assigned_to)
                if agent is None:
                    task.status = "failed"
                    task.result = {"error": f"Unknown agent: {task.assigned_to}"}
                    task.updated_at = now_iso()
                else:
                    await self.registry.update_agent_status(agent.agent_id, AgentStatus.ACTIVE, current_task=task.title)
                    await agent.execute_task(task)
                    metric = "tasks_completed" if task.status == "completed" else "tasks_failed"
                    await self.registry.increment_metric(agent.agent_id, metric)
                    await self.registry.update_agent_status(agent.agent_id, AgentStatus.IDLE)
                processed.append(task)

        return processed


_multi_agent_system: Optional[MultiAgentSystem] = None


def get_multi_agent_system() -> MultiAgentSystem:
    """Get the global multi-agent system."""
    global _multi_agent_system
    if _multi_agent_system is None:
        _multi_agent_system = MultiAgentSystem()
    return _multi_agent_system


def set_multi_agent_system(system: Optional[MultiAgentSystem]) -> None:
    global _multi_agent_system
    _multi_agent_system = system
