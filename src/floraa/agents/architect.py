"""
Architect agent: system design advice and architecture tasks.
"""

from typing import Any, Dict, Optional

from floraa.agents.base import BaseAgent
from floraa.agents.models import AgentMessage, AgentType, Task

ARCHITECTURE_ADVICE = """As your System Architect, I recommend considering the following architectural approach for your request:

Based on your current project structure and requirements, I suggest implementing a modular architecture that follows these principles:

1. **Separation of Concerns**: Keep business logic separate from presentation
2. **Scalability**: Design for future growth and increased load
3. **Maintainability**: Use clear interfaces and well-defined boundaries
4. **Performance**: Optimize for your specific use case

Would you like me to elaborate on any of these architectural decisions?"""


class ArchitectAgent(BaseAgent):
    """Designs system architecture."""

    agent_type = AgentType.ARCHITECT
    name = "System Architect"
    capabilities = [
        "system_design",
        "architecture_patterns",
        "technology_selection",
        "scalability_planning",
        "integration_design",
    ]
    task_types = ("architecture", "design")

    def get_system_prompt(self) -> str:
        return f"""You are a Senior System Architect AI agent. Your role is to:

1. Design robust, scalable system architectures
2. Select appropriate technology stacks
3. Plan system integrations and data flows
4. Ensure architectural best practices
5. Consider performance, security, and maintainability

You work collaboratively with other AI agents and always consider the project context, business requirements, and technical constraints.

Current project context: {self._context_json()}"""

    async def process_message(self, message: AgentMessage) -> Optional[AgentMessage]:
        content = message.content.lower()

        if message.type == "request" and ("architecture" in content or "design" in content):
            relevant = await self.get_relevant_context(message.content)
            advice = await self.ask(message, relevant) or ARCHITECTURE_ADVICE
            return message.reply(self.agent_id, advice)

        if message.type == "collaboration":
            return message.reply(
                self.agent_id,
                f"{self.name} acknowledges: {message.content[:100]}",
                data={"acknowledged": True},
            )

        return None

    async def _run_task(self, task: Task) -> Dict[str, Any]:
        project = self._project_or_default()
        request = AgentMessage(
            from_agent="task-runner",
            to=self.agent_id,
            type="request",
            content=f"Design the architecture for: {task.title}\n\n{task.description}",
            project_id=project.id,
            conversation_id=task.id,
        )
        relevant = await self.get_relevant_context(request.content)
        advice = await self.ask(request, relevant) or ARCHITECTURE_ADVICE

        return {
            "architecture": project.architecture.type,
            "components": list(task.context.get("components", [])),
            "integrations": list(project.tech_stack.infrastructure),
            "recommendations": [advice],
        }
