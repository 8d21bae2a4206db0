"""
Developer agent: code generation and implementation tasks.
"""

from typing import Any, Dict, Optional

from floraa.core.exceptions import LLMError
from floraa.agents.base import BaseAgent
from floraa.agents.models import AgentMessage, AgentType, Task
from floraa.llm.models import CodeGenerationResult

REACT_COMPONENT_TEMPLATE = """import React from 'react';

interface Props {
  title: string;
  children?: React.ReactNode;
}

export const MyComponent: React.FC<Props> = ({ title, children }) => {
  return (
    <div className="my-component">
      <h2>{title}</h2>
      {children && <div className="content">{children}</div>}
    </div>
  );
};"""

FUNCTION_TEMPLATE = """export const myFunction = (input: string): string => {
  try {
    const result = input.trim().toLowerCase();
    return result;
  } catch (error) {
    console.error('Error in myFunction:', error);
    throw new Error('Failed to process input');
  }
};"""

GENERIC_TEMPLATE = """// Generated code based on your request
// {request}

const implementation = () => {{
  console.log('Implementation needed');
}};

export default implementation;"""


def template_code(request: str) -> Dict[str, Any]:
    """
    Canned code for a request when no model is configured.

    Returns:
        Dict with code, explanation, language and features
    """
    lowered = request.lower()

    if "react component" in lowered:
        return {
            "code": REACT_COMPONENT_TEMPLATE,
            "explanation": "This is a reusable React component with TypeScript support, "
                           "proper props interface, and clean structure.",
            "language": "typescript",
            "features": [
                "TypeScript interface for props",
                "Functional component with React.FC",
                "Optional children prop",
                "Clean CSS class naming",
            ],
        }

    if "function" in lowered:
        return {
            "code": FUNCTION_TEMPLATE,
            "explanation": "This is a utility function with proper error handling and TypeScript types.",
            "language": "typescript",
            "features": [
                "TypeScript type annotations",
                "Error handling with try-catch",
                "Clear function naming",
                "Proper error logging",
            ],
        }

    first_line = request.strip().splitlines()[0] if request.strip() else ""
    return {
        "code": GENERIC_TEMPLATE.format(request=first_line),
        "explanation": "This is a basic code template. Please provide more specific "
                       "requirements for a more detailed implementation.",
        "language": "javascript",
        "features": [],
    }


class DeveloperAgent(BaseAgent):
    """Writes and implements code."""

    agent_type = AgentType.DEVELOPER
    name = "Senior Developer"
    capabilities = [
        "code_generation",
        "implementation",
        "debugging",
        "refactoring",
        "api_development",
    ]
    task_types = ("code",)

    def get_system_prompt(self) -> str:
        return f"""You are a Senior Developer AI agent. Your role is to:

1. Write clean, efficient, and maintainable code
2. Implement features based on specifications
3. Debug and fix issues in existing code
4. Refactor code for better performance and readability
5. Develop APIs and integrations

You follow best practices, write comprehensive tests, and collaborate with other agents for optimal results.

Current project context: {self._context_json()}"""

    async def generate_code(self, request: str, conversation_id: str) -> CodeGenerationResult:
        """Model-generated code, or the canned template when no model answers."""
        if self._model_available():
            try:
                return await self.llm_service.generate_code_with_context(
                    request, self._project_or_default(), self.agent_type.value, conversation_id
                )
            except LLMError as e:
                self.logger.warning(f"Code generation fell back to template: {e}")

        canned = template_code(request)
        return CodeGenerationResult(
            code=canned["code"],
            explanation=canned["explanation"],
            suggestions=canned["features"],
            language=canned["language"],
        )

    async def process_message(self, message: AgentMessage) -> Optional[AgentMessage]:
        content = message.content.lower()
        if message.type != "request" or not ("code" in content or "implement" in content):
            return None

        result = await self.generate_code(message.content, message.conversation_id)
        reply = f"```\n{result.code}\n```\n\n{result.explanation}".rstrip()
        return message.reply(
            self.agent_id,
            reply,
            data={"code": result.code, "explanation": result.explanation},
        )

    async def _run_task(self, task: Task) -> Dict[str, Any]:
        request = f"{task.title}\n\n{task.description}".strip()
        result = await self.generate_code(request, task.id)

        file_path = task.context.get("file_path", "src/generated.ts")
        return {
            "files": [{"path": file_path, "content": result.code}],
            "tests": [result.tests] if result.tests else [],
            "documentation": result.explanation,
        }
