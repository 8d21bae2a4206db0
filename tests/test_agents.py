"""Tests for the role agents."""

import json

import pytest

from floraa.agents.architect import ARCHITECTURE_ADVICE, ArchitectAgent
from floraa.agents.developer import FUNCTION_TEMPLATE, REACT_COMPONENT_TEMPLATE, DeveloperAgent, template_code
from floraa.agents.models import AgentMessage, Task
from floraa.agents.reviewer import REVIEW_TEMPLATE, ReviewerAgent, format_review
from floraa.context.models import ProjectContext
from floraa.llm.models import CodeReviewResult, ReviewIssue

from conftest import completion


def request(content: str, to: str = "agent", message_type: str = "request") -> AgentMessage:
    return AgentMessage(
        from_agent="user",
        to=to,
        type=message_type,
        content=content,
        project_id="proj-1",
        conversation_id="conv-1",
    )


class TestAgentMessage:

    def test_accepts_from_alias(self):
        message = AgentMessage.model_validate({
            "from": "user", "type": "request", "content": "hi",
            "project_id": "p", "conversation_id": "c",
        })
        assert message.from_agent == "user"
        assert message.to is None
        assert message.priority == "medium"

    def test_reply_addresses_sender(self):
        original = request("hello", to="architect-001")
        original.priority = "high"

        reply = original.reply("architect-001", "hi back", data={"x": 1})

        assert reply.from_agent == "architect-001"
        assert reply.to == "user"
        assert reply.type == "response"
        assert reply.priority == "high"
        assert reply.conversation_id == "conv-1"
        assert reply.data == {"x": 1}


class TestTemplates:

    def test_react_component(self):
        result = template_code("Build a React component for the header")
        assert result["code"] == REACT_COMPONENT_TEMPLATE
        assert result["language"] == "typescript"
        assert len(result["features"]) == 4

    def test_function(self):
        result = template_code("write a function to slugify titles")
        assert result["code"] == FUNCTION_TEMPLATE

    def test_generic_mentions_request(self):
        result = template_code("Add pagination\nwith cursors")
        assert "// Add pagination" in result["code"]
        assert result["language"] == "javascript"
        assert result["features"] == []

    def test_format_review(self):
        review = CodeReviewResult(
            score=60,
            summary="Needs work",
            issues=[ReviewIssue(type="error", message="Null dereference", severity="high")],
            suggestions=["Check for None"],
        )

        text = format_review(review)

        assert text.startswith("Code Review Results:")
        assert "Score: 60/100" in text
        assert "- [high] Null dereference" in text
        assert "- Check for None" in text


class TestArchitectAgent:

    @pytest.fixture
    def agent(self, context_manager, llm_service):
        return ArchitectAgent("architect-001", context_manager, llm_service)

    @pytest.mark.asyncio
    async def test_template_advice_without_model(self, agent):
        reply = await agent.process_message(request("What architecture should I use?"))

        assert reply.content == ARCHITECTURE_ADVICE
        assert reply.to == "user"
        assert reply.from_agent == "architect-001"

    @pytest.mark.asyncio
    async def test_model_advice(self, context_manager, model_llm_service, mock_provider):
        agent = ArchitectAgent("architect-001", context_manager, model_llm_service)

        reply = await agent.process_message(request("Design a payment flow"))

        assert reply.content == "Model answer"
        system_prompt = mock_provider.agenerate.call_args.args[0][0].content
        assert "Senior System Architect" in system_prompt

    @pytest.mark.asyncio
    async def test_model_failure_falls_back(self, context_manager, model_llm_service, mock_provider):
        mock_provider.agenerate.side_effect = RuntimeError("down")
        agent = ArchitectAgent("architect-001", context_manager, model_llm_service)

        reply = await agent.process_message(request("Design a payment flow"))

        assert reply.content == ARCHITECTURE_ADVICE

    @pytest.mark.asyncio
    async def test_ignores_unrelated_request(self, agent):
        assert await agent.process_message(request("Fix the typo")) is None

    @pytest.mark.asyncio
    async def test_acknowledges_collaboration(self, agent):
        reply = await agent.process_message(request("Please look at the API", message_type="collaboration"))

        assert reply.content == "System Architect acknowledges: Please look at the API"
        assert reply.data == {"acknowledged": True}

    @pytest.mark.asyncio
    async def test_initialize_loads_context(self, agent, context_manager):
        await context_manager.store_project_context(ProjectContext(id="proj-1", name="Shop"))

        await agent.initialize("proj-1")

        assert agent.is_active
        assert agent.context.name == "Shop"
        assert json.loads(agent._context_json())["name"] == "Shop"
        assert "Shop" in agent.get_system_prompt()

    @pytest.mark.asyncio
    async def test_architecture_task(self, agent):
        task = Task(title="Checkout", type="architecture", context={"components": ["cart", "payments"]})

        result = await agent.execute_task(task)

        assert result.status == "completed"
        assert result.result["architecture"] == "monolith"
        assert result.result["components"] == ["cart", "payments"]
        assert result.result["recommendations"] == [ARCHITECTURE_ADVICE]
        assert result.actual_time is not None
        assert agent.current_tasks == {}

    @pytest.mark.asyncio
    async def test_unsupported_task_fails(self, agent):
        result = await agent.execute_task(Task(title="Ship it", type="deploy"))

        assert result.status == "failed"
        assert result.result == {"error": "Unsupported task type: deploy"}

    def test_to_dict(self, agent):
        data = agent.to_dict()
        assert data["id"] == "architect-001"
        assert data["type"] == "architect"
        assert "system_design" in data["capabilities"]
        assert data["is_active"] is False


class TestDeveloperAgent:

    @pytest.fixture
    def agent(self, context_manager, llm_service):
        return DeveloperAgent("developer-001", context_manager, llm_service)

    @pytest.mark.asyncio
    async def test_template_code_reply(self, agent):
        reply = await agent.process_message(request("Write code for a React component"))

        assert reply.content.startswith("```\nimport React")
        assert reply.data["code"] == REACT_COMPONENT_TEMPLATE

    @pytest.mark.asyncio
    async def test_model_code_reply(self, context_manager, model_llm_service, mock_provider):
        mock_provider.agenerate.return_value = completion(json.dumps({
            "code": "print('hi')", "explanation": "Greets", "suggestions": [],
        }))
        agent = DeveloperAgent("developer-001", context_manager, model_llm_service)

        reply = await agent.process_message(request("Implement a greeting"))

        assert reply.content == "```\nprint('hi')\n```\n\nGreets"
        assert reply.data == {"code": "print('hi')", "explanation": "Greets"}

    @pytest.mark.asyncio
    async def test_ignores_non_code_request(self, agent):
        assert await agent.process_message(request("Create a function")) is None
        assert await agent.process_message(request("Write code", message_type="notification")) is None

    @pytest.mark.asyncio
    async def test_code_task(self, agent):
        task = Task(title="Slug helper", description="write a function", type="code",
                    context={"file_path": "src/slug.ts"})

        result = await agent.execute_task(task)

        assert result.status == "completed"
        assert result.result["files"] == [{"path": "src/slug.ts", "content": FUNCTION_TEMPLATE}]
        assert result.result["tests"] == []


class TestReviewerAgent:

    @pytest.fixture
    def agent(self, context_manager, llm_service):
        return ReviewerAgent("reviewer-001", context_manager, llm_service)

    @pytest.mark.asyncio
    async def test_template_review(self, agent):
        reply = await agent.process_message(request("Review this:\n```\nx = 1\n```"))

        assert reply.content == format_review(REVIEW_TEMPLATE)
        assert reply.data["score"] == 70

    @pytest.mark.asyncio
    async def test_model_review_uses_code_block(self, context_manager, model_llm_service, mock_provider):
        mock_provider.agenerate.return_value = completion('{"score": 92, "summary": "Clean"}')
        agent = ReviewerAgent("reviewer-001", context_manager, model_llm_service)

        reply = await agent.process_message(request("Please check:\n```python\nx = 1\n```"))

        assert reply.data["score"] == 92
        user_prompt = mock_provider.agenerate.call_args.args[0][1].content
        assert "x = 1" in user_prompt
        assert "Please check" not in user_prompt

    @pytest.mark.asyncio
    async def test_security_task(self, agent):
        result = await agent.execute_task(Task(title="Audit", type="security", context={"code": "eval(x)"}))

        assert result.status == "completed"
        assert result.result["score"] == 70

    @pytest.mark.asyncio
    async def test_template_is_not_shared(self, agent):
        review = await agent.review("x", "conv-1")
        review.suggestions.append("mutated")

        assert "mutated" not in REVIEW_TEMPLATE.suggestions
