"""
Prompt templates for the LLM service, plus helpers for classifying requests
and pulling code / JSON out of free text.
"""

import json
import re
from typing import Any, Dict, Optional

CONTEXTUAL_SYSTEM_TEMPLATE = """{system_prompt}

Project Context:
{project_context}

Relevant Memories:
{relevant_memories}

You are an expert AI assistant specialized in software development. Use the provided context to give accurate, helpful, and contextually relevant responses."""

CODE_GENERATION_SYSTEM_TEMPLATE = """You are a {agent_type} AI agent working on the project "{project_name}".

Project Details:
- Architecture: {architecture_type}
- Framework: {framework}
- Tech Stack: {tech_stack}
- Current Phase: {phase}

Your role is to generate high-quality, production-ready code that:
1. Follows the project's architecture and patterns
2. Uses the established tech stack appropriately
3. Adheres to best practices and coding standards
4. Is well-documented and maintainable
5. Includes proper error handling
6. Is optimized for performance and security

Always consider the project context and existing codebase when generating code."""

CODE_GENERATION_USER_TEMPLATE = """Generate code for: {request}

Project Context: {project_context}
Relevant Memories: {relevant_memories}

Please provide:
1. The complete code implementation
2. A clear explanation of what the code does
3. Suggestions for improvements or alternatives
4. Unit tests (if applicable)

Format your response as JSON with the following structure:
{{
  "code": "...",
  "explanation": "...",
  "suggestions": ["...", "..."],
  "tests": "..."
}}"""

CODE_REVIEW_SYSTEM_TEMPLATE = """You are a senior code reviewer working on the project "{project_name}".

Project Standards:
- Architecture: {architecture_type}
- Framework: {framework}
- Tech Stack: {tech_stack}

Review the code for:
1. Code quality and maintainability
2. Security vulnerabilities
3. Performance issues
4. Adherence to project standards
5. Best practices compliance
6. Potential bugs or edge cases
7. Documentation and comments
8. Test coverage considerations

Provide constructive, actionable feedback that helps improve the code quality."""

CODE_REVIEW_USER_TEMPLATE = """Please review the following code:

```
{code}
```

Project Context: {project_context}

Provide a comprehensive code review with:
1. Overall quality score (0-100)
2. Specific issues found (errors, warnings, suggestions)
3. Improvement suggestions
4. Summary of the review

Format as JSON:
{{
  "score": 85,
  "issues": [
    {{
      "type": "warning",
      "message": "Consider adding error handling",
      "line": 10,
      "severity": "medium"
    }}
  ],
  "suggestions": ["Add unit tests", "Improve variable naming"],
  "summary": "Overall good code quality with minor improvements needed"
}}"""

CODE_EXPLANATION_SYSTEM_TEMPLATE = """You are an expert code educator working on the project "{project_name}".

Project Context:
- Architecture: {architecture_type}
- Framework: {framework}
- Tech Stack: {tech_stack}

Explain code in a way that is:
1. Clear and easy to understand
2. Contextually relevant to the project
3. Educational and informative
4. Comprehensive but not overwhelming
5. Suitable for developers at different skill levels

Focus on helping developers understand not just what the code does, but why it's structured that way and how it fits into the larger project."""

CODE_EXPLANATION_USER_TEMPLATE = """Please explain the following code in detail:

```
{code}
```

Project Context: {project_context}

Provide:
1. A clear, comprehensive explanation
2. Key components and their purposes
3. Flow description (how the code executes)
4. Related concepts and patterns used

Format as JSON:
{{
  "explanation": "This code implements...",
  "key_components": ["Component 1", "Component 2"],
  "flow_description": "The execution flow is...",
  "related_concepts": ["Pattern 1", "Concept 2"]
}}"""

CONNECTION_TEST_PROMPT = 'Hello, please respond with "Connection successful"'


def project_fields(project_context) -> Dict[str, str]:
    """Template fields describing a project."""
    return {
        "project_name": project_context.name,
        "architecture_type": project_context.architecture.type,
        "framework": project_context.architecture.framework,
        "tech_stack": project_context.tech_stack.model_dump_json(),
        "phase": project_context.development.phase,
    }


# Request classification, checked in order
_REQUEST_RULES = [
    ("code_generation", ("create", "generate", "implement", "build")),
    ("code_review", ("review", "check", "analyze")),
    ("code_explanation", ("explain", "what does", "how does")),
]


def classify_request(message: str) -> str:
    """Classify a chat message as code_generation, code_review, code_explanation or general."""
    lower_message = message.lower()
    for request_type, keywords in _REQUEST_RULES:
        if any(keyword in lower_message for keyword in keywords):
            return request_type
    return "general"


_CODE_BLOCK_RE = re.compile(r"```[\w+-]*\n?(.*?)```", re.DOTALL)


def extract_code_block(text: str) -> Optional[str]:
    """Body of the first fenced code block, or None."""
    match = _CODE_BLOCK_RE.search(text)
    if not match:
        return None
    return match.group(1)


def parse_json_response(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse a JSON object out of a model reply.

    Accepts bare JSON, JSON inside a code fence, or JSON surrounded by prose.
    Returns None when no object can be parsed.
    """
    candidates = [text.strip()]

    fenced = extract_code_block(text)
    if fenced:
        candidates.append(fenced.strip())

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None
