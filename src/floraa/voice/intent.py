"""
Keyword intent classification and entity extraction for voice commands.
"""

import re
from typing import Dict, Iterable, List, Optional, Tuple

from floraa.voice.models import ContextAnalysis, VoiceCommand, VoiceEntity, VoiceIntent

# Checked in order; the first rule with a matching keyword wins.
INTENT_RULES: List[Tuple[VoiceIntent, Tuple[str, ...]]] = [
    (VoiceIntent.FILE_OPERATION, ("create file", "new file", "file called")),
    (VoiceIntent.CODE_GENERATION, ("create", "generate", "write")),
    (VoiceIntent.CODE_EXPLANATION, ("explain", "what does", "how does")),
    (VoiceIntent.CODE_MODIFICATION, ("modify", "change", "update")),
    (VoiceIntent.NAVIGATION, ("navigate", "go to", "open")),
    (VoiceIntent.DEBUGGING, ("debug", "fix", "error")),
    (VoiceIntent.TESTING, ("test",)),
    (VoiceIntent.DEPLOYMENT, ("deploy", "build", "release")),
]

LANGUAGES = ("javascript", "typescript", "python", "java", "react", "vue", "angular")
FILE_TYPES = ("component", "function", "class", "interface", "api", "route", "model")
TOPICS = ("function", "component", "class", "interface", "api", "database", "authentication")

_FUNCTION_NAME_RE = re.compile(r"(?:function|method|procedure)\s+(\w+)", re.IGNORECASE)
_FILE_REFERENCE_RE = re.compile(r"(\w+\.(?:js|ts|jsx|tsx|py|java|cpp|css|html))\b", re.IGNORECASE)
_NAVIGATION_RES = (
    re.compile(r"(?:open|go to|navigate to)\s+(.+)", re.IGNORECASE),
    re.compile(r"show me\s+(.+)", re.IGNORECASE),
)
_FILE_NAME_RES = (
    re.compile(r"(?:create file|new file)\s+(.+)", re.IGNORECASE),
    re.compile(r"file called\s+(.+)", re.IGNORECASE),
)

VOICE_COMMAND_PATTERNS: Dict[str, List[str]] = {
    "code_generation": [
        "create a {type} called {name}",
        "generate a {language} {type}",
        "write a function that {description}",
        "implement {feature}",
        "build a {component} with {properties}",
    ],
    "code_modification": [
        "add {feature} to {target}",
        "modify {target} to {description}",
        "update the {property} in {target}",
        "refactor {target}",
        "optimize {target} for {criteria}",
    ],
    "navigation": [
        "open {file}",
        "go to {location}",
        "navigate to {path}",
        "show me {target}",
        "switch to {tab}",
    ],
    "debugging": [
        "debug {target}",
        "fix the error in {location}",
        "check {target} for issues",
        "analyze {problem}",
        "troubleshoot {issue}",
    ],
    "explanation": [
        "explain {target}",
        "what does {target} do",
        "how does {target} work",
        "describe {target}",
        "tell me about {target}",
    ],
}


def analyze_intent(transcript: str) -> VoiceIntent:
    """Classify a transcript; code generation when no keyword matches."""
    lowered = transcript.lower()
    for intent, keywords in INTENT_RULES:
        if any(keyword in lowered for keyword in keywords):
            return intent
    return VoiceIntent.CODE_GENERATION


def extract_entities(transcript: str) -> List[VoiceEntity]:
    lowered = transcript.lower()
    entities = [
        VoiceEntity(type="programming_language", value=language, confidence=0.9)
        for language in LANGUAGES if language in lowered
    ]
    entities += [
        VoiceEntity(type="file_type", value=file_type, confidence=0.8)
        for file_type in FILE_TYPES if file_type in lowered
    ]
    entities += [
        VoiceEntity(type="function_name", value=match.group(1), confidence=0.7)
        for match in _FUNCTION_NAME_RE.finditer(transcript)
    ]
    return entities


def enhance_command(command: VoiceCommand) -> VoiceCommand:
    """Copy of ``command`` with intent and entities filled in where missing."""
    return command.model_copy(update={
        "intent": command.intent or analyze_intent(command.transcript),
        "entities": command.entities if command.entities is not None else extract_entities(command.transcript),
    })


def find_entity(entities: Optional[Iterable[VoiceEntity]], entity_type: str) -> Optional[VoiceEntity]:
    for entity in entities or []:
        if entity.type == entity_type:
            return entity
    return None


def extract_topics(transcript: str) -> List[str]:
    lowered = transcript.lower()
    return [topic for topic in TOPICS if topic in lowered]


def extract_file_references(transcript: str) -> List[str]:
    return [match.group(1) for match in _FILE_REFERENCE_RE.finditer(transcript)]


def _unique(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))


def analyze_conversation_context(context: List[VoiceCommand]) -> ContextAnalysis:
    """
    Summarise recent commands.

    The current task is the latest generation or modification command.
    """
    topics: List[str] = []
    files: List[str] = []
    current_task = None

    for command in context:
        topics.extend(extract_topics(command.transcript))
        files.extend(extract_file_references(command.transcript))
        if command.intent in (VoiceIntent.CODE_GENERATION, VoiceIntent.CODE_MODIFICATION):
            current_task = command.transcript

    return ContextAnalysis(
        recent_topics=_unique(topics),
        current_task=current_task,
        working_files=_unique(files),
    )


def refine_intent(intent: VoiceIntent, transcript: str, analysis: Optional[ContextAnalysis]) -> VoiceIntent:
    """Treat "add" / "modify" during an ongoing task as a modification."""
    if (analysis is not None and analysis.current_task
            and intent == VoiceIntent.CODE_GENERATION
            and ("add" in transcript or "modify" in transcript)):
        return VoiceIntent.CODE_MODIFICATION
    return intent


def _first_match(patterns, text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def extract_navigation_target(transcript: str) -> Optional[str]:
    return _first_match(_NAVIGATION_RES, transcript)


def extract_file_name(transcript: str) -> Optional[str]:
    return _first_match(_FILE_NAME_RES, transcript)
