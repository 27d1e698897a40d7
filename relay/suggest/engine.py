"""
Suggestion Engine

Turns free text (one signal) or a batch of signals into ProposedTasks by
prompting the model cascade and validating the answer strictly.

Outcomes:
- suggestions (possibly empty) from the first model that answered
- exhausted=True when every candidate model was unavailable
- AiHardFailError when the cascade aborted (e.g. bad API key)
- MalformedResponseError when a model answered with something other than a
  JSON array of task objects
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from ..common.errors import AiHardFailError, MalformedResponseError
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_json_array
from ..common.schemas import NormalizedSignal, ProposedTask
from .cascade import Backend, CascadeOutcome, ModelCascade

logger = logging.getLogger("relay.suggest.engine")

MAX_MESSAGE_CHARS = 500
MAX_CHARS_PER_FILE_CONTENT = 4000
MAX_CHARS_PER_SIGNAL = 6000
MAX_TOTAL_SIGNAL_CHARS = 180000
MAX_SIGNALS = 50

_TASK_LIST = TypeAdapter(List[ProposedTask])


ANALYZE_PROMPT = """Analyze this message into task tracker tasks.
Message: {message}
Projects: {projects}

Pick each task's projectName from Projects, or use "My Tasks" if none fits.

Output JSON Array (strict format, no prose):
[{{"title": "...", "projectName": "...", "reasoning": "..."}}]"""


SYNTHESIZE_PROMPT = """{persona}

Your goal is to synthesize these signals into a Project Plan that is actionable for this specific user.

SIGNAL REFERENCE INDEX (use these signal numbers in sourceSignalIndices):
{signal_index}

INPUTS:
1. SIGNALS: {signals}
2. AVAILABLE PROJECTS: {projects}

INSTRUCTIONS:
{instructions}
4. Ignore resolved/done items.
5. Create subtasks for specific actions.
6. CITE SOURCES by referencing signal indices.
7. For each task, list which signals (by index number) contributed to it in "sourceSignalIndices".

OUTPUT JSON ARRAY (strict format, no prose):
[
  {{
    "project": "Project Name (pick best match from INPUT 2, or suggest 'My Tasks')",
    "title": "Major Task Name",
    "description": "Context and why this is relevant to the user.",
    "subtasks": ["Action 1", "Action 2"],
    "citations": ["Who said what and why it matters"],
    "sourceSignalIndices": [0, 2]
  }}
]"""


DEFAULT_PERSONA = "You are a Chief of Staff."
DEFAULT_INSTRUCTIONS = "1-3. Cluster related threads into Major Tasks."


@dataclass
class UserProfile:
    """Who the plan is for; sharpens prioritization in synthesize_workload"""
    name: str
    title: str = ""
    role_description: str = ""
    key_priorities: List[str] = field(default_factory=list)
    ignored_topics: List[str] = field(default_factory=list)


@dataclass
class SuggestionResult:
    """Suggestions plus the exhaustion flag"""
    suggestions: List[ProposedTask] = field(default_factory=list)
    exhausted: bool = False
    model: Optional[str] = None


def truncate_text(text: str, limit: int) -> str:
    if not text or len(text) <= limit:
        return text
    return f"{text[:limit]}... [truncated]"


def build_analyze_prompt(text: str, categories: Sequence[str]) -> str:
    """Deterministic prompt for a single message."""
    return ANALYZE_PROMPT.format(
        message=json.dumps(text[:MAX_MESSAGE_CHARS], ensure_ascii=False),
        projects=json.dumps(list(categories), ensure_ascii=False),
    )


def minify_signals(
    signals: Sequence[NormalizedSignal],
    threads: Optional[Dict[str, List[Dict[str, Any]]]] = None,
) -> List[Dict[str, Any]]:
    """Compact prompt view of signals under per-signal and total character limits."""
    threads = threads or {}
    minified = []
    for signal in signals[:MAX_SIGNALS]:
        content = signal.title
        file_info = signal.metadata.file
        if file_info and (file_info.title or file_info.name):
            content += "\n\n--- ATTACHED FILE ---"
            content += f"\nFile Name: {file_info.title or file_info.name}"
            if file_info.mimetype:
                content += f"\nFile Type: {file_info.mimetype}"
            if file_info.preview:
                content += f"\n\nFILE CONTENTS:\n{truncate_text(file_info.preview, MAX_CHARS_PER_FILE_CONTENT)}"
            content += "\n--- END FILE ---"

        minified.append({
            "id": signal.id,
            "channel": signal.metadata.source_label,
            "text": truncate_text(content, MAX_CHARS_PER_SIGNAL),
            "user": signal.metadata.author,
            "url": signal.url,
            "source": signal.source_provider.value,
            "replies": [
                {"user": reply.get("user", ""), "text": reply.get("text", "")}
                for reply in threads.get(signal.id, [])
            ],
        })

    running = 0
    for item in minified:
        item["text"] = truncate_text(item["text"], max(MAX_TOTAL_SIGNAL_CHARS - running, 0))
        running += len(item["text"])
    return minified


def build_synthesis_prompt(
    minified: List[Dict[str, Any]],
    categories: Sequence[str],
    profile: Optional[UserProfile] = None,
) -> str:
    persona = DEFAULT_PERSONA
    instructions = DEFAULT_INSTRUCTIONS
    if profile:
        persona = (
            f"You are acting as the personal Executive Assistant for {profile.name}, "
            f"who is a {profile.title or 'team member'}.\n\n"
            "USER CONTEXT:\n"
            f"- Role Description: {profile.role_description or 'None specified'}\n"
            f"- Key Priorities: {', '.join(profile.key_priorities) or 'None specified'}\n"
            f"- Topics to IGNORE: {', '.join(profile.ignored_topics) or 'None specified'}"
        )
        instructions = (
            '1. FILTER: Strictly ignore signals related to the "Topics to IGNORE" list.\n'
            '2. PRIORITIZE: Focus on signals that align with the "Key Priorities" and the user\'s role.\n'
            "3. CLUSTER: Group related threads into Major Tasks."
        )

    signal_index = "\n".join(
        f"[Signal {idx}] Channel: {s['channel']} | User: {s['user']} | URL: {s['url'] or 'N/A'}"
        for idx, s in enumerate(minified)
    )
    return SYNTHESIZE_PROMPT.format(
        persona=persona,
        signal_index=signal_index,
        signals=json.dumps(minified, ensure_ascii=False),
        projects=json.dumps(list(categories), ensure_ascii=False),
        instructions=instructions,
    )


class SuggestionEngine:
    """
    AI task suggestions over a model cascade.

    Usage:
        engine = SuggestionEngine.from_llm_client(client, ["gemini-2.0-flash"])
        result = engine.analyze_signal("Can you send the Q3 deck?", ["Sales", "Ops"])
        if result.exhausted:
            ...  # AI unavailable, not "no tasks"
    """

    def __init__(self, backend: Backend, models: Sequence[str]):
        self._cascade = ModelCascade(models, backend)

    @classmethod
    def from_llm_client(cls, client: LLMClient, models: Sequence[str]) -> "SuggestionEngine":
        return cls(lambda model, prompt: client.generate(prompt, model=model), models)

    @property
    def models(self) -> List[str]:
        return list(self._cascade.models)

    def analyze_signal(self, text: str, categories: Sequence[str]) -> SuggestionResult:
        """
        Propose tasks for one piece of free text.

        Raises:
            AiHardFailError: the cascade aborted
            MalformedResponseError: the answering model broke the JSON contract
        """
        if not text or not text.strip():
            return SuggestionResult()
        prompt = build_analyze_prompt(text, categories)
        return self._run(prompt)

    def synthesize_workload(
        self,
        signals: Sequence[NormalizedSignal],
        categories: Sequence[str],
        profile: Optional[UserProfile] = None,
        threads: Optional[Dict[str, List[Dict[str, Any]]]] = None,
    ) -> SuggestionResult:
        """
        Cluster several signals into major tasks with subtasks and citations.

        Source links are rebuilt from the model's ``sourceSignalIndices`` so
        they always point at real signals.
        """
        if not signals:
            return SuggestionResult()
        minified = minify_signals(signals, threads)
        prompt = build_synthesis_prompt(minified, categories, profile)

        def _attach_links(items: List[Any]) -> List[Any]:
            for item in items:
                if not isinstance(item, dict):
                    continue
                indices = item.get("sourceSignalIndices")
                if not isinstance(indices, list):
                    continue
                links = [
                    {
                        "text": f"Message in {minified[idx]['channel']} from {minified[idx]['user']}",
                        "url": minified[idx]["url"],
                    }
                    for idx in indices
                    if isinstance(idx, int) and 0 <= idx < len(minified)
                ]
                if links:
                    item["sourceLinks"] = links
            return items

        return self._run(prompt, _attach_links)

    def _run(self, prompt: str, postprocess=None) -> SuggestionResult:
        result = self._cascade.run(prompt)

        if result.outcome == CascadeOutcome.ABORTED:
            raise AiHardFailError(str(result.error), model=result.model) from result.error

        if result.outcome == CascadeOutcome.EXHAUSTED:
            logger.warning("Suggestion cascade exhausted after trying %s", ", ".join(result.tried))
            return SuggestionResult(exhausted=True)

        try:
            items = parse_json_array(result.text)
        except MalformedResponseError as e:
            e.model = result.model
            logger.error("Model %s returned malformed output: %s", result.model, e)
            raise

        if postprocess:
            items = postprocess(items)

        try:
            suggestions = _TASK_LIST.validate_python(items)
        except ValidationError as e:
            logger.error("Model %s returned tasks of the wrong shape: %s", result.model, e)
            raise MalformedResponseError(
                f"Model response does not match the task schema: {e}", model=result.model
            ) from e

        return SuggestionResult(suggestions=suggestions, model=result.model)
