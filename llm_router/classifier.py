"""
Task classification for LLM Router.

Classifies prompts into task types (summarization, code generation,
translation, ...) and estimates their resource needs using deterministic
keyword and pattern matching. No model calls, no I/O.
"""

import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Pattern

from .config import Config
from .errors import InvalidInput

SUMMARIZATION = 'summarization'
CODE_GENERATION = 'code_generation'
TRANSLATION = 'translation'
QUESTION_ANSWERING = 'question_answering'
CREATIVE_WRITING = 'creative_writing'
ANALYSIS = 'analysis'
GENERAL = 'general'

# Declaration order doubles as the tie-break order
TASK_TYPES = (
    SUMMARIZATION,
    CODE_GENERATION,
    TRANSLATION,
    QUESTION_ANSWERING,
    CREATIVE_WRITING,
    ANALYSIS,
    GENERAL,
)

TASK_TYPE_DISPLAY_NAMES = {
    SUMMARIZATION: 'Summarization',
    CODE_GENERATION: 'Code Generation',
    TRANSLATION: 'Translation',
    QUESTION_ANSWERING: 'Question Answering',
    CREATIVE_WRITING: 'Creative Writing',
    ANALYSIS: 'Analysis',
    GENERAL: 'General',
}

NO_SIGNAL_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.95
CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class PromptAnalysis:
    """Result of prompt classification."""
    task_type: str
    confidence: float
    estimated_tokens: int
    requires_tools: bool
    requires_function_calling: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task_type': self.task_type,
            'confidence': self.confidence,
            'estimated_tokens': self.estimated_tokens,
            'requires_tools': self.requires_tools,
            'requires_function_calling': self.requires_function_calling,
        }


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def task_type_display_name(task_type: str) -> str:
    """Return the human-readable label for a task type."""
    return TASK_TYPE_DISPLAY_NAMES.get(task_type, task_type)


class TaskClassifier:
    """Classifies prompts into task types using deterministic rules."""

    def __init__(self, config: Config = None):
        """Initialize classifier with configuration.

        Args:
            config: Configuration instance with classification rules.
                Uses the packaged defaults when omitted.
        """
        self.config = config if config is not None else Config()
        self.task_types = list(TASK_TYPES)
        self._keywords: Dict[str, List[str]] = {}
        self._patterns: Dict[str, List[Pattern]] = {}
        for task_type in self.task_types:
            self._keywords[task_type] = [
                keyword.lower() for keyword in self.config.get_task_keywords(task_type)
            ]
            self._patterns[task_type] = [
                re.compile(pattern, re.IGNORECASE | re.ASCII)
                for pattern in self.config.get_task_patterns(task_type)
            ]
        self._tool_indicators = [i.lower() for i in self.config.get_tool_indicators()]
        self._function_indicators = [
            i.lower() for i in self.config.get_function_calling_indicators()
        ]

    def classify(self, prompt: str) -> PromptAnalysis:
        """Classify a prompt into a task type.

        Args:
            prompt: Text prompt to classify

        Returns:
            PromptAnalysis with task type, confidence and requirements

        Raises:
            InvalidInput: If the prompt is empty or whitespace-only
        """
        if not prompt or not prompt.strip():
            raise InvalidInput("Prompt must not be empty")

        prompt_lower = prompt.lower()

        requires_tools = any(i in prompt_lower for i in self._tool_indicators)
        requires_function_calling = any(
            i in prompt_lower for i in self._function_indicators
        )

        scores = self.score_task_types(prompt)

        best_type = GENERAL
        best_score = 0
        for task_type in self.task_types:
            if scores[task_type] > best_score:
                best_type = task_type
                best_score = scores[task_type]

        total = sum(scores.values())
        confidence = best_score / total if total > 0 else NO_SIGNAL_CONFIDENCE

        return PromptAnalysis(
            task_type=best_type,
            confidence=min(confidence, MAX_CONFIDENCE),
            estimated_tokens=estimate_tokens(prompt),
            requires_tools=requires_tools,
            requires_function_calling=requires_function_calling,
        )

    def score_task_types(self, prompt: str) -> Dict[str, int]:
        """Score every task type for *prompt*.

        Each keyword hit is worth 2 and each pattern hit 3. A question mark
        gives question answering a score of 1 when nothing else matched it.
        """
        prompt_lower = prompt.lower()
        scores: Dict[str, int] = {}
        for task_type in self.task_types:
            keyword_matches = sum(1 for k in self._keywords[task_type] if k in prompt_lower)
            pattern_matches = sum(1 for p in self._patterns[task_type] if p.search(prompt))
            scores[task_type] = keyword_matches * 2 + pattern_matches * 3

        if '?' in prompt and scores[QUESTION_ANSWERING] == 0:
            scores[QUESTION_ANSWERING] = 1

        return scores


@lru_cache(maxsize=1)
def _default_classifier() -> TaskClassifier:
    return TaskClassifier(Config())


def classify(prompt: str) -> PromptAnalysis:
    """Classify *prompt* with the packaged default rules."""
    return _default_classifier().classify(prompt)
