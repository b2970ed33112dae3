"""
Model registry for LLM Router.

Manages model descriptors: costs, latency, quality, capabilities, context
limits and failover chains. Updates are copy-on-write so a routing call
that already holds a snapshot never sees a half-applied change.
"""

import dataclasses
import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .classifier import TASK_TYPES
from .config import Config

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelDescriptor:
    """Information about a language model."""
    id: str
    provider: str
    cost_per_1k_input: float
    cost_per_1k_output: float
    max_context_length: int
    average_latency_ms: int
    quality: float
    supported_task_types: FrozenSet[str] = frozenset(TASK_TYPES)
    supports_tools: bool = False
    supports_function_calling: bool = False
    is_active: bool = True
    failover_chain: Tuple[str, ...] = ()
    name: str = ""
    description: str = ""
    priority: int = 5

    def __post_init__(self) -> None:
        """Validate fields and normalise collection types."""
        if not self.id:
            raise ValueError("model id must not be empty")
        if self.cost_per_1k_input <= 0 or self.cost_per_1k_output <= 0:
            raise ValueError(
                f"costs must be > 0, got input={self.cost_per_1k_input} "
                f"output={self.cost_per_1k_output} for {self.id!r}"
            )
        if self.max_context_length <= 0:
            raise ValueError(f"max_context_length must be > 0 for {self.id!r}")
        if self.average_latency_ms <= 0:
            raise ValueError(f"average_latency_ms must be > 0 for {self.id!r}")
        if not (0.0 <= self.quality <= 1.0):
            raise ValueError(f"quality must be 0.0–1.0, got {self.quality} for {self.id!r}")
        if not (0 <= self.priority <= 10):
            raise ValueError(f"priority must be 0–10, got {self.priority} for {self.id!r}")
        object.__setattr__(self, 'supported_task_types', frozenset(self.supported_task_types))
        object.__setattr__(self, 'failover_chain', tuple(self.failover_chain))
        if not self.name:
            object.__setattr__(self, 'name', self.id)

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Calculate cost in dollars for given token usage."""
        input_cost = (input_tokens / 1000) * self.cost_per_1k_input
        output_cost = (output_tokens / 1000) * self.cost_per_1k_output
        return input_cost + output_cost

    def supports_task_type(self, task_type: str) -> bool:
        return task_type in self.supported_task_types

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'provider': self.provider,
            'cost_per_1k_input': self.cost_per_1k_input,
            'cost_per_1k_output': self.cost_per_1k_output,
            'max_context_length': self.max_context_length,
            'average_latency_ms': self.average_latency_ms,
            'quality': self.quality,
            'supported_task_types': [t for t in TASK_TYPES if t in self.supported_task_types],
            'supports_tools': self.supports_tools,
            'supports_function_calling': self.supports_function_calling,
            'description': self.description,
            'is_active': self.is_active,
            'priority': self.priority,
            'failover_chain': list(self.failover_chain),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelDescriptor':
        return cls(
            id=data['id'],
            name=data.get('name', ''),
            provider=data['provider'],
            cost_per_1k_input=float(data['cost_per_1k_input']),
            cost_per_1k_output=float(data['cost_per_1k_output']),
            max_context_length=int(data['max_context_length']),
            average_latency_ms=int(data['average_latency_ms']),
            quality=float(data['quality']),
            supported_task_types=frozenset(data.get('supported_task_types', TASK_TYPES)),
            supports_tools=bool(data.get('supports_tools', False)),
            supports_function_calling=bool(data.get('supports_function_calling', False)),
            description=data.get('description', ''),
            is_active=bool(data.get('is_active', True)),
            priority=int(data.get('priority', 5)),
            failover_chain=tuple(data.get('failover_chain', ())),
        )


class ModelRegistry:
    """Registry for managing language model descriptors.

    Reads never lock: they work on whatever dict ``self._models`` pointed to
    when they started. Writers build a new dict under ``_write_lock`` and
    swap it in.
    """

    def __init__(self, config: Config = None, models: Iterable[ModelDescriptor] = None):
        """Initialize model registry.

        Args:
            config: Configuration instance with model definitions. Ignored
                when ``models`` is given.
            models: Explicit descriptors to register, in catalog order.
        """
        self.config = config
        self._write_lock = threading.Lock()
        if models is not None:
            self._models: Dict[str, ModelDescriptor] = {m.id: m for m in models}
        else:
            self._models = self._load_models(config if config is not None else Config())

    def _load_models(self, config: Config) -> Dict[str, ModelDescriptor]:
        """Load models from configuration."""
        models = {}
        for model_def in config.get_models():
            model = ModelDescriptor.from_dict(model_def)
            models[model.id] = model
        return models

    # ── Reads ─────────────────────────────────────────────────────────────

    def snapshot(self) -> Dict[str, ModelDescriptor]:
        """Return the current id → descriptor mapping (do not mutate)."""
        return self._models

    def get_model(self, model_id: str) -> Optional[ModelDescriptor]:
        return self._models.get(model_id)

    def list_models(self) -> List[ModelDescriptor]:
        """Get all registered models, active or not, in catalog order."""
        return list(self._models.values())

    def get_active_models(self) -> List[ModelDescriptor]:
        return [m for m in self._models.values() if m.is_active]

    def models_for_task_type(self, task_type: str) -> List[ModelDescriptor]:
        """Get active models that support a task type, in catalog order."""
        return [m for m in self.get_active_models() if m.supports_task_type(task_type)]

    def models_by_provider(self, provider: str) -> List[ModelDescriptor]:
        return [
            m for m in self.get_active_models()
            if m.provider.lower() == provider.lower()
        ]

    def get_providers(self) -> List[str]:
        """Get sorted list of providers with at least one registered model."""
        return sorted({m.provider for m in self._models.values()})

    def get_failover_models(self, model_id: str) -> List[ModelDescriptor]:
        """Resolve a model's failover chain.

        Unknown ids and inactive models are skipped.

        Args:
            model_id: Primary model id

        Returns:
            Active descriptors in chain order (empty if the model is unknown)
        """
        models = self._models
        model = models.get(model_id)
        if model is None:
            return []
        chain = []
        for fallback_id in model.failover_chain:
            fallback = models.get(fallback_id)
            if fallback is None:
                _log.debug("Failover entry %s for %s is not in the catalog", fallback_id, model_id)
                continue
            if not fallback.is_active:
                continue
            chain.append(fallback)
        return chain

    # ── Writes ────────────────────────────────────────────────────────────

    def add_model(self, model: ModelDescriptor) -> None:
        """Add or replace a model."""
        with self._write_lock:
            models = dict(self._models)
            models[model.id] = model
            self._models = models

    def remove_model(self, model_id: str) -> bool:
        """Remove a model. Returns False if it was not registered."""
        with self._write_lock:
            if model_id not in self._models:
                return False
            models = dict(self._models)
            del models[model_id]
            self._models = models
            return True

    def update_model(self, model_id: str, **updates: Any) -> Optional[ModelDescriptor]:
        """Replace fields of a registered model.

        Args:
            model_id: Model to update
            **updates: Descriptor fields to change

        Returns:
            The new descriptor, or None if the model is not registered

        Raises:
            ValueError: If the updated descriptor is invalid
        """
        with self._write_lock:
            current = self._models.get(model_id)
            if current is None:
                return None
            updated = dataclasses.replace(current, **updates)
            models = dict(self._models)
            models[model_id] = updated
            self._models = models
            return updated

    def update_quality(self, model_id: str, quality: float) -> Optional[ModelDescriptor]:
        """Set a model's quality score (clamped to 0.0–1.0)."""
        quality = max(0.0, min(1.0, float(quality)))
        updated = self.update_model(model_id, quality=quality)
        if updated is not None:
            _log.info("Updated quality for %s to %.4f", model_id, quality)
        return updated

    def set_active(self, model_id: str, active: bool) -> bool:
        return self.update_model(model_id, is_active=active) is not None

    # ── Persistence ───────────────────────────────────────────────────────

    def save_to_file(self, file_path: str) -> None:
        """Save registry to a JSON file.

        Args:
            file_path: Path to save the registry
        """
        data = {'models': [m.to_dict() for m in self._models.values()]}
        directory = os.path.dirname(file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(file_path, 'w') as f:
            json.dump(data, f, indent=2)

    def load_from_file(self, file_path: str) -> None:
        """Replace the registry contents from a JSON file.

        Args:
            file_path: Path to load the registry from
        """
        with open(file_path, 'r') as f:
            data = json.load(f)

        models = {}
        for model_def in data.get('models', []):
            model = ModelDescriptor.from_dict(model_def)
            models[model.id] = model
        with self._write_lock:
            self._models = models
