"""
Configuration management for LLM Router.

Loads the model catalog, classification rules, routing defaults and
provider credentials from JSON configuration files, with API keys and
base URLs optionally supplied through environment variables.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional


# Provider type -> environment variable prefix
PROVIDER_ENV_PREFIXES = {
    'openai': 'OPENAI',
    'anthropic': 'ANTHROPIC',
    'openrouter': 'OPENROUTER',
    'notdiamond': 'NOTDIAMOND',
}


class Config:
    """Configuration manager for routing rules and model definitions."""

    def __init__(self, config_path: str = None):
        """Initialize configuration.

        Args:
            config_path: Path to config directory. If None, uses defaults.
        """
        self.config_path = config_path
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file or defaults."""
        if self.config_path and os.path.exists(os.path.join(self.config_path, 'config.json')):
            config_file = os.path.join(self.config_path, 'config.json')
            with open(config_file, 'r') as f:
                return json.load(f)
        else:
            # Load defaults from package
            defaults_path = Path(__file__).parent / 'defaults.json'
            with open(defaults_path, 'r') as f:
                return json.load(f)

    def get_models(self) -> List[Dict[str, Any]]:
        """Get model definitions."""
        return self.config.get('models', [])

    def get_classification_rules(self) -> Dict[str, Any]:
        """Get classification rules and keywords."""
        return self.config.get('classification_rules', {})

    def get_task_keywords(self, task_type: str) -> List[str]:
        """Get keywords that indicate a task type."""
        rules = self.get_classification_rules().get('task_types', {})
        return rules.get(task_type, {}).get('keywords', [])

    def get_task_patterns(self, task_type: str) -> List[str]:
        """Get regular expressions that indicate a task type."""
        rules = self.get_classification_rules().get('task_types', {})
        return rules.get(task_type, {}).get('patterns', [])

    def get_tool_indicators(self) -> List[str]:
        """Get phrases that suggest the prompt needs tool use."""
        return self.get_classification_rules().get('tool_indicators', [])

    def get_function_calling_indicators(self) -> List[str]:
        """Get phrases that suggest the prompt needs function calling."""
        return self.get_classification_rules().get('function_calling_indicators', [])

    def get_default_preferences(self) -> Dict[str, float]:
        """Get default cost/latency/quality weights."""
        return self.config.get('default_preferences', {
            'cost_weight': 0.3,
            'latency_weight': 0.3,
            'quality_weight': 0.4,
        })

    def get_default_model_id(self) -> str:
        """Get the model used when routing degrades."""
        return self.config.get('default_model_id', 'gpt-3.5-turbo')

    def get_failover_settings(self) -> Dict[str, Any]:
        """Get failover settings (enabled, max_retries, retry_delay seconds)."""
        settings = {'enabled': True, 'max_retries': 3, 'retry_delay': 1.0}
        settings.update(self.config.get('failover', {}))
        return settings

    def get_quality_settings(self) -> Dict[str, Any]:
        """Get quality evaluation settings (enabled, min_samples, batch_size)."""
        settings = {'enabled': True, 'min_samples': 10, 'batch_size': 100}
        settings.update(self.config.get('quality', {}))
        return settings

    def get_provider_configs(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Dict[str, Any]]:
        """Get provider settings keyed by provider type.

        Entries from the ``providers`` section of the config file are
        overlaid with ``<PROVIDER>_API_KEY`` and ``<PROVIDER>_BASE_URL``
        environment variables. Providers without an API key are omitted.

        Args:
            environ: Environment mapping. Defaults to ``os.environ``.

        Returns:
            Dict mapping provider type to a dict with ``api_key`` and
            optional ``base_url``, ``timeout`` and ``max_retries``.
        """
        if environ is None:
            environ = os.environ

        configs: Dict[str, Dict[str, Any]] = {}
        for provider_type, settings in self.config.get('providers', {}).items():
            configs[provider_type] = dict(settings)

        for provider_type, prefix in PROVIDER_ENV_PREFIXES.items():
            api_key = environ.get(f'{prefix}_API_KEY')
            base_url = environ.get(f'{prefix}_BASE_URL')
            if api_key:
                configs.setdefault(provider_type, {})['api_key'] = api_key
            if base_url and provider_type in configs:
                configs[provider_type]['base_url'] = base_url

        return {
            provider_type: settings
            for provider_type, settings in configs.items()
            if settings.get('api_key')
        }

    def save_config(self, config_path: str) -> None:
        """Save current configuration to file.

        Args:
            config_path: Path to config directory
        """
        os.makedirs(config_path, exist_ok=True)
        config_file = os.path.join(config_path, 'config.json')
        tmp_file = config_file + '.tmp'
        with open(tmp_file, 'w') as f:
            json.dump(self.config, f, indent=2)
        os.replace(tmp_file, config_file)

    def add_model(self, model_def: Dict[str, Any]) -> None:
        """Add or update a model definition.

        Args:
            model_def: Model definition dict with required fields
        """
        models = self.config.get('models', [])
        # Remove existing model with same id
        models = [m for m in models if m.get('id') != model_def.get('id')]
        models.append(model_def)
        self.config['models'] = models

    def remove_model(self, model_id: str) -> bool:
        """Remove a model definition.

        Args:
            model_id: Id of model to remove

        Returns:
            True if model was found and removed, False otherwise
        """
        models = self.config.get('models', [])
        original_count = len(models)
        self.config['models'] = [m for m in models if m.get('id') != model_id]
        return len(self.config['models']) < original_count

    def update_classification_rules(self, rules: Dict[str, Any]) -> None:
        """Update classification rules.

        Args:
            rules: New classification rules to merge
        """
        current_rules = self.config.get('classification_rules', {})
        current_rules.update(rules)
        self.config['classification_rules'] = current_rules
