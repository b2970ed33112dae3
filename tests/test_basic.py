"""
Core tests for LLM Router.

Covers configuration loading, prompt classification and the model
registry.
"""

import math
import os
import shutil
import tempfile
import unittest

from llm_router import (
    TASK_TYPES,
    Config,
    InvalidInput,
    ModelDescriptor,
    ModelRegistry,
    TaskClassifier,
    classify,
    estimate_tokens,
    task_type_display_name,
)


def make_model(model_id, **overrides):
    fields = dict(
        id=model_id,
        provider='openai',
        cost_per_1k_input=0.001,
        cost_per_1k_output=0.002,
        max_context_length=8000,
        average_latency_ms=1000,
        quality=0.8,
    )
    fields.update(overrides)
    return ModelDescriptor(**fields)


class TestConfig(unittest.TestCase):
    """Test configuration management."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config = Config()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_default_config_loads(self):
        models = self.config.get_models()
        self.assertEqual(len(models), 10)
        self.assertIn('id', models[0])
        self.assertIn('provider', models[0])
        self.assertIn('failover_chain', models[0])

    def test_classification_rules(self):
        self.assertIn('summarize', self.config.get_task_keywords('summarization'))
        self.assertIn('translate.*to', self.config.get_task_patterns('translation'))
        self.assertEqual(self.config.get_task_keywords('general'), [])
        self.assertIn('weather', self.config.get_tool_indicators())
        self.assertIn('webhook', self.config.get_function_calling_indicators())

    def test_defaults(self):
        prefs = self.config.get_default_preferences()
        self.assertAlmostEqual(prefs['cost_weight'] + prefs['latency_weight'] + prefs['quality_weight'], 1.0)
        self.assertEqual(self.config.get_default_model_id(), 'gpt-3.5-turbo')
        failover = self.config.get_failover_settings()
        self.assertTrue(failover['enabled'])
        self.assertEqual(failover['max_retries'], 3)
        self.assertEqual(failover['retry_delay'], 1.0)
        self.assertEqual(self.config.get_quality_settings()['min_samples'], 10)

    def test_save_and_load_config(self):
        self.config.add_model({
            'id': 'test-model',
            'provider': 'openai',
            'cost_per_1k_input': 0.001,
            'cost_per_1k_output': 0.002,
            'max_context_length': 4096,
            'average_latency_ms': 500,
            'quality': 0.7,
        })
        self.config.save_config(self.temp_dir)
        self.assertFalse(os.path.exists(os.path.join(self.temp_dir, 'config.json.tmp')))

        new_config = Config(self.temp_dir)
        model_ids = [m['id'] for m in new_config.get_models()]
        self.assertIn('test-model', model_ids)

    def test_add_model_replaces_same_id(self):
        self.config.add_model({'id': 'gpt-4o', 'provider': 'openai'})
        matches = [m for m in self.config.get_models() if m['id'] == 'gpt-4o']
        self.assertEqual(len(matches), 1)
        self.assertNotIn('quality', matches[0])

    def test_remove_model(self):
        self.assertTrue(self.config.remove_model('gpt-4o'))
        self.assertFalse(self.config.remove_model('gpt-4o'))

    def test_missing_config_file_uses_defaults(self):
        config = Config(self.temp_dir)
        self.assertEqual(len(config.get_models()), 10)

    def test_provider_configs_from_environment(self):
        environ = {
            'OPENAI_API_KEY': 'sk-openai',
            'ANTHROPIC_BASE_URL': 'https://proxy.internal/v1',
            'NOTDIAMOND_API_KEY': 'nd-key',
            'NOTDIAMOND_BASE_URL': 'https://nd.example/v1',
        }
        configs = self.config.get_provider_configs(environ)
        self.assertEqual(configs['openai'], {'api_key': 'sk-openai'})
        self.assertEqual(configs['notdiamond']['base_url'], 'https://nd.example/v1')
        # A base URL alone does not configure a provider
        self.assertNotIn('anthropic', configs)
        self.assertNotIn('openrouter', configs)

    def test_provider_configs_file_and_environment(self):
        self.config.config['providers'] = {
            'anthropic': {'api_key': 'file-key', 'timeout': 10},
            'openrouter': {'base_url': 'https://openrouter.example'},
        }
        configs = self.config.get_provider_configs({'ANTHROPIC_API_KEY': 'env-key'})
        self.assertEqual(configs['anthropic'], {'api_key': 'env-key', 'timeout': 10})
        self.assertNotIn('openrouter', configs)
        # The file section itself is untouched
        self.assertEqual(self.config.config['providers']['anthropic']['api_key'], 'file-key')


class TestTaskClassifier(unittest.TestCase):
    """Test task classification functionality."""

    def setUp(self):
        self.classifier = TaskClassifier(Config())

    def test_summarization(self):
        result = self.classifier.classify("Summarize the following article about AI.")
        self.assertEqual(result.task_type, 'summarization')
        self.assertEqual(result.confidence, 0.95)

    def test_translation(self):
        result = self.classifier.classify("Translate this text to Spanish: Hello")
        self.assertEqual(result.task_type, 'translation')

    def test_code_generation(self):
        result = self.classifier.classify("Write code to implement a sorting algorithm")
        self.assertEqual(result.task_type, 'code_generation')
        self.assertFalse(result.requires_tools)
        self.assertFalse(result.requires_function_calling)

    def test_question_answering(self):
        result = self.classifier.classify("What is the capital of France?")
        self.assertEqual(result.task_type, 'question_answering')

    def test_trailing_language_pattern(self):
        self.assertEqual(self.classifier.score_task_types("Say hello in French")['translation'], 5)
        self.assertEqual(self.classifier.score_task_types("Put it in Klingon")['translation'], 3)
        # ASCII word characters only, anchored at the very end
        self.assertEqual(self.classifier.score_task_types("Say hello in español")['translation'], 0)
        self.assertEqual(self.classifier.score_task_types("Put it in Klingon\n")['translation'], 0)
        self.assertEqual(
            self.classifier.classify("Tell me about life in Paris\n").task_type, 'question_answering'
        )

    def test_question_mark_fallback(self):
        scores = self.classifier.score_task_types("Hmm?")
        self.assertEqual(scores['question_answering'], 1)
        self.assertEqual(self.classifier.classify("Hmm?").task_type, 'question_answering')

    def test_no_signal_is_general(self):
        result = self.classifier.classify("Hello there")
        self.assertEqual(result.task_type, 'general')
        self.assertEqual(result.confidence, 0.3)

    def test_ties_go_to_first_declared_type(self):
        scores = self.classifier.score_task_types("summarize and translate")
        self.assertEqual(scores['summarization'], scores['translation'])
        result = self.classifier.classify("summarize and translate")
        self.assertEqual(result.task_type, 'summarization')
        self.assertAlmostEqual(result.confidence, 0.5)

    def test_scoring_weights(self):
        # Two keywords (2 each) and two patterns (3 each)
        scores = self.classifier.score_task_types("Write code to implement a sorting algorithm")
        self.assertEqual(scores['code_generation'], 12)

    def test_requirements(self):
        self.assertTrue(self.classifier.classify("Search for the latest weather").requires_tools)
        self.assertTrue(
            self.classifier.classify("Please execute the deployment").requires_function_calling
        )

    def test_token_estimate(self):
        for prompt in ["a", "abcd", "abcde", "x" * 401]:
            result = self.classifier.classify(prompt)
            self.assertEqual(result.estimated_tokens, math.ceil(len(prompt) / 4))
            self.assertGreaterEqual(result.confidence, 0.0)
            self.assertLessEqual(result.confidence, 0.95)
        self.assertEqual(estimate_tokens("abcde"), 2)

    def test_empty_prompt(self):
        with self.assertRaises(InvalidInput):
            self.classifier.classify("")
        with self.assertRaises(InvalidInput):
            self.classifier.classify("   \n")

    def test_module_level_classify(self):
        self.assertEqual(classify("Translate this text to Spanish: Hello").task_type, 'translation')

    def test_display_names(self):
        self.assertEqual(task_type_display_name('code_generation'), 'Code Generation')
        self.assertEqual(task_type_display_name('unknown'), 'unknown')

    def test_custom_rules(self):
        config = Config()
        config.update_classification_rules({
            'task_types': {'analysis': {'keywords': ['benchmark'], 'patterns': []}},
        })
        result = TaskClassifier(config).classify("benchmark these two databases")
        self.assertEqual(result.task_type, 'analysis')


class TestModelRegistry(unittest.TestCase):
    """Test model registry functionality."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.registry = ModelRegistry(Config())

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_models_loaded(self):
        models = self.registry.list_models()
        self.assertEqual(len(models), 10)
        self.assertEqual(models[0].id, 'gpt-4o')
        for model in models:
            self.assertIsInstance(model, ModelDescriptor)

    def test_get_model(self):
        model = self.registry.get_model('claude-3-haiku')
        self.assertEqual(model.provider, 'anthropic')
        self.assertEqual(model.name, 'Claude 3 Haiku')
        self.assertNotIn('code_generation', model.supported_task_types)
        self.assertIsNone(self.registry.get_model('nonexistent'))

    def test_models_for_task_type(self):
        ids = [m.id for m in self.registry.models_for_task_type('code_generation')]
        self.assertIn('gpt-4o', ids)
        self.assertNotIn('gpt-3.5-turbo', ids)

    def test_providers(self):
        self.assertEqual(self.registry.get_providers(), ['anthropic', 'notdiamond', 'openai'])
        self.assertEqual(len(self.registry.models_by_provider('OpenAI')), 3)

    def test_failover_chain_skips_unknown_and_inactive(self):
        registry = ModelRegistry(models=[
            make_model('primary', failover_chain=('ghost', 'sleepy', 'backup')),
            make_model('sleepy', is_active=False),
            make_model('backup'),
        ])
        self.assertEqual([m.id for m in registry.get_failover_models('primary')], ['backup'])
        self.assertEqual(registry.get_failover_models('ghost'), [])

    def test_update_quality_clamps(self):
        updated = self.registry.update_quality('gpt-4o', 1.7)
        self.assertEqual(updated.quality, 1.0)
        self.assertEqual(self.registry.get_model('gpt-4o').quality, 1.0)
        self.assertIsNone(self.registry.update_quality('nonexistent', 0.5))

    def test_updates_are_copy_on_write(self):
        snapshot = self.registry.snapshot()
        before = snapshot['gpt-4o']
        self.registry.update_quality('gpt-4o', 0.1)
        self.registry.remove_model('gpt-4o-mini')

        self.assertIs(snapshot['gpt-4o'], before)
        self.assertEqual(snapshot['gpt-4o'].quality, 0.95)
        self.assertIn('gpt-4o-mini', snapshot)
        self.assertEqual(self.registry.get_model('gpt-4o').quality, 0.1)
        self.assertIsNone(self.registry.get_model('gpt-4o-mini'))

    def test_update_model_validates(self):
        with self.assertRaises(ValueError):
            self.registry.update_model('gpt-4o', average_latency_ms=0)
        self.assertEqual(self.registry.get_model('gpt-4o').average_latency_ms, 2000)

    def test_set_active(self):
        self.assertTrue(self.registry.set_active('gpt-4o', False))
        self.assertNotIn('gpt-4o', [m.id for m in self.registry.get_active_models()])
        self.assertIn('gpt-4o', [m.id for m in self.registry.list_models()])

    def test_add_and_remove(self):
        self.registry.add_model(make_model('custom'))
        self.assertIsNotNone(self.registry.get_model('custom'))
        self.assertTrue(self.registry.remove_model('custom'))
        self.assertFalse(self.registry.remove_model('custom'))

    def test_save_and_load(self):
        path = os.path.join(self.temp_dir, 'catalog', 'models.json')
        self.registry.update_quality('gpt-4o', 0.5)
        self.registry.save_to_file(path)

        loaded = ModelRegistry(models=[])
        loaded.load_from_file(path)
        self.assertEqual(len(loaded.list_models()), 10)
        model = loaded.get_model('gpt-4o')
        self.assertEqual(model.quality, 0.5)
        self.assertEqual(model.failover_chain, ('gpt-4o-mini', 'gpt-3.5-turbo'))
        self.assertEqual(model.supported_task_types, frozenset(TASK_TYPES))

    def test_descriptor_validation(self):
        with self.assertRaises(ValueError):
            make_model('bad', cost_per_1k_input=0)
        with self.assertRaises(ValueError):
            make_model('bad', max_context_length=0)
        with self.assertRaises(ValueError):
            make_model('bad', quality=1.5)
        with self.assertRaises(ValueError):
            make_model('bad', priority=11)
        with self.assertRaises(ValueError):
            make_model('')

    def test_estimate_cost(self):
        model = make_model('m', cost_per_1k_input=0.002, cost_per_1k_output=0.004)
        self.assertAlmostEqual(model.estimate_cost(1000, 500), 0.004)


if __name__ == '__main__':
    unittest.main()
