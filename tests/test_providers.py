"""Tests for the HTTP provider clients, run against httpx.MockTransport."""

import json

import httpx
import pytest

from llm_router import Config, ProviderError, ProviderTimeout, ProviderUnconfigured
from llm_router.providers import (
    AnthropicProvider,
    NotDiamondProvider,
    OpenAIProvider,
    OpenRouterProvider,
    ProviderConfig,
    ProviderFactory,
    ProviderRegistry,
    ProviderRequest,
)

CHAT_RESPONSE = {
    'model': 'gpt-4o-mini-2024-07-18',
    'choices': [{'message': {'role': 'assistant', 'content': 'Paris'}, 'finish_reason': 'stop'}],
    'usage': {'prompt_tokens': 12, 'completion_tokens': 1, 'total_tokens': 13},
}


class Recorder:
    """MockTransport handler replaying a scripted list of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        status, body = response
        return httpx.Response(status, json=body)

    @property
    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


def make_provider(cls, handler, clock, **config):
    config.setdefault('api_key', 'test-key')
    return cls(ProviderConfig(**config), transport=httpx.MockTransport(handler), clock=clock)


def user_request(model='gpt-4o-mini', **kwargs):
    return ProviderRequest(model=model, messages=[{'role': 'user', 'content': 'Capital of France?'}], **kwargs)


class TestProviderConfig:

    def test_validation(self):
        with pytest.raises(ValueError):
            ProviderConfig(api_key='')
        with pytest.raises(ValueError):
            ProviderConfig(api_key='k', timeout=0)
        with pytest.raises(ValueError):
            ProviderConfig(api_key='k', max_retries=-1)

    def test_from_dict(self):
        config = ProviderConfig.from_dict({'api_key': 'k', 'timeout': '5'})
        assert config == ProviderConfig(api_key='k', timeout=5.0, max_retries=3)


class TestOpenAI:

    def test_generate(self, clock):
        handler = Recorder((200, CHAT_RESPONSE))
        provider = make_provider(OpenAIProvider, handler, clock)

        response = provider.generate(user_request(max_tokens=50))

        request = handler.requests[0]
        assert request.method == 'POST'
        assert str(request.url) == 'https://api.openai.com/v1/chat/completions'
        assert request.headers['Authorization'] == 'Bearer test-key'
        body = handler.bodies[0]
        assert body['model'] == 'gpt-4o-mini'
        assert body['temperature'] == 0.7
        assert body['max_tokens'] == 50
        assert body['stream'] is False
        assert 'top_p' not in body

        assert response.content == 'Paris'
        assert response.usage.total_tokens == 13
        assert response.metadata.model == 'gpt-4o-mini-2024-07-18'
        assert response.metadata.finish_reason == 'stop'
        assert clock.sleeps == []

    def test_custom_base_url(self, clock):
        handler = Recorder((200, CHAT_RESPONSE))
        provider = make_provider(OpenAIProvider, handler, clock, base_url='http://localhost:8080/v1/')
        provider.generate(user_request())
        assert str(handler.requests[0].url) == 'http://localhost:8080/v1/chat/completions'

    def test_retries_server_errors_with_backoff(self, clock):
        handler = Recorder((503, {}), (500, {}), (200, CHAT_RESPONSE))
        provider = make_provider(OpenAIProvider, handler, clock)

        response = provider.generate(user_request())

        assert response.content == 'Paris'
        assert len(handler.requests) == 3
        assert clock.sleeps == [1, 2]

    def test_gives_up_after_max_retries(self, clock):
        handler = Recorder((500, {'error': {'message': 'overloaded'}}))
        provider = make_provider(OpenAIProvider, handler, clock, max_retries=2)

        with pytest.raises(ProviderError) as exc_info:
            provider.generate(user_request())

        assert exc_info.value.status == 500
        assert exc_info.value.retryable
        assert exc_info.value.code == 'OPENAI_ERROR'
        assert exc_info.value.message == 'overloaded'
        assert len(handler.requests) == 3
        assert clock.sleeps == [1, 2]

    def test_rate_limit_is_retryable(self, clock):
        handler = Recorder((429, {}), (200, CHAT_RESPONSE))
        provider = make_provider(OpenAIProvider, handler, clock)
        assert provider.generate(user_request()).content == 'Paris'
        assert clock.sleeps == [1]

    def test_client_errors_not_retried(self, clock):
        handler = Recorder((400, {'error': {'message': 'bad model'}}))
        provider = make_provider(OpenAIProvider, handler, clock)

        with pytest.raises(ProviderError) as exc_info:
            provider.generate(user_request())

        assert not exc_info.value.retryable
        assert str(exc_info.value) == 'bad model'
        assert len(handler.requests) == 1
        assert clock.sleeps == []

    def test_timeout(self, clock):
        handler = Recorder(httpx.ReadTimeout('timed out'))
        provider = make_provider(OpenAIProvider, handler, clock, timeout=5, max_retries=1)

        with pytest.raises(ProviderTimeout) as exc_info:
            provider.generate(user_request())

        assert exc_info.value.retryable
        assert exc_info.value.timeout == 5
        assert len(handler.requests) == 2
        assert clock.sleeps == [1]

    def test_connection_error_is_retryable(self, clock):
        handler = Recorder(httpx.ConnectError('refused'), (200, CHAT_RESPONSE))
        provider = make_provider(OpenAIProvider, handler, clock)
        assert provider.generate(user_request()).content == 'Paris'

    def test_list_models_and_availability(self, clock):
        handler = Recorder((200, {'data': [{'id': 'gpt-4o'}, {'id': 'gpt-4o-mini'}]}))
        provider = make_provider(OpenAIProvider, handler, clock)
        assert provider.list_models() == ['gpt-4o', 'gpt-4o-mini']
        assert provider.is_available()

    def test_unavailable(self, clock):
        provider = make_provider(OpenAIProvider, Recorder((401, {})), clock)
        assert not provider.is_available()


class TestOtherProviders:

    def test_openrouter_headers(self, clock):
        handler = Recorder((200, CHAT_RESPONSE))
        provider = OpenRouterProvider(
            ProviderConfig(api_key='or-key'),
            transport=httpx.MockTransport(handler),
            clock=clock,
            referer='https://example.com/app',
        )
        provider.generate(user_request(model='openai/gpt-4o'))
        request = handler.requests[0]
        assert str(request.url) == 'https://openrouter.ai/api/v1/chat/completions'
        assert request.headers['X-Title'] == 'LLM Router'
        assert request.headers['HTTP-Referer'] == 'https://example.com/app'

    def test_anthropic(self, clock):
        handler = Recorder((200, {
            'model': 'claude-3-haiku-20240307',
            'content': [{'type': 'text', 'text': 'Paris'}],
            'stop_reason': 'end_turn',
            'usage': {'input_tokens': 20, 'output_tokens': 3},
        }))
        provider = make_provider(AnthropicProvider, handler, clock)

        response = provider.generate(ProviderRequest(
            model='claude-3-haiku',
            messages=[
                {'role': 'system', 'content': 'Answer tersely.'},
                {'role': 'user', 'content': 'Capital of France?'},
            ],
        ))

        request = handler.requests[0]
        assert str(request.url) == 'https://api.anthropic.com/v1/messages'
        assert request.headers['x-api-key'] == 'test-key'
        assert request.headers['anthropic-version'] == '2023-06-01'
        body = handler.bodies[0]
        assert body['system'] == 'Answer tersely.'
        assert body['messages'] == [{'role': 'user', 'content': 'Capital of France?'}]
        assert body['max_tokens'] == 1000

        assert response.content == 'Paris'
        assert response.usage.total_tokens == 23
        assert response.metadata.finish_reason == 'end_turn'

    def test_notdiamond_model_list_fallback(self, clock):
        handler = Recorder((503, {}))
        provider = make_provider(NotDiamondProvider, handler, clock)
        assert provider.list_models() == list(NotDiamondProvider.DEFAULT_MODELS)
        assert len(handler.requests) == 1

    def test_notdiamond_health(self, clock):
        handler = Recorder((200, {'status': 'ok'}))
        provider = make_provider(NotDiamondProvider, handler, clock)
        assert provider.is_available()
        assert handler.requests[0].url.path == '/v1/health'

        down = make_provider(NotDiamondProvider, Recorder(httpx.ConnectError('refused')), clock)
        assert not down.is_available()


class TestFactoryAndRegistry:

    def test_factory_memoizes_per_config(self):
        factory = ProviderFactory()
        config = ProviderConfig(api_key='k')
        first = factory.create_provider('openai', config)
        assert factory.create_provider('OpenAI', ProviderConfig(api_key='k')) is first
        assert factory.create_provider('openai', ProviderConfig(api_key='other')) is not first
        assert isinstance(factory.create_provider('anthropic', config), AnthropicProvider)

    def test_factory_unknown_type(self):
        with pytest.raises(ProviderUnconfigured):
            ProviderFactory().create_provider('mystery', ProviderConfig(api_key='k'))
        assert not ProviderFactory().check_availability('mystery', ProviderConfig(api_key='k'))

    def test_registry_from_config(self):
        registry = ProviderRegistry.from_config(Config(), environ={'OPENAI_API_KEY': 'sk-test'})
        provider = registry.get('openai')
        assert isinstance(provider, OpenAIProvider)
        assert provider.config.max_retries == 3
        assert registry.get('anthropic') is None
        assert registry.get('mystery') is None
        assert registry.provider_types() == ['openai']
        assert 'openai' in registry

    def test_registered_instances_win(self):
        registry = ProviderRegistry({'openai': ProviderConfig(api_key='k')})
        stub = object()
        registry.register('openai', stub)
        assert registry.get('openai') is stub
