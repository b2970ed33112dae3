"""
LLM provider clients for LLM Router.

Each provider wraps one ``httpx.Client`` and exposes the same three calls:
``generate``, ``list_models`` and ``is_available``. Requests time out after
``ProviderConfig.timeout`` seconds and retryable failures (5xx, 429,
timeouts, connection errors) are retried with exponential backoff.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar

import httpx

from .clock import DEFAULT_CLOCK
from .config import Config
from .errors import ProviderError, ProviderTimeout, ProviderUnconfigured

_log = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_TEMPERATURE = 0.7
ANTHROPIC_VERSION = '2023-06-01'
ANTHROPIC_DEFAULT_MAX_TOKENS = 1000


# ── Request / response types ──────────────────────────────────────────────────

@dataclass(frozen=True)
class ProviderConfig:
    """Connection settings for one provider."""
    api_key: str
    base_url: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 3

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("api_key must not be empty")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProviderConfig:
        return cls(
            api_key=data['api_key'],
            base_url=data.get('base_url'),
            timeout=float(data.get('timeout', 30.0)),
            max_retries=int(data.get('max_retries', 3)),
        )


@dataclass
class ProviderRequest:
    """A chat completion request.

    ``messages`` is a list of ``{"role": ..., "content": ...}`` dicts with
    roles ``system``, ``user`` or ``assistant``.
    """
    model: str
    messages: List[Dict[str, str]] = field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stream: bool = False


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class ResponseMetadata:
    model: str
    finish_reason: Optional[str] = None
    latency_ms: Optional[float] = None


@dataclass(frozen=True)
class ProviderResponse:
    """Provider output normalised across back ends."""
    content: str
    usage: Optional[Usage] = None
    metadata: Optional[ResponseMetadata] = None


# ── Base provider ─────────────────────────────────────────────────────────────

class BaseProvider(ABC):
    """Common HTTP plumbing for provider clients.

    Subclasses set ``name``, ``error_code`` and ``default_base_url`` and
    implement the three public calls.
    """

    name = 'provider'
    error_code = 'PROVIDER_ERROR'
    default_base_url = ''

    def __init__(
        self,
        config: ProviderConfig,
        client: httpx.Client = None,
        transport: httpx.BaseTransport = None,
        clock=None,
    ):
        """Initialize the provider.

        Args:
            config: Connection settings.
            client: Pre-built HTTP client. Built from ``config`` when omitted.
            transport: Transport for the built client (tests pass an
                ``httpx.MockTransport``).
            clock: Clock used for backoff sleeps and latency.
        """
        self.config = config
        self.base_url = (config.base_url or self.default_base_url).rstrip('/')
        self.clock = clock if clock is not None else DEFAULT_CLOCK
        if client is None:
            client = httpx.Client(
                timeout=config.timeout,
                transport=transport,
                headers={'Content-Type': 'application/json'},
            )
        self.client = client

    @abstractmethod
    def generate(self, request: ProviderRequest) -> ProviderResponse:
        """Run a chat completion."""

    @abstractmethod
    def list_models(self) -> List[str]:
        """Return the model ids this provider serves."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the provider answers."""

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ── HTTP helpers ──────────────────────────────────────────────────────

    def _headers(self) -> Dict[str, str]:
        return {'Authorization': f'Bearer {self.config.api_key}'}

    def _make_request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Send one HTTP request, mapping transport failures to provider errors.

        Raises:
            ProviderTimeout: If the request exceeded the configured timeout.
            ProviderError: On any other transport failure (retryable).
        """
        url = f'{self.base_url}{path}'
        try:
            return self.client.request(method, url, json=json, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise ProviderTimeout(
                f'{self.name} request timed out after {self.config.timeout}s',
                timeout=self.config.timeout,
                provider=self.name,
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(
                f'{self.name} connection error: {exc}',
                code=self.error_code,
                retryable=True,
                provider=self.name,
            ) from exc

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Raise a ProviderError for non-2xx responses.

        5xx and 429 responses are marked retryable.
        """
        if response.is_success:
            return
        message = None
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            error = data.get('error')
            if isinstance(error, dict):
                message = error.get('message')
        status = response.status_code
        raise ProviderError(
            message or f'{self.name} API error: {status}',
            code=self.error_code,
            status=status,
            retryable=status >= 500 or status == 429,
            provider=self.name,
        )

    def _retry_with_backoff(self, operation: Callable[[], T]) -> T:
        """Run *operation*, retrying retryable provider errors.

        Makes the first attempt plus up to ``max_retries`` retries,
        sleeping ``2 ** attempt`` seconds before each retry. Non-retryable
        errors propagate immediately; after the last retry the last error
        propagates.
        """
        max_retries = self.config.max_retries
        attempt = 0
        while True:
            try:
                return operation()
            except ProviderError as exc:
                if not exc.retryable or attempt >= max_retries:
                    raise
                delay = 2 ** attempt
                _log.warning(
                    "%s call failed (%s), retry %d/%d in %ss",
                    self.name, exc.message, attempt + 1, max_retries, delay,
                )
                self.clock.sleep(delay)
                attempt += 1


# ── OpenAI-compatible back ends ───────────────────────────────────────────────

class OpenAICompatibleProvider(BaseProvider):
    """Provider speaking the OpenAI chat completions API."""

    def _build_payload(self, request: ProviderRequest) -> Dict[str, Any]:
        payload = {
            'model': request.model,
            'messages': request.messages,
            'temperature': request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE,
            'max_tokens': request.max_tokens,
            'top_p': request.top_p,
            'frequency_penalty': request.frequency_penalty,
            'presence_penalty': request.presence_penalty,
            'stream': request.stream,
        }
        return {k: v for k, v in payload.items() if v is not None}

    def _parse_response(self, data: Dict[str, Any], latency_ms: float) -> ProviderResponse:
        choices = data.get('choices') or [{}]
        first = choices[0]
        usage = data.get('usage')
        return ProviderResponse(
            content=(first.get('message') or {}).get('content') or '',
            usage=Usage(
                prompt_tokens=usage.get('prompt_tokens', 0),
                completion_tokens=usage.get('completion_tokens', 0),
                total_tokens=usage.get('total_tokens', 0),
            ) if usage else None,
            metadata=ResponseMetadata(
                model=data.get('model', ''),
                finish_reason=first.get('finish_reason'),
                latency_ms=latency_ms,
            ),
        )

    def generate(self, request: ProviderRequest) -> ProviderResponse:
        def attempt() -> ProviderResponse:
            start = self.clock.monotonic_ms()
            response = self._make_request('POST', '/chat/completions', json=self._build_payload(request))
            self._raise_for_status(response)
            data = response.json()
            return self._parse_response(data, self.clock.monotonic_ms() - start)

        return self._retry_with_backoff(attempt)

    def _fetch_models(self) -> List[str]:
        response = self._make_request('GET', '/models')
        self._raise_for_status(response)
        return [model['id'] for model in response.json().get('data') or []]

    def list_models(self) -> List[str]:
        return self._retry_with_backoff(self._fetch_models)

    def is_available(self) -> bool:
        try:
            self.list_models()
        except ProviderError as exc:
            _log.debug("%s unavailable: %s", self.name, exc)
            return False
        return True


class OpenAIProvider(OpenAICompatibleProvider):
    name = 'OpenAI'
    error_code = 'OPENAI_ERROR'
    default_base_url = 'https://api.openai.com/v1'


class OpenRouterProvider(OpenAICompatibleProvider):
    name = 'OpenRouter'
    error_code = 'OPENROUTER_ERROR'
    default_base_url = 'https://openrouter.ai/api/v1'
    app_title = 'LLM Router'

    def __init__(self, config: ProviderConfig, client=None, transport=None, clock=None,
                 referer: str = None):
        super().__init__(config, client=client, transport=transport, clock=clock)
        self.referer = referer

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers['X-Title'] = self.app_title
        if self.referer:
            headers['HTTP-Referer'] = self.referer
        return headers


class NotDiamondProvider(OpenAICompatibleProvider):
    name = 'NotDiamond'
    error_code = 'NOTDIAMOND_ERROR'
    default_base_url = 'https://api.notdiamond.ai/v1'

    # Served when the models endpoint cannot be reached
    DEFAULT_MODELS = (
        'notdiamond-gpt-4o',
        'notdiamond-gpt-4o-mini',
        'notdiamond-claude-3-5-sonnet',
        'notdiamond-claude-3-haiku',
        'notdiamond-gemini-1.5-pro',
    )

    def list_models(self) -> List[str]:
        try:
            return self._fetch_models()
        except ProviderError as exc:
            _log.info("NotDiamond model listing failed (%s), using default list", exc.message)
            return list(self.DEFAULT_MODELS)

    def is_available(self) -> bool:
        try:
            response = self._make_request('GET', '/health')
        except ProviderError:
            return False
        return response.is_success


# ── Anthropic ─────────────────────────────────────────────────────────────────

class AnthropicProvider(BaseProvider):
    """Anthropic messages API client.

    A system message, if present, is sent in the top-level ``system`` field
    rather than in ``messages``.
    """

    name = 'Anthropic'
    error_code = 'ANTHROPIC_ERROR'
    default_base_url = 'https://api.anthropic.com/v1'

    def _headers(self) -> Dict[str, str]:
        return {
            'x-api-key': self.config.api_key,
            'anthropic-version': ANTHROPIC_VERSION,
        }

    def _build_payload(self, request: ProviderRequest) -> Dict[str, Any]:
        system = None
        messages = []
        for message in request.messages:
            if message.get('role') == 'system':
                if system is None:
                    system = message.get('content')
                continue
            messages.append(message)

        payload = {
            'model': request.model,
            'messages': messages,
            'max_tokens': request.max_tokens if request.max_tokens is not None else ANTHROPIC_DEFAULT_MAX_TOKENS,
            'temperature': request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE,
            'top_p': request.top_p,
            'system': system,
        }
        return {k: v for k, v in payload.items() if v is not None}

    def generate(self, request: ProviderRequest) -> ProviderResponse:
        def attempt() -> ProviderResponse:
            start = self.clock.monotonic_ms()
            response = self._make_request('POST', '/messages', json=self._build_payload(request))
            self._raise_for_status(response)
            data = response.json()
            latency_ms = self.clock.monotonic_ms() - start

            blocks = data.get('content') or [{}]
            usage = data.get('usage')
            return ProviderResponse(
                content=blocks[0].get('text') or '',
                usage=Usage(
                    prompt_tokens=usage.get('input_tokens', 0),
                    completion_tokens=usage.get('output_tokens', 0),
                    total_tokens=usage.get('input_tokens', 0) + usage.get('output_tokens', 0),
                ) if usage else None,
                metadata=ResponseMetadata(
                    model=data.get('model', ''),
                    finish_reason=data.get('stop_reason'),
                    latency_ms=latency_ms,
                ),
            )

        return self._retry_with_backoff(attempt)

    def list_models(self) -> List[str]:
        def fetch() -> List[str]:
            response = self._make_request('GET', '/models')
            self._raise_for_status(response)
            return [model['id'] for model in response.json().get('data') or []]

        return self._retry_with_backoff(fetch)

    def is_available(self) -> bool:
        try:
            self.list_models()
        except ProviderError as exc:
            _log.debug("Anthropic unavailable: %s", exc)
            return False
        return True


# ── Factory and registry ──────────────────────────────────────────────────────

PROVIDER_TYPES = {
    'openai': OpenAIProvider,
    'anthropic': AnthropicProvider,
    'openrouter': OpenRouterProvider,
    'notdiamond': NotDiamondProvider,
}


class ProviderFactory:
    """Builds provider clients, reusing one instance per (type, config)."""

    def __init__(self, transport: httpx.BaseTransport = None, clock=None):
        self.transport = transport
        self.clock = clock
        self._providers: Dict[Tuple[str, ProviderConfig], BaseProvider] = {}
        self._lock = threading.Lock()

    def create_provider(self, provider_type: str, config: ProviderConfig) -> BaseProvider:
        """Return the provider for *provider_type* and *config*.

        Raises:
            ProviderUnconfigured: If the provider type is unknown.
        """
        provider_type = provider_type.lower()
        provider_cls = PROVIDER_TYPES.get(provider_type)
        if provider_cls is None:
            raise ProviderUnconfigured(
                f"Unknown provider type: {provider_type}", provider=provider_type
            )
        key = (provider_type, config)
        with self._lock:
            provider = self._providers.get(key)
            if provider is None:
                provider = provider_cls(config, transport=self.transport, clock=self.clock)
                self._providers[key] = provider
            return provider

    def check_availability(self, provider_type: str, config: ProviderConfig) -> bool:
        try:
            provider = self.create_provider(provider_type, config)
        except ProviderUnconfigured:
            return False
        return provider.is_available()

    def close(self) -> None:
        with self._lock:
            providers = list(self._providers.values())
            self._providers.clear()
        for provider in providers:
            provider.close()


class ProviderRegistry:
    """Resolves provider types to provider clients.

    Explicitly registered instances win over configured ones. Unknown or
    unconfigured types resolve to None.
    """

    def __init__(
        self,
        configs: Mapping[str, ProviderConfig] = None,
        factory: ProviderFactory = None,
    ):
        self._configs: Dict[str, ProviderConfig] = {
            k.lower(): v for k, v in (configs or {}).items()
        }
        self._instances: Dict[str, BaseProvider] = {}
        self.factory = factory if factory is not None else ProviderFactory()

    @classmethod
    def from_config(
        cls,
        config: Config,
        environ: Optional[Mapping[str, str]] = None,
        factory: ProviderFactory = None,
    ) -> ProviderRegistry:
        """Build a registry from the config file and environment variables.

        Providers without their own ``max_retries`` inherit the one from
        the ``failover`` section.
        """
        default_retries = config.get_failover_settings()['max_retries']
        configs = {}
        for provider_type, settings in config.get_provider_configs(environ).items():
            settings.setdefault('max_retries', default_retries)
            configs[provider_type] = ProviderConfig.from_dict(settings)
        _log.info("Configured providers: %s", ', '.join(sorted(configs)) or '<none>')
        return cls(configs, factory)

    def configure(self, provider_type: str, config: ProviderConfig) -> None:
        self._configs[provider_type.lower()] = config

    def register(self, provider_type: str, provider) -> None:
        """Register a ready-made provider (anything with ``generate``)."""
        self._instances[provider_type.lower()] = provider

    def get(self, provider_type: str) -> Optional[BaseProvider]:
        key = provider_type.lower()
        provider = self._instances.get(key)
        if provider is not None:
            return provider
        config = self._configs.get(key)
        if config is None or key not in PROVIDER_TYPES:
            return None
        return self.factory.create_provider(key, config)

    def provider_types(self) -> List[str]:
        """Sorted provider types that currently resolve."""
        return sorted(set(self._instances) | {k for k in self._configs if k in PROVIDER_TYPES})

    def __contains__(self, provider_type: str) -> bool:
        return self.get(provider_type) is not None
