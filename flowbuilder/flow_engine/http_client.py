"""
HTTP client collaborator for HttpRequest nodes.

Wraps httpx.AsyncClient. Cancelling the awaiting task aborts the request
in flight.
"""

import base64
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urljoin

import httpx

from flowbuilder.flow_engine.errors import NetworkError

logger = logging.getLogger(__name__)


@dataclass
class HttpResponse:
    """Response handed back to the HttpRequest executor."""
    status: int
    headers: Dict[str, str]
    body: str
    elapsed_ms: int = 0


@dataclass
class ConnectorSettings:
    """
    Named API connection: base URL, default headers and credentials.

    auth_type:
        none    no credentials
        basic   auth_config {username, password}
        bearer  auth_config {token}
        oauth2  auth_config {accessToken}
        apiKey  auth_config {headerName (default X-API-Key), apiKey}
    """
    name: str
    base_url: str = ''
    auth_type: str = 'none'
    auth_config: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ConnectorSettings':
        return cls(
            name=data.get('name', ''),
            base_url=data.get('baseUrl') or data.get('base_url') or '',
            auth_type=data.get('authType') or data.get('auth_type') or 'none',
            auth_config=dict(data.get('authConfig') or data.get('auth_config') or {}),
            headers=dict(data.get('headers') or {}),
        )

    def build_url(self, url: str) -> str:
        """Join relative node URLs onto the connector's base URL."""
        if not self.base_url or url.startswith(('http://', 'https://')):
            return url
        return urljoin(self.base_url.rstrip('/') + '/', url.lstrip('/'))

    def auth_headers(self) -> Dict[str, str]:
        config = self.auth_config
        if self.auth_type == 'basic':
            credentials = f"{config.get('username', '')}:{config.get('password', '')}"
            return {'Authorization': 'Basic ' + base64.b64encode(credentials.encode()).decode()}
        if self.auth_type == 'bearer' and config.get('token'):
            return {'Authorization': f"Bearer {config['token']}"}
        if self.auth_type == 'oauth2' and config.get('accessToken'):
            return {'Authorization': f"Bearer {config['accessToken']}"}
        if self.auth_type == 'apiKey' and config.get('apiKey'):
            return {config.get('headerName') or 'X-API-Key': config['apiKey']}
        return {}

    def apply(self, url: str, headers: Dict[str, str]) -> Tuple[str, Dict[str, str]]:
        """
        Merge connector defaults into a request.

        Node headers win over connector headers; credentials are only added
        when the node did not set Authorization itself.
        """
        merged = dict(self.headers)
        merged.update(headers)
        for key, value in self.auth_headers().items():
            if not any(existing.lower() == key.lower() for existing in merged):
                merged[key] = value
        return self.build_url(url), merged


class StaticConnectorProvider:
    """Connector lookup backed by a plain mapping."""

    def __init__(self, connectors: Optional[Mapping[str, Any]] = None):
        self._connectors: Dict[str, ConnectorSettings] = {}
        for name, value in (connectors or {}).items():
            if isinstance(value, ConnectorSettings):
                self._connectors[name] = value
            else:
                settings = ConnectorSettings.from_dict(value)
                settings.name = settings.name or name
                self._connectors[name] = settings

    def get(self, name: str) -> Optional[ConnectorSettings]:
        return self._connectors.get(name)


class HttpClient:
    """
    Sends requests for HttpRequest nodes.

    Pass an ``httpx.AsyncClient`` to share a connection pool (or a mock
    transport in tests); otherwise a client is opened per request.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self.client = client
        self.timeout = timeout

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """
        Send one request.

        Args:
            method: HTTP method
            url: Absolute URL
            headers: Request headers
            body: dict/list sent as JSON, anything else as text
            params: Query string parameters
            timeout: Seconds; defaults to the client timeout

        Returns:
            HttpResponse with the status, headers and text body

        Raises:
            NetworkError: On connection failures, timeouts and invalid URLs
        """
        kwargs: Dict[str, Any] = {
            'headers': headers or {},
            'params': params or None,
            'timeout': timeout or self.timeout,
        }
        if isinstance(body, (dict, list)):
            kwargs['json'] = body
        elif body is not None and body != '':
            kwargs['content'] = body if isinstance(body, bytes) else str(body).encode()

        started = time.monotonic()
        try:
            if self.client is not None:
                response = await self.client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request to {url} timed out") from e
        except httpx.RequestError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e
        except httpx.InvalidURL as e:
            raise NetworkError(f"Invalid URL {url!r}: {e}") from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.debug(f"{method} {url} -> {response.status_code} ({elapsed_ms} ms)")

        return HttpResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.text,
            elapsed_ms=elapsed_ms,
        )
