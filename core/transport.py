"""
HTTP transport for FeatureServer requests.

This module executes GET and POST requests against FeatureServer endpoints,
validates the JSON response envelope, and retries the read path with
exponential backoff. A single requests.Session is shared per Transport so
connections (and gzip negotiation) are reused across calls.

Retry policy:
- GET, and POST calls flagged idempotent (read-only queries posted to avoid
  URI length limits), retry on any exception raised while requesting or
  decoding, waiting 1, 2, 4 and 8 seconds between attempts by default.
- Other POST calls (edits, token generation) are attempted once.
- A top-level 'error' object in the envelope raises RemoteError and is never
  retried.

Classes:
    Transport: Synchronous transport over requests
    AsyncTransport: Asynchronous transport over httpx

Functions:
    parse_envelope: Validate a decoded response and convert it
    get_default_transport: Process-wide shared Transport
"""

import asyncio
import time
from typing import Any, Callable, Dict, Optional

import httpx
import requests

from config.config_loader import load_client_settings
from core.exceptions import RemoteError, TransportError
from utils.logger import get_logger

logger = get_logger(__name__)

EnvelopeType = Optional[Callable[[Dict], Any]]


def parse_envelope(data: Any, url: str, envelope_type: EnvelopeType = None) -> Any:
    """
    Validate a decoded JSON response and convert it to the expected envelope.

    Parameters:
    -----------
    data : Any
        Decoded JSON body
    url : str
        Request URL, reported in errors
    envelope_type : Optional[Callable[[Dict], Any]]
        Converter such as FeatureSet.from_dict (raw dict returned if None)

    Returns:
    --------
    Any
        Converted envelope

    Raises:
    -------
    RemoteError
        If the envelope carries a top-level error
    ValueError
        If the body is not a JSON object
    """
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

    error = data.get('error')
    if error:
        message = error.get('message') or error.get('description') or 'Unknown error'
        logger.debug(f"Service error from {url}: {error}")
        raise RemoteError(message, url, error.get('code'), error.get('details'))

    return envelope_type(data) if envelope_type is not None else data


class _RetryPolicy:
    """Retry settings shared by the sync and async transports."""

    def __init__(self, settings: Optional[Dict] = None):
        settings = settings if settings is not None else load_client_settings()
        transport = settings['transport']
        self.timeout = transport['timeout_seconds']
        self.max_retry_attempts = transport['max_retry_attempts']
        self.retry_base_delay = transport['retry_base_delay_seconds']
        self.headers = {
            'Accept-Encoding': 'gzip, deflate',
            'User-Agent': transport.get('user_agent', 'featurestream')
        }

    def delay(self, attempt: int) -> float:
        return self.retry_base_delay * (2 ** attempt)

    def retries(self, method: str, idempotent: bool) -> int:
        return self.max_retry_attempts if method == 'GET' or idempotent else 0


class Transport(_RetryPolicy):
    """
    Synchronous FeatureServer transport.

    Parameters:
    -----------
    settings : Optional[Dict]
        Client settings (see config.config_loader.load_client_settings)
    session : Optional[requests.Session]
        Session to use; a new one with gzip negotiation is created if omitted
    sleep : Callable[[float], None]
        Delay function used between retries
    """

    def __init__(
        self,
        settings: Optional[Dict] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        super().__init__(settings)
        if session is None:
            session = requests.Session()
            session.headers.update(self.headers)
        self.session = session
        self.sleep = sleep

    def get(self, url: str, params: Optional[Dict] = None, envelope_type: EnvelopeType = None) -> Any:
        return self._execute('GET', url, params or {}, envelope_type, self.retries('GET', False))

    def post(
        self,
        url: str,
        data: Optional[Dict] = None,
        envelope_type: EnvelopeType = None,
        idempotent: bool = False
    ) -> Any:
        return self._execute('POST', url, data or {}, envelope_type, self.retries('POST', idempotent))

    def _execute(self, method: str, url: str, payload: Dict, envelope_type: EnvelopeType, retries: int) -> Any:
        attempt = 0

        while True:
            try:
                logger.debug(f"{method} {url} (attempt {attempt + 1})")

                if method == 'GET':
                    response = self.session.get(url, params=payload, timeout=self.timeout)
                else:
                    response = self.session.post(url, data=payload, timeout=self.timeout)

                response.raise_for_status()
                return parse_envelope(response.json(), url, envelope_type)

            except RemoteError:
                raise

            except Exception as e:
                if attempt >= retries:
                    logger.error(f"{method} {url} failed after {attempt + 1} attempt(s): {e}")
                    raise TransportError(f"{method} request failed: {e}", url, e) from e

                delay = self.delay(attempt)
                logger.warning(f"{method} {url} failed ({e}), retrying in {delay:g}s")
                self.sleep(delay)
                attempt += 1

    def close(self):
        self.session.close()


class AsyncTransport(_RetryPolicy):
    """
    Asynchronous FeatureServer transport over httpx.AsyncClient.

    Same retry and envelope contract as Transport. Use as an async context
    manager, or call aclose() when done.
    """

    def __init__(
        self,
        settings: Optional[Dict] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Any] = asyncio.sleep
    ):
        super().__init__(settings)
        if client is None:
            client = httpx.AsyncClient(headers=self.headers, timeout=self.timeout)
        self.client = client
        self.sleep = sleep

    async def get(self, url: str, params: Optional[Dict] = None, envelope_type: EnvelopeType = None) -> Any:
        return await self._execute('GET', url, params or {}, envelope_type, self.retries('GET', False))

    async def post(
        self,
        url: str,
        data: Optional[Dict] = None,
        envelope_type: EnvelopeType = None,
        idempotent: bool = False
    ) -> Any:
        return await self._execute('POST', url, data or {}, envelope_type, self.retries('POST', idempotent))

    async def _execute(self, method: str, url: str, payload: Dict, envelope_type: EnvelopeType, retries: int) -> Any:
        attempt = 0

        while True:
            try:
                logger.debug(f"{method} {url} (attempt {attempt + 1})")

                if method == 'GET':
                    response = await self.client.get(url, params=payload)
                else:
                    response = await self.client.post(url, data=payload)

                response.raise_for_status()
                return parse_envelope(response.json(), url, envelope_type)

            except RemoteError:
                raise

            except Exception as e:
                if attempt >= retries:
                    logger.error(f"{method} {url} failed after {attempt + 1} attempt(s): {e}")
                    raise TransportError(f"{method} request failed: {e}", url, e) from e

                delay = self.delay(attempt)
                logger.warning(f"{method} {url} failed ({e}), retrying in {delay:g}s")
                await self.sleep(delay)
                attempt += 1

    async def aclose(self):
        await self.client.aclose()

    async def __aenter__(self) -> 'AsyncTransport':
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


_default_transport: Optional[Transport] = None


def get_default_transport() -> Transport:
    """Return the process-wide Transport, creating it on first use."""
    global _default_transport
    if _default_transport is None:
        _default_transport = Transport()
    return _default_transport


def set_default_transport(transport: Optional[Transport]):
    """Replace the process-wide Transport (None resets to lazy creation)."""
    global _default_transport
    _default_transport = transport
