"""
Access token lifecycle.

A Token is either a fixed string that never expires, or is generated from a
username and password at a token endpoint and renewed lazily: reading the
value when fewer than 30 seconds of validity remain generates a new one first.

Renewal is a check-then-write without locking. Concurrent callers near expiry
may each renew, which only costs an extra request.
"""

from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Optional

from config.config_loader import load_client_settings
from core import rest_api
from core.rest_api import TokenInfo
from utils.logger import get_logger

logger = get_logger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

DEFAULT_RENEWAL_MARGIN = timedelta(seconds=30)


def expiry_from_milliseconds(expires: int) -> datetime:
    """Server 'expires' value (milliseconds since the epoch) as an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=expires)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Token:
    """
    Credential attached to every request made by a Layer.

    Parameters:
    -----------
    value : Optional[str]
        Current token string
    expiry : Optional[datetime]
        Aware UTC expiry; None means the token never expires
    generator : Optional[Callable[[], TokenInfo]]
        Produces a fresh token (synchronous path)
    async_generator : Optional[Callable[[], Awaitable[TokenInfo]]]
        Produces a fresh token (asynchronous path)
    renewal_margin : timedelta
        Renew when less validity than this remains
    now : Callable[[], datetime]
        Clock, injectable for tests
    """

    def __init__(
        self,
        value: Optional[str] = None,
        expiry: Optional[datetime] = None,
        generator: Optional[Callable[[], TokenInfo]] = None,
        async_generator: Optional[Callable[[], Awaitable[TokenInfo]]] = None,
        renewal_margin: timedelta = DEFAULT_RENEWAL_MARGIN,
        now: Callable[[], datetime] = _utc_now
    ):
        self._value = value
        self.expiry = expiry
        self.generator = generator
        self.async_generator = async_generator
        self.renewal_margin = renewal_margin
        self.now = now

    @classmethod
    def fixed(cls, value: str) -> 'Token':
        return cls(value)

    @classmethod
    def from_credentials(
        cls,
        token_url: str,
        username: str,
        password: str,
        expiration: int = 60,
        transport=None,
        async_transport=None,
        settings: Optional[Dict] = None
    ) -> 'Token':
        """
        Token generated from a username and password, on first use.

        Parameters:
        -----------
        token_url : str
            generateToken endpoint
        username, password : str
            Credentials
        expiration : int
            Requested validity in minutes (default: 60)
        transport : Optional[Transport]
            Transport for synchronous renewal (process default if omitted)
        async_transport : Optional[AsyncTransport]
            Transport for asynchronous renewal (a short-lived one if omitted)
        settings : Optional[Dict]
            Client settings; supplies the renewal margin
        """
        from core.transport import AsyncTransport, get_default_transport

        settings = settings if settings is not None else load_client_settings()
        margin = timedelta(seconds=settings['authentication']['renewal_margin_seconds'])

        def generate() -> TokenInfo:
            return rest_api.generate_token(transport or get_default_transport(),
                                           token_url, username, password, expiration)

        async def generate_async() -> TokenInfo:
            if async_transport is not None:
                return await rest_api.generate_token_async(async_transport, token_url, username, password, expiration)
            async with AsyncTransport(settings) as t:
                return await rest_api.generate_token_async(t, token_url, username, password, expiration)

        return cls(generator=generate, async_generator=generate_async, renewal_margin=margin)

    @property
    def needs_renewal(self) -> bool:
        if self.generator is None and self.async_generator is None:
            return False
        if self._value is None or self.expiry is None:
            return True
        return self.expiry - self.now() < self.renewal_margin

    @property
    def value(self) -> Optional[str]:
        """Token string, renewed first if it is about to expire."""
        if self.needs_renewal and self.generator is not None:
            self._apply(self.generator())
        return self._value

    async def get_value_async(self) -> Optional[str]:
        if self.needs_renewal:
            if self.async_generator is not None:
                self._apply(await self.async_generator())
            elif self.generator is not None:
                self._apply(self.generator())
        return self._value

    def _apply(self, info: TokenInfo):
        self._value = info.token
        self.expiry = expiry_from_milliseconds(info.expires)
        logger.info(f"Token renewed, valid until {self.expiry.isoformat()}")

    def __str__(self) -> str:
        return self.value or ''

    def __repr__(self) -> str:
        return f"Token(expiry={self.expiry!r})"
