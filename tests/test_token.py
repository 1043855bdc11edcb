import asyncio
from datetime import datetime, timedelta, timezone

from core.rest_api import TokenInfo
from core.token import EPOCH, Token, expiry_from_milliseconds
from fakes import SETTINGS, TOKEN_URL, make_transport

EXPIRES_MS = 1_700_000_000_000


def test_expiry_is_relative_to_unix_epoch():
    assert EPOCH == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert expiry_from_milliseconds(EXPIRES_MS) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def test_fixed_token_never_renews():
    token = Token.fixed('abc')

    assert token.value == 'abc'
    assert not token.needs_renewal
    assert str(token) == 'abc'


def test_generated_lazily_and_renewed_inside_margin():
    calls = []
    now = [expiry_from_milliseconds(EXPIRES_MS) - timedelta(minutes=10)]

    def generate():
        calls.append(1)
        return TokenInfo(f'token-{len(calls)}', EXPIRES_MS + len(calls) * 3_600_000)

    token = Token(generator=generate, now=lambda: now[0])
    assert calls == []

    assert token.value == 'token-1'
    assert token.value == 'token-1'
    assert len(calls) == 1

    # 40 seconds before expiry: still valid
    now[0] = token.expiry - timedelta(seconds=40)
    assert token.value == 'token-1'

    # 20 seconds before expiry: renewed
    now[0] = token.expiry - timedelta(seconds=20)
    assert token.value == 'token-2'
    assert len(calls) == 2


def test_from_credentials_posts_to_token_url():
    def handler(method, url, payload):
        return {'token': 'generated', 'expires': EXPIRES_MS}

    transport, session, _ = make_transport(handler)
    token = Token.from_credentials(TOKEN_URL, 'user', 'p@ss', expiration=30, transport=transport, settings=SETTINGS)
    token.now = lambda: expiry_from_milliseconds(EXPIRES_MS) - timedelta(hours=1)

    assert token.value == 'generated'
    method, url, payload = session.calls[0]
    assert (method, url) == ('POST', TOKEN_URL)
    assert payload == {
        'username': 'user',
        'password': 'p@ss',
        'clientid': 'requestip',
        'expiration': '30',
        'f': 'json',
    }


def test_async_renewal_uses_async_generator():
    async def generate_async():
        return TokenInfo('async-token', EXPIRES_MS)

    token = Token(async_generator=generate_async,
                  now=lambda: expiry_from_milliseconds(EXPIRES_MS) - timedelta(hours=1))

    assert asyncio.run(token.get_value_async()) == 'async-token'
    assert token.expiry == expiry_from_milliseconds(EXPIRES_MS)
