import pytest
from fastapi import HTTPException
from starlette.requests import Request

from scheduler.core.errors import RateLimitedError
from scheduler.services.rate_limit import RateLimiter, enforce_rate_limit, get_client_ip, rate_limited


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def build_request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ('10.0.0.9', 5000)) -> Request:
    scope = {
        'type': 'http',
        'method': 'POST',
        'path': '/appointments',
        'headers': [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()],
        'client': client,
    }
    return Request(scope)


def test_limiter_allows_up_to_max_requests_per_window() -> None:
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=60, max_requests=3, clock=clock)

    results = [limiter.check('1.2.3.4') for _ in range(4)]

    assert [result.allowed for result in results] == [True, True, True, False]
    assert [result.remaining for result in results] == [2, 1, 0, 0]
    assert results[-1].reset_at == 1060.0


def test_limiter_opens_a_new_window_after_reset_time() -> None:
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=60, max_requests=1, clock=clock)
    assert limiter.check('ip').allowed is True
    assert limiter.check('ip').allowed is False

    clock.now += 60

    result = limiter.check('ip')
    assert result.allowed is True
    assert result.reset_at == 1120.0


def test_limiter_counts_identifiers_separately() -> None:
    limiter = RateLimiter(window_seconds=60, max_requests=1, clock=FakeClock())

    assert limiter.check('first').allowed is True
    assert limiter.check('second').allowed is True
    assert limiter.check('first').allowed is False


def test_limiter_reset_clears_counts() -> None:
    limiter = RateLimiter(window_seconds=60, max_requests=1, clock=FakeClock())
    limiter.check('first')
    limiter.check('second')

    limiter.reset('first')
    assert limiter.check('first').allowed is True
    assert limiter.check('second').allowed is False

    limiter.reset()
    assert limiter.check('second').allowed is True


def test_enforce_rate_limit_raises_with_reset_time() -> None:
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=30, max_requests=1, clock=clock)
    enforce_rate_limit(limiter, 'appointments:create', '1.2.3.4')

    with pytest.raises(RateLimitedError) as exception_info:
        enforce_rate_limit(limiter, 'appointments:create', '1.2.3.4')

    assert exception_info.value.remaining == 0
    assert exception_info.value.reset_at == 1030.0
    assert exception_info.value.retry_after_seconds(now=1010.0) == 20


@pytest.mark.parametrize(
    ('headers', 'client', 'expected'),
    [
        ({'X-Forwarded-For': '203.0.113.5, 10.0.0.1'}, ('10.0.0.9', 5000), '203.0.113.5'),
        ({'X-Real-IP': ' 198.51.100.7 '}, ('10.0.0.9', 5000), '198.51.100.7'),
        ({}, ('10.0.0.9', 5000), '10.0.0.9'),
        ({}, None, 'unknown'),
    ],
)
def test_get_client_ip_prefers_proxy_headers(headers, client, expected: str) -> None:
    assert get_client_ip(build_request(headers, client)) == expected


def test_rate_limited_dependency_returns_429_with_retry_after() -> None:
    limiter = RateLimiter(window_seconds=60, max_requests=2)
    dependency = rate_limited('appointments:create', limiter)
    request = build_request({'X-Forwarded-For': '203.0.113.5'})

    dependency(request)
    dependency(request)
    with pytest.raises(HTTPException) as exception_info:
        dependency(request)

    assert exception_info.value.status_code == 429
    assert exception_info.value.detail['error'] == 'Too many requests. Please try again later.'
    assert exception_info.value.detail['remaining'] == 0
    assert 0 < exception_info.value.detail['retryAfterSeconds'] <= 60
    assert exception_info.value.headers['Retry-After'] == str(exception_info.value.detail['retryAfterSeconds'])


def test_rate_limited_dependency_scopes_limits_per_route() -> None:
    limiter = RateLimiter(window_seconds=60, max_requests=1)
    request = build_request()

    rate_limited('appointments:create', limiter)(request)
    rate_limited('appointments:update', limiter)(request)

    with pytest.raises(HTTPException):
        rate_limited('appointments:create', limiter)(request)


def test_expired_windows_are_swept_once_per_window() -> None:
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=60, max_requests=5, clock=clock)
    limiter.check('first')
    limiter.check('second')

    clock.now += 30
    limiter.check('third')
    assert len(limiter._windows) == 3

    clock.now += 31
    limiter.check('fourth')
    assert set(limiter._windows) == {'rl:third', 'rl:fourth'}

    clock.now += 5
    assert limiter.check('first').remaining == 4
    assert len(limiter._windows) == 3
