import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from scheduler.auth.dependencies import Principal, optional_admin, require_admin, require_checkout_service
from scheduler.auth.jwt_handler import create_access_token, decode_access_token


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_token_round_trip_carries_subject_and_role() -> None:
    payload = decode_access_token(create_access_token('owner@example.com'))

    assert payload['sub'] == 'owner@example.com'
    assert payload['role'] == 'admin'


def test_require_admin_accepts_admin_token() -> None:
    principal = require_admin(bearer(create_access_token('owner@example.com')))

    assert principal == Principal(email='owner@example.com', role='admin')


def test_require_admin_rejects_other_roles() -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_admin(bearer(create_access_token('client@example.com', role='client')))

    assert exception_info.value.status_code == 403


@pytest.mark.parametrize(
    'token',
    ['not-a-jwt', create_access_token('owner@example.com', expires_minutes=-5), create_access_token('')],
)
def test_require_admin_rejects_invalid_tokens(token: str) -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_admin(bearer(token))

    assert exception_info.value.status_code == 401


def test_optional_admin_allows_anonymous_callers() -> None:
    assert optional_admin(None) is None


def test_optional_admin_still_rejects_presented_bad_tokens() -> None:
    with pytest.raises(HTTPException) as invalid:
        optional_admin(bearer('not-a-jwt'))
    with pytest.raises(HTTPException) as forbidden:
        optional_admin(bearer(create_access_token('client@example.com', role='client')))

    assert invalid.value.status_code == 401
    assert forbidden.value.status_code == 403


@pytest.mark.parametrize('role', ['checkout', 'admin'])
def test_checkout_service_accepts_checkout_and_admin_tokens(role: str) -> None:
    principal = require_checkout_service(bearer(create_access_token('shop@example.com', role=role)))

    assert principal == Principal(email='shop@example.com', role=role)


def test_checkout_service_rejects_client_tokens() -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_checkout_service(bearer(create_access_token('client@example.com', role='client')))

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Checkout service access required'


def test_checkout_service_rejects_invalid_tokens() -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_checkout_service(bearer('not-a-jwt'))

    assert exception_info.value.status_code == 401
