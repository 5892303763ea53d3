import time
from datetime import timedelta

import jwt
import pytest

from gateway.core.errors import AmbiguousCredentialsError, AuthRequiredError, InvalidTokenError
from gateway.features.identity import service as identity_service
from gateway.features.identity.service import Credentials, IdentityResolver, issue_token
from gateway.models.identity import AuthMode


@pytest.fixture
def resolver(catalog, jwt_secret):
    return IdentityResolver(catalog, free_api_key="free-key", jwt_secret=jwt_secret)


def _token(secret, user_id="user_42", plan=None, **kwargs):
    return issue_token(user_id, plan, secret=secret, algorithm="HS256", **kwargs)


def test_free_key_resolves_to_free_identity(resolver):
    identity = resolver.resolve(Credentials(api_key="free-key"))
    assert identity.id == "anonymous"
    assert identity.mode == AuthMode.FREE
    assert identity.plan == "free"
    assert identity.is_free


def test_unknown_api_key_requires_auth(resolver):
    with pytest.raises(AuthRequiredError):
        resolver.resolve(Credentials(api_key="not-the-key"))


def test_free_key_unset_rejects_every_api_key(catalog, jwt_secret):
    resolver = IdentityResolver(catalog, free_api_key=None, jwt_secret=jwt_secret)
    with pytest.raises(AuthRequiredError):
        resolver.resolve(Credentials(api_key="anything"))


def test_missing_credentials_require_auth(resolver):
    with pytest.raises(AuthRequiredError) as exc:
        resolver.resolve(Credentials())
    assert exc.value.status_code == 401
    assert exc.value.code == "auth_required"


def test_both_credentials_rejected(resolver, jwt_secret):
    creds = Credentials(api_key="free-key", authorization=f"Bearer {_token(jwt_secret)}")
    with pytest.raises(AmbiguousCredentialsError) as exc:
        resolver.resolve(creds)
    assert exc.value.status_code == 400


def test_non_bearer_authorization_requires_auth(resolver):
    with pytest.raises(AuthRequiredError):
        resolver.resolve(Credentials(authorization="Basic dXNlcjpwYXNz"))


def test_bearer_token_with_plan_claim(resolver, jwt_secret):
    token = _token(jwt_secret, plan="enterprise")
    identity = resolver.resolve(Credentials(authorization=f"Bearer {token}"))
    assert identity.id == "user_42"
    assert identity.mode == AuthMode.AUTHENTICATED
    assert identity.plan == "enterprise"


def test_bearer_scheme_is_case_insensitive(resolver, jwt_secret):
    identity = resolver.resolve(Credentials(authorization=f"bearer {_token(jwt_secret, plan='admin')}"))
    assert identity.plan == "admin"


def test_missing_plan_claim_defaults_to_standard(resolver, jwt_secret):
    identity = resolver.resolve(Credentials(authorization=f"Bearer {_token(jwt_secret)}"))
    assert identity.plan == "standard"


def test_plan_lookup_fills_missing_claim(catalog, jwt_secret):
    lookups = []

    def lookup(user_id):
        lookups.append(user_id)
        return "enterprise"

    resolver = IdentityResolver(catalog, jwt_secret=jwt_secret, plan_lookup=lookup)
    identity = resolver.resolve(Credentials(authorization=f"Bearer {_token(jwt_secret, user_id='u7')}"))
    assert identity.plan == "enterprise"
    assert lookups == ["u7"]


def test_plan_claim_wins_over_lookup(catalog, jwt_secret):
    resolver = IdentityResolver(catalog, jwt_secret=jwt_secret, plan_lookup=lambda _: "admin")
    identity = resolver.resolve(Credentials(authorization=f"Bearer {_token(jwt_secret, plan='free')}"))
    assert identity.plan == "free"


def test_unknown_plan_claim_falls_back_to_lowest(resolver, jwt_secret):
    identity = resolver.resolve(Credentials(authorization=f"Bearer {_token(jwt_secret, plan='platinum')}"))
    assert identity.plan == "free"


def test_sub_claim_used_when_user_id_missing(resolver, jwt_secret):
    token = jwt.encode({"sub": "u9", "exp": int(time.time()) + 600}, jwt_secret, algorithm="HS256")
    assert resolver.resolve(Credentials(authorization=f"Bearer {token}")).id == "u9"


def test_token_without_user_is_invalid(resolver, jwt_secret):
    token = jwt.encode({"plan": "admin", "exp": int(time.time()) + 600}, jwt_secret, algorithm="HS256")
    with pytest.raises(InvalidTokenError):
        resolver.resolve(Credentials(authorization=f"Bearer {token}"))


def test_token_without_exp_is_invalid(resolver, jwt_secret):
    token = jwt.encode({"userId": "u1"}, jwt_secret, algorithm="HS256")
    with pytest.raises(InvalidTokenError):
        resolver.resolve(Credentials(authorization=f"Bearer {token}"))


def test_expired_token_is_invalid(resolver, jwt_secret):
    token = _token(jwt_secret, expires_in=timedelta(hours=1), now=time.time() - 7200)
    with pytest.raises(InvalidTokenError) as exc:
        resolver.resolve(Credentials(authorization=f"Bearer {token}"))
    assert "expired" in exc.value.message


def test_wrong_signature_is_invalid(resolver):
    token = _token("another-secret-another-secret-another-secret")
    with pytest.raises(InvalidTokenError):
        resolver.resolve(Credentials(authorization=f"Bearer {token}"))


def test_garbage_token_is_invalid(resolver):
    with pytest.raises(InvalidTokenError) as exc:
        resolver.resolve(Credentials(authorization="Bearer not.a.jwt"))
    assert exc.value.code == "invalid_token"


def test_bearer_without_configured_secret_is_invalid(catalog, jwt_secret):
    resolver = IdentityResolver(catalog, free_api_key="free-key", jwt_secret=None)
    with pytest.raises(InvalidTokenError):
        resolver.resolve(Credentials(authorization=f"Bearer {_token(jwt_secret)}"))


def test_credentials_from_headers():
    creds = Credentials.from_headers({"X-API-Key": "  k  ", "Authorization": ""})
    assert creds.api_key == "k"
    assert creds.authorization is None
    assert creds.bearer_token is None


def test_issue_token_payload(jwt_secret):
    token = _token(jwt_secret, user_id="u5", plan="standard", expires_in=timedelta(minutes=5), now=time.time())
    claims = jwt.decode(token, jwt_secret, algorithms=["HS256"])
    assert claims["userId"] == "u5"
    assert claims["sub"] == "u5"
    assert claims["plan"] == "standard"
    assert claims["exp"] - claims["iat"] == 300


def test_issue_token_requires_secret(monkeypatch):
    monkeypatch.setattr(identity_service.settings, "JWT_SECRET", None)
    with pytest.raises(RuntimeError):
        issue_token("u1")


def test_from_settings_uses_configured_keys(catalog, test_settings):
    resolver = IdentityResolver.from_settings(catalog, test_settings)
    assert resolver.free_api_key == test_settings.FREE_MODE_API_KEY
    assert resolver.jwt_secret == test_settings.JWT_SECRET
    assert resolver.default_plan == "standard"
