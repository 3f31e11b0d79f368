"""Tests for tenantloop.tenancy.resolver"""

import jwt
import pytest

from tenantloop.errors import MalformedTenant, Unauthenticated
from tenantloop.models import InboundRequest
from tenantloop.tenancy.resolver import ResolverConfig, TenantResolver, normalize_tenant_id

SECRET = "test-secret-0123456789abcdef0123456789"
TENANT_A = "11111111-1111-1111-1111-111111111111"
TENANT_B = "22222222-2222-2222-2222-222222222222"


def _request(**kwargs):
    kwargs.setdefault("text", "hi")
    kwargs.setdefault("external_chat_id", "chat-1")
    kwargs.setdefault("external_user_id", "user-1")
    return InboundRequest(**kwargs)


def _token(claims, secret=SECRET):
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def resolver():
    return TenantResolver(ResolverConfig(jwt_secret=SECRET))


class TestNormalizeTenantId:

    def test_lowercases(self):
        assert normalize_tenant_id(TENANT_A.upper()) == TENANT_A

    @pytest.mark.parametrize("value", ["", "   ", "acme-corp", 42, None])
    def test_malformed(self, value):
        with pytest.raises(MalformedTenant):
            normalize_tenant_id(value)


class TestResolve:
    """Tests for tenant resolution precedence"""

    def test_token_claim(self, resolver):
        request = _request(identity_token=_token({"tenant_id": TENANT_A}))
        assert resolver.resolve(request) == TENANT_A

    def test_token_takes_precedence_over_context(self, resolver):
        request = _request(
            identity_token=_token({"tenant_id": TENANT_A}),
            tenant_context=TENANT_B,
        )
        assert resolver.resolve(request) == TENANT_A

    def test_context_used_without_token(self, resolver):
        assert resolver.resolve(_request(tenant_context=TENANT_B)) == TENANT_B

    def test_token_without_claim_falls_to_context(self, resolver):
        request = _request(identity_token=_token({"sub": "u1"}), tenant_context=TENANT_B)
        assert resolver.resolve(request) == TENANT_B

    def test_bad_signature_does_not_fall_back(self, resolver):
        request = _request(
            identity_token=_token({"tenant_id": TENANT_A}, secret="another-secret-0123456789abcdef"),
            tenant_context=TENANT_B,
        )
        with pytest.raises(Unauthenticated):
            resolver.resolve(request)

    def test_no_source_is_unauthenticated(self, resolver):
        with pytest.raises(Unauthenticated):
            resolver.resolve(_request())

    def test_prior_requests_do_not_leak(self, resolver):
        """Each call reads only its own request"""
        assert resolver.resolve(_request(tenant_context=TENANT_B)) == TENANT_B

        request = _request(identity_token=_token({"tenant_id": TENANT_A}))
        assert resolver.resolve(request) == TENANT_A
        assert resolver.resolve(request) == TENANT_A

        with pytest.raises(Unauthenticated):
            resolver.resolve(_request())

    def test_malformed_context(self, resolver):
        with pytest.raises(MalformedTenant):
            resolver.resolve(_request(tenant_context="not-a-uuid"))

    def test_malformed_claim(self, resolver):
        request = _request(identity_token=_token({"tenant_id": "acme"}))
        with pytest.raises(MalformedTenant):
            resolver.resolve(request)

    def test_tokens_refused_without_secret(self):
        resolver = TenantResolver()
        request = _request(identity_token=_token({"tenant_id": TENANT_A}))
        with pytest.raises(Unauthenticated):
            resolver.resolve(request)

    def test_custom_claim_name(self):
        resolver = TenantResolver(ResolverConfig(jwt_secret=SECRET, tenant_claim="org"))
        request = _request(identity_token=_token({"org": TENANT_B}))
        assert resolver.resolve(request) == TENANT_B

    def test_resolve_token_principal(self, resolver):
        token = _token({"tenant_id": TENANT_A.upper(), "sub": "user-1"})
        assert resolver.resolve_token_principal(token) == (TENANT_A, "user-1")

    def test_resolve_token_principal_requires_claim(self, resolver):
        with pytest.raises(Unauthenticated):
            resolver.resolve_token_principal(_token({"sub": "u1"}))

    def test_resolve_token_principal_requires_subject(self, resolver):
        with pytest.raises(Unauthenticated):
            resolver.resolve_token_principal(_token({"tenant_id": TENANT_A}))


class TestResolverConfig:

    def test_from_dict_splits_algorithm_string(self):
        config = ResolverConfig.from_dict({"jwt_secret": "s", "jwt_algorithms": "HS256, RS256"})
        assert config.jwt_algorithms == ["HS256", "RS256"]

    def test_from_none(self):
        config = ResolverConfig.from_dict(None)
        assert config.jwt_secret is None
        assert config.tenant_claim == "tenant_id"
