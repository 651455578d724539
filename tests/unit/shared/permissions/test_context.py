"""
Tests for organization context extraction in orgguard/shared/permissions/context.py
"""

from unittest.mock import Mock

import pytest

from orgguard.shared.exceptions import PolicyResolutionError
from orgguard.shared.permissions.context import (
    RequestContext,
    cache_organization_context,
    get_request_context,
    resolve_organization_id,
)
from orgguard.shared.permissions.models import OrganizationRole
from orgguard.shared.permissions.types import AuthenticatedSession, Principal, Session
from tests.utils.permission_testing import StubPrincipalResolver, make_context


class TestResolveOrganizationId:
    def test_returns_none_without_any_source(self, user_principal: Principal):
        assert resolve_organization_id(make_context(user_principal)) is None

    def test_path_parameter(self, user_principal: Principal):
        context = make_context(user_principal, path_params={"organization_id": "o1"})
        assert resolve_organization_id(context) == "o1"

    def test_query_parameter(self, user_principal: Principal):
        context = make_context(user_principal, query_params={"orgId": "o2"})
        assert resolve_organization_id(context) == "o2"

    def test_cached_value_wins_over_path_and_query(self, user_principal: Principal):
        context = make_context(
            user_principal,
            path_params={"organization_id": "path"},
            query_params={"organization_id": "query"},
        )
        context.organization_id = "cached"
        assert resolve_organization_id(context) == "cached"

    def test_path_wins_over_query(self, user_principal: Principal):
        context = make_context(
            user_principal,
            path_params={"organization_id": "path"},
            query_params={"organization_id": "query"},
        )
        assert resolve_organization_id(context) == "path"

    def test_empty_values_are_skipped(self, user_principal: Principal):
        context = make_context(
            user_principal,
            path_params={"organization_id": ""},
            query_params={"organization_id": "query"},
        )
        assert resolve_organization_id(context) == "query"

    def test_custom_parameter_names(self, user_principal: Principal):
        context = make_context(user_principal, path_params={"tenant": "t1"})
        assert resolve_organization_id(context) is None
        assert resolve_organization_id(context, param_names=["tenant"]) == "t1"

    def test_session_hint_is_opt_in(self, user_principal: Principal):
        context = make_context(user_principal, active_organization_id="active")
        assert resolve_organization_id(context) is None
        assert resolve_organization_id(context, use_session_hint=True) == "active"

    def test_session_hint_is_last_resort(self, user_principal: Principal):
        context = make_context(
            user_principal,
            query_params={"organization_id": "query"},
            active_organization_id="active",
        )
        assert resolve_organization_id(context, use_session_hint=True) == "query"


class TestCacheOrganizationContext:
    def test_writes_both_values(self):
        context = RequestContext()
        cache_organization_context(context, "o1", OrganizationRole.admin)
        assert context.organization_id == "o1"
        assert context.organization_role == OrganizationRole.admin

    def test_keeps_role_when_none_given(self):
        context = RequestContext(organization_role=OrganizationRole.member)
        cache_organization_context(context, "o1")
        assert context.organization_role == OrganizationRole.member


class TestGetRequestContext:
    @pytest.fixture
    def request_mock(self) -> Mock:
        request = Mock()
        request.headers = {"authorization": "Bearer token"}
        request.path_params = {"organization_id": "o1"}
        request.query_params = {"page": "2"}
        return request

    @pytest.mark.asyncio
    async def test_attaches_principal_and_session(
        self, request_mock: Mock, user_principal: Principal
    ):
        session = Session(id="s1", user_id=user_principal.id)
        resolver = StubPrincipalResolver(
            AuthenticatedSession(principal=user_principal, session=session)
        )

        context = await get_request_context(request_mock, resolver)

        assert context.principal == user_principal
        assert context.session == session
        assert context.path_params == {"organization_id": "o1"}
        assert context.query_params == {"page": "2"}
        assert context.organization_id is None

    @pytest.mark.asyncio
    async def test_anonymous_request(self, request_mock: Mock):
        context = await get_request_context(request_mock, StubPrincipalResolver())
        assert context.principal is None
        assert context.session is None

    @pytest.mark.asyncio
    async def test_resolver_failure_is_policy_resolution_error(
        self, request_mock: Mock
    ):
        resolver = StubPrincipalResolver(error=RuntimeError("auth service down"))
        with pytest.raises(PolicyResolutionError) as exc_info:
            await get_request_context(request_mock, resolver)
        assert exc_info.value.status_code == 503
