"""Tests for the bearer token bootstrap."""

import pytest

from docs_harness import BootstrapError, CredentialFixtures, create_auth_server


@pytest.mark.integration
class TestCreateAuthServer:
    @pytest.mark.asyncio
    async def test_protected_route_without_token(self, swagger_options, bearer_routes):
        async with await create_auth_server(swagger_options, bearer_routes) as server:
            response = await server.inject("GET", "/bookmarks/")

        assert response.status_code == 401
        detail = response.json()["detail"]
        assert detail["error_type"] == "authentication_required"
        assert detail["strategy"] == "bearer"

    @pytest.mark.asyncio
    async def test_valid_header_token_returns_user(self, swagger_options, bearer_routes, auth_headers):
        async with await create_auth_server(swagger_options, bearer_routes) as server:
            response = await server.inject("GET", "/bookmarks/", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {
            "username": "glennjones",
            "name": "Glenn Jones",
            "groups": ["admin", "user"],
        }

    @pytest.mark.asyncio
    async def test_valid_query_token(self, swagger_options, bearer_routes):
        async with await create_auth_server(swagger_options, bearer_routes) as server:
            response = await server.inject("GET", "/bookmarks/", params={"access_token": "12345"})

        assert response.status_code == 200
        assert response.json()["username"] == "glennjones"

    @pytest.mark.asyncio
    async def test_invalid_token(self, swagger_options, bearer_routes):
        async with await create_auth_server(swagger_options, bearer_routes) as server:
            response = await server.inject("GET", "/bookmarks/", headers={"Authorization": "Bearer 99999"})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["detail"]["error_type"] == "authentication_failed"

    @pytest.mark.asyncio
    async def test_bearer_is_not_the_default(self, swagger_options, bearer_routes):
        async with await create_auth_server(swagger_options, bearer_routes) as server:
            open_route = await server.inject("GET", "/open")
            docs = await server.inject("GET", "/documentation")

        assert open_route.status_code == 200
        assert open_route.text == "ok"
        assert docs.status_code == 200

    @pytest.mark.asyncio
    async def test_swagger_json_documents_the_security_scheme(self, swagger_options, bearer_routes):
        async with await create_auth_server(swagger_options, bearer_routes) as server:
            document = (await server.inject("GET", "/swagger.json")).json()

        assert "bearer" in document["components"]["securitySchemes"]
        assert {"bearer": []} in document["paths"]["/bookmarks/"]["get"]["security"]

    @pytest.mark.asyncio
    async def test_documentation_behind_the_strategy(self, bearer_routes, auth_headers):
        async with await create_auth_server({"auth": "bearer"}, bearer_routes) as server:
            anonymous = await server.inject("GET", "/swagger.json")
            authorized = await server.inject("GET", "/swagger.json", headers=auth_headers)

        assert anonymous.status_code == 401
        assert authorized.status_code == 200

    @pytest.mark.asyncio
    async def test_custom_fixtures(self, swagger_options, bearer_routes, fixtures):
        custom = CredentialFixtures(
            bearer_token="abc",
            bearer_user={"username": "tester", "name": "Tester", "groups": []},
            jwt_key=fixtures.jwt_key,
            jwt_algorithms=fixtures.jwt_algorithms,
        )
        async with await create_auth_server(swagger_options, bearer_routes, fixtures=custom) as server:
            accepted = await server.inject("GET", "/bookmarks/", headers={"Authorization": "Bearer abc"})
            rejected = await server.inject("GET", "/bookmarks/", headers={"Authorization": "Bearer 12345"})

        assert accepted.json()["username"] == "tester"
        assert rejected.status_code == 401

    @pytest.mark.asyncio
    async def test_routes_are_required(self, swagger_options):
        with pytest.raises(BootstrapError, match="requires a route table"):
            await create_auth_server(swagger_options, None)
