"""
Tests for the AppStoreConnectAPI client core.
"""

import pytest
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

from app_store_connect import AppStoreConnectAPI, Configuration, Session
from app_store_connect.exceptions import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    ServerError,
)
from app_store_connect.transport import CurlTransport, HttpResponse, RequestsTransport

from conftest import TEST_PRIVATE_KEY


class TestInitialization:
    """Test API client initialization."""

    def test_init_from_config(self, api_client):
        assert api_client.key_id == "KEY123"
        assert api_client.issuer_id == "issuer-abc"
        assert api_client.app_id == "123456789"
        assert api_client.bundle_id == "com.example.app"
        assert api_client.private_key_path is None

    def test_keyword_overrides_config(self, config, transport):
        api = AppStoreConnectAPI(
            config, key_id="OTHER", app_id="42", transport=transport, session=Session("")
        )
        assert api.key_id == "OTHER"
        assert api.app_id == "42"
        assert api.issuer_id == "issuer-abc"
        # The caller's configuration is left untouched
        assert config.key_id == "KEY123"

    def test_missing_credentials(self, transport):
        with pytest.raises(ConfigurationError, match="APP_STORE_CONNECT_KEY_ID"):
            AppStoreConnectAPI(Configuration(issuer_id="x", private_key="k"), transport=transport)

    def test_missing_private_key_file(self, transport, tmp_path):
        config = Configuration(
            key_id="k", issuer_id="i", private_key_path=str(tmp_path / "missing.p8")
        )
        with pytest.raises(ConfigurationError, match="Private key file not found"):
            AppStoreConnectAPI(config, transport=transport)

    def test_default_transport_is_requests(self, config):
        api = AppStoreConnectAPI(config, session=Session(""))
        assert isinstance(api.transport, RequestsTransport)

    def test_curl_transport_selected(self, config):
        api = AppStoreConnectAPI(config, use_curl=True, session=Session(""))
        assert isinstance(api.transport, CurlTransport)

    def test_upload_retry_policy_from_config(self, config, transport):
        api = AppStoreConnectAPI(
            config,
            upload_retries=3,
            upload_retry_sleep=0.5,
            transport=transport,
            session=Session(""),
        )
        assert api.upload_retry_policy.max_retries == 3
        assert api.upload_retry_policy.base_sleep == 0.5


class TestAuthentication:
    """Test authentication methods."""

    def test_load_private_key_from_config(self, api_client):
        assert api_client._load_private_key() == TEST_PRIVATE_KEY

    def test_load_private_key_from_file(self, transport, tmp_path):
        key_file = tmp_path / "AuthKey.p8"
        key_file.write_text(TEST_PRIVATE_KEY)
        api = AppStoreConnectAPI(
            Configuration(key_id="k", issuer_id="i", private_key_path=str(key_file)),
            transport=transport,
            session=Session(""),
        )
        assert api._load_private_key() == TEST_PRIVATE_KEY

    def test_load_private_key_failure(self, transport, tmp_path):
        key_file = tmp_path / "AuthKey.p8"
        key_file.write_text(TEST_PRIVATE_KEY)
        api = AppStoreConnectAPI(
            Configuration(key_id="k", issuer_id="i", private_key_path=str(key_file)),
            transport=transport,
            session=Session(""),
        )
        key_file.unlink()
        with pytest.raises(AuthenticationError, match="Failed to load private key"):
            api._load_private_key()

    def test_generate_token(self, api_client, jwt_encode):
        token = api_client._generate_token()

        assert token == "test_token"
        payload, key = jwt_encode.call_args[0]
        assert key == TEST_PRIVATE_KEY
        assert payload["iss"] == "issuer-abc"
        assert payload["aud"] == "appstoreconnect-v1"
        assert payload["exp"] - payload["iat"] == 20 * 60
        assert jwt_encode.call_args[1]["algorithm"] == "ES256"
        assert jwt_encode.call_args[1]["headers"]["kid"] == "KEY123"

    def test_token_is_cached(self, api_client, jwt_encode):
        api_client._generate_token()
        api_client._generate_token()
        assert jwt_encode.call_count == 1

    def test_expired_token_is_regenerated(self, api_client, jwt_encode):
        api_client._generate_token()
        api_client._token_expiry = 0
        api_client._generate_token()
        assert jwt_encode.call_count == 2

    def test_generate_token_jwt_failure(self, api_client, jwt_encode):
        jwt_encode.side_effect = ValueError("bad key")
        with pytest.raises(AuthenticationError, match="Failed to generate JWT token"):
            api_client._generate_token()


class TestRequests:
    """Test request dispatch through the transport."""

    def test_get_sends_bearer_token(self, api_client, transport):
        transport.execute.return_value = HttpResponse(200, {"data": {"id": "1"}})

        result = api_client.get("/apps/1")

        assert result == {"data": {"id": "1"}}
        method, url = transport.execute.call_args[0]
        assert method == "GET"
        assert url == "https://api.appstoreconnect.apple.com/v1/apps/1"
        headers = transport.execute.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer test_token"
        assert transport.execute.call_args[1]["body"] is None

    def test_query_params_are_encoded(self, api_client, transport):
        api_client.get("/builds", params={"filter[app]": "42", "limit": 5})

        url = transport.execute.call_args[0][1]
        query = parse_qs(urlparse(url).query)
        assert query == {"filter[app]": ["42"], "limit": ["5"]}

    def test_post_sends_body(self, api_client, transport):
        api_client.post("/betaGroups", body={"data": {"type": "betaGroups"}})

        assert transport.execute.call_args[0][0] == "POST"
        assert transport.execute.call_args[1]["body"] == {"data": {"type": "betaGroups"}}

    def test_delete_with_body(self, api_client, transport):
        api_client.delete_with_body("/x/relationships/y", body={"data": []})

        assert transport.execute.call_args[0][0] == "DELETE"
        assert transport.execute.call_args[1]["body"] == {"data": []}


class TestErrorHandling:
    """Test HTTP status to exception mapping."""

    @pytest.mark.parametrize(
        "status,error",
        [
            (401, AuthenticationError),
            (403, PermissionError),
            (404, NotFoundError),
            (429, RateLimitError),
            (500, ServerError),
            (503, ServerError),
            (409, ApiError),
        ],
    )
    def test_status_mapping(self, api_client, transport, status, error):
        transport.execute.return_value = HttpResponse(status, {})
        with pytest.raises(error) as exc_info:
            api_client.get("/apps")
        assert exc_info.value.status == status

    def test_not_found_names_path(self, api_client, transport):
        transport.execute.return_value = HttpResponse(404, {})
        with pytest.raises(NotFoundError, match="/apps/999"):
            api_client.get("/apps/999")

    def test_server_error_includes_detail(self, api_client, transport):
        transport.execute.return_value = HttpResponse(
            502, {"errors": [{"status": "502", "detail": "Upstream unavailable"}]}
        )
        with pytest.raises(ServerError, match="Upstream unavailable"):
            api_client.get("/apps")

    def test_errors_array_on_success_status(self, api_client, transport):
        transport.execute.return_value = HttpResponse(
            200, {"errors": [{"status": "409", "detail": "Version cannot be edited"}]}
        )
        with pytest.raises(ApiError, match="Version cannot be edited") as exc_info:
            api_client.get("/appStoreVersions/1")
        assert exc_info.value.status == 409

    def test_unauthorized_message(self, api_client, transport):
        transport.execute.return_value = HttpResponse(401, {})
        with pytest.raises(AuthenticationError, match="check your API key credentials"):
            api_client.get("/apps")


class TestOptionalLookups:
    """Test not-found-as-absent helpers."""

    def test_get_document_returns_none_on_404(self, api_client, transport):
        transport.execute.return_value = HttpResponse(404, {})
        assert api_client._get_document("/apps/1/preOrder") is None

    def test_get_document_returns_none_on_empty_data(self, api_client, transport):
        transport.execute.return_value = HttpResponse(200, {"data": None})
        assert api_client._get_document("/apps/1/preOrder") is None

    def test_get_optional_returns_primary_data(self, api_client, transport):
        transport.execute.return_value = HttpResponse(200, {"data": {"id": "p1"}})
        assert api_client._get_optional("/apps/1/preOrder") == {"id": "p1"}

    def test_other_errors_propagate(self, api_client, transport):
        transport.execute.return_value = HttpResponse(500, {})
        with pytest.raises(ServerError):
            api_client._get_optional("/apps/1/preOrder")


class TestPagination:
    """Test links.next pagination."""

    def test_follows_next_links(self, api_client, transport):
        next_url = "https://api.appstoreconnect.apple.com/v1/apps?cursor=abc"
        transport.execute.side_effect = [
            HttpResponse(200, {"data": [{"id": "1"}, {"id": "2"}], "links": {"next": next_url}}),
            HttpResponse(200, {"data": [{"id": "3"}], "links": {}}),
        ]

        ids = [item["id"] for item in api_client.paginate("/apps")]

        assert ids == ["1", "2", "3"]
        assert transport.execute.call_args_list[1][0][1] == next_url

    def test_max_pages(self, api_client, transport):
        transport.execute.return_value = HttpResponse(
            200, {"data": [{"id": "1"}], "links": {"next": "https://example.com/next"}}
        )

        items = list(api_client.paginate("/apps", max_pages=2))

        assert len(items) == 2
        assert transport.execute.call_count == 2


class TestResourceHelpers:
    """Test JSON:API body builders."""

    def test_create_resource(self, api_client):
        with patch.object(api_client, "post", return_value={"data": {"id": "n1"}}) as mock_post:
            api_client._create_resource(
                "betaGroups",
                {"name": "QA"},
                {
                    "app": {"type": "apps", "id": "1"},
                    "builds": [{"type": "builds", "id": "b1"}],
                },
            )

        mock_post.assert_called_once_with(
            "/betaGroups",
            body={
                "data": {
                    "type": "betaGroups",
                    "attributes": {"name": "QA"},
                    "relationships": {
                        "app": {"data": {"type": "apps", "id": "1"}},
                        "builds": {"data": [{"type": "builds", "id": "b1"}]},
                    },
                }
            },
        )

    def test_update_resource(self, api_client):
        with patch.object(api_client, "patch", return_value={}) as mock_patch:
            api_client._update_resource("users", "u1", {"roles": ["ADMIN"]})

        mock_patch.assert_called_once_with(
            "/users/u1",
            body={"data": {"type": "users", "id": "u1", "attributes": {"roles": ["ADMIN"]}}},
        )

    def test_update_resource_without_attributes_sends_nothing(self, api_client, transport):
        assert api_client._update_resource("users", "u1", {}) is None
        transport.execute.assert_not_called()

    def test_target_app_defaults_to_config(self, api_client):
        assert api_client._target_app(None) == "123456789"
        assert api_client._target_app("555") == "555"

    def test_target_app_required(self, config, transport):
        config.app_id = None
        api = AppStoreConnectAPI(config, transport=transport, session=Session(""))
        with pytest.raises(ConfigurationError, match="No app selected"):
            api._target_app(None)


class TestAssets:
    """Test asset delivery polling through the client."""

    def test_wait_for_asset(self, api_client):
        states = iter([{"state": "UPLOAD_COMPLETE"}, {"state": "COMPLETE"}])
        with patch.object(api_client, "asset_delivery_state", side_effect=lambda *a: next(states)):
            result = api_client.wait_for_asset("appScreenshots", "s1", interval=0.01)
        assert result == {"state": "COMPLETE"}

    def test_asset_delivery_state(self, api_client, transport):
        transport.execute.return_value = HttpResponse(
            200, {"data": {"attributes": {"assetDeliveryState": {"state": "FAILED"}}}}
        )
        assert api_client.asset_delivery_state("appScreenshots", "s1") == {"state": "FAILED"}
