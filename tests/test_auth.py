"""Unit tests for admin API key authentication."""

from unittest.mock import patch

import pytest

from skycache.core.auth import parse_api_keys, validate_api_key, verify_admin_api_key
from skycache.core.errors import AuthenticationAppError
from skycache.core.exception_handlers import status_for


class TestParseAPIKeys:
    """Test API key parsing utility function."""

    def test_parse_multiple_keys(self) -> None:
        assert parse_api_keys("key1,key2,key3") == {"key1", "key2", "key3"}

    def test_parse_keys_with_whitespace(self) -> None:
        """Whitespace is trimmed from keys."""
        assert parse_api_keys("key1 , key2  ,  key3") == {"key1", "key2", "key3"}

    @pytest.mark.parametrize("raw", [None, "", "   ,  ,  "])
    def test_parse_empty_input_returns_empty_set(self, raw) -> None:
        assert parse_api_keys(raw) == set()

    def test_parse_removes_duplicate_keys(self) -> None:
        assert parse_api_keys("key1,key2,key1") == {"key1", "key2"}


class TestValidateAPIKey:
    """Test core admin key validation logic."""

    @patch("skycache.core.auth.settings")
    def test_validate_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.admin_api_key_required = False

        # Should not raise even with an unknown key
        validate_api_key("any-random-key")
        validate_api_key(None)

    @pytest.mark.parametrize("configured", [None, "", " , "])
    @patch("skycache.core.auth.settings")
    def test_validate_raises_when_no_keys_configured(self, mock_settings, configured) -> None:
        mock_settings.app.admin_api_key_required = True
        mock_settings.app.admin_api_keys = configured

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("some-key")

        assert exc_info.value.code == "admin_api_keys_not_configured"
        assert "APP_ADMIN_API_KEYS" in exc_info.value.details["hint"]

    @patch("skycache.core.auth.settings")
    def test_validate_accepts_valid_key(self, mock_settings) -> None:
        mock_settings.app.admin_api_key_required = True
        mock_settings.app.admin_api_keys = "valid-key-1,valid-key-2"

        validate_api_key("valid-key-1")
        validate_api_key("valid-key-2")

    @patch("skycache.core.auth.settings")
    def test_validate_rejects_invalid_key(self, mock_settings) -> None:
        mock_settings.app.admin_api_key_required = True
        mock_settings.app.admin_api_keys = "valid-key-1,valid-key-2"

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("invalid-key")

        assert exc_info.value.code == "invalid_api_key"

    @pytest.mark.parametrize("provided", [None, ""])
    @patch("skycache.core.auth.settings")
    def test_validate_rejects_missing_key(self, mock_settings, provided) -> None:
        mock_settings.app.admin_api_key_required = True
        mock_settings.app.admin_api_keys = "valid-key"

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key(provided)

        assert exc_info.value.code == "missing_api_key"

    @patch("skycache.core.auth.settings")
    def test_validate_does_not_trim_provided_key(self, mock_settings) -> None:
        mock_settings.app.admin_api_key_required = True
        mock_settings.app.admin_api_keys = " key1 , key2 "

        validate_api_key("key1")
        with pytest.raises(AuthenticationAppError):
            validate_api_key(" key1 ")


class TestVerifyAdminAPIKeyDependency:
    """Test the FastAPI dependency guarding admin routes."""

    @pytest.mark.asyncio
    @patch("skycache.core.auth.settings")
    async def test_verify_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.admin_api_key_required = False

        await verify_admin_api_key(x_api_key=None)

    @pytest.mark.asyncio
    @patch("skycache.core.auth.settings")
    async def test_verify_accepts_valid_key(self, mock_settings) -> None:
        mock_settings.app.admin_api_key_required = True
        mock_settings.app.admin_api_keys = "my-valid-key,another-key"

        await verify_admin_api_key(x_api_key="my-valid-key")

    @pytest.mark.asyncio
    @patch("skycache.core.auth.settings")
    async def test_verify_failure_maps_to_403(self, mock_settings) -> None:
        mock_settings.app.admin_api_key_required = True
        mock_settings.app.admin_api_keys = "valid-key"

        with pytest.raises(AuthenticationAppError) as exc_info:
            await verify_admin_api_key(x_api_key="wrong-key")

        assert status_for(exc_info.value) == 403
