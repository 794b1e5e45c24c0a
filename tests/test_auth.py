"""Unit tests for operator API key authentication."""

from unittest.mock import patch

import pytest
from fastapi import HTTPException

from limitr.core.auth import parse_api_keys, validate_api_key, verify_api_key
from limitr.core.errors import AuthenticationAppError


class TestParseAPIKeys:
    """Test API key parsing utility function."""

    def test_parse_keys_with_whitespace_and_duplicates(self) -> None:
        assert parse_api_keys(" key1 , key2,key1 ") == {"key1", "key2"}

    @pytest.mark.parametrize("raw", [None, "", "  ,  , "])
    def test_empty_input_returns_empty_set(self, raw) -> None:
        assert parse_api_keys(raw) == set()


class TestValidateAPIKey:
    """Test core API key validation logic."""

    @patch("limitr.core.auth.settings")
    def test_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.api_key_required = False

        validate_api_key("anything")

    @patch("limitr.core.auth.settings")
    def test_raises_when_no_keys_configured(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = None

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("some-key")

        assert exc_info.value.code == "api_keys_not_configured"

    @patch("limitr.core.auth.settings")
    def test_accepts_configured_keys(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-1, ops-2"

        validate_api_key("ops-1")
        validate_api_key("ops-2")

    @patch("limitr.core.auth.settings")
    def test_rejects_unknown_key(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-1"

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("ops-10")

        assert exc_info.value.code == "invalid_api_key"


class TestVerifyAPIKeyDependency:
    """Test FastAPI dependency for API key verification."""

    @pytest.mark.asyncio
    @patch("limitr.core.auth.settings")
    async def test_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.api_key_required = False

        await verify_api_key(x_api_key=None)

    @pytest.mark.asyncio
    @patch("limitr.core.auth.settings")
    async def test_raises_403_when_header_missing(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-1"

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key=None)

        assert exc_info.value.status_code == 403
        assert "Missing API key" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("limitr.core.auth.settings")
    async def test_raises_403_when_key_invalid(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-1"

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key="wrong")

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    @patch("limitr.core.auth.settings")
    async def test_accepts_valid_key(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-1"

        await verify_api_key(x_api_key="ops-1")
