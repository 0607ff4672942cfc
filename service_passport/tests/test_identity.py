"""
Unit tests for address validation, identity resolution and configuration.
"""

import pytest
from datetime import date

from pydantic import ValidationError

from service_passport.app.gating.identity import identity_from_session, identity_from_user
from service_passport.app.gating.models import (
    AuthenticatedHookRequest, CategoryScoreRequest, ForumUser, UserScoreRequest
)
from service_passport.app.gating.validators import is_eth_address, normalize_address
from shared.config import get_config

ADDRESS = "0x" + "Ab" * 20


class TestAddressValidation:

    def test_valid_address(self):
        assert is_eth_address(ADDRESS) is True
        assert normalize_address(f"  {ADDRESS} ") == ADDRESS.lower()

    @pytest.mark.parametrize("value", [None, "", "0x1234", "ab" * 20, "0x" + "zz" * 20])
    def test_invalid_address(self, value):
        assert is_eth_address(value) is False
        with pytest.raises(ValueError):
            normalize_address(value)


class TestIdentityResolution:

    def test_identity_from_siwe_account(self):
        user = ForumUser(id=1, username="alice", associated_accounts=[
            {"name": "github", "description": "alice"},
            {"name": "siwe", "description": ADDRESS}
        ])

        assert identity_from_user(user) == ADDRESS.lower()

    def test_user_without_wallet(self):
        assert identity_from_user(ForumUser(id=1, username="alice")) is None
        assert identity_from_user(None) is None

    def test_identity_from_session(self):
        session = {"authentication": {"extra_data": {"uid": ADDRESS}}}

        assert identity_from_session(session) == ADDRESS.lower()

    @pytest.mark.parametrize("session", [
        {},
        {"authentication": None},
        {"authentication": {"extra_data": {}}},
        {"authentication": {"extra_data": {"uid": "not-an-address"}}}
    ])
    def test_session_without_wallet(self, session):
        assert identity_from_session(session) is None


class TestRequestModels:

    def test_negative_required_score_rejected(self):
        with pytest.raises(ValidationError):
            UserScoreRequest(requiredScore=-1, action="reply")

    def test_account_creation_is_not_an_admin_gated_action(self):
        with pytest.raises(ValidationError):
            UserScoreRequest(requiredScore=5, action="create_account")
        with pytest.raises(ValidationError):
            CategoryScoreRequest(categoryId=3, requiredScore=5, action="create_account")

    def test_hook_uid_is_normalized(self):
        request = AuthenticatedHookRequest(uid=ADDRESS)

        assert request.provider == "siwe"
        assert request.uid == ADDRESS.lower()


class TestConfig:

    def test_bypass_window_start_parsed(self):
        config = get_config("passport", 8013, bypass_window_start="2024-05-25", bypass_window_days=10)

        assert config.bypass_window_start == date(2024, 5, 25)
        assert config.bypass_window_days == 10

    def test_blank_bypass_start_is_unset(self):
        config = get_config("passport", 8013, bypass_window_start="  ")

        assert config.bypass_window_start is None

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            get_config("passport", 8013, bypass_window_start="25/05/2024")
        with pytest.raises(ValidationError):
            get_config("passport", 8013, create_account_min_score=-5)
