"""
Unit tests for application settings.
"""
import pytest
from pydantic import ValidationError

from connect_backend.config import Settings


class TestSettings:
    """Test suite for Settings validation."""

    @pytest.mark.unit
    def test_defaults(self, test_settings: Settings) -> None:
        assert test_settings.identity_store_backend == "memory"
        assert test_settings.customer_page_size == 100
        assert test_settings.customer_scan_max_pages == 10
        assert test_settings.default_currency == "usd"
        assert test_settings.is_test_mode

    @pytest.mark.unit
    def test_rejects_malformed_secret_key(self) -> None:
        with pytest.raises(ValidationError, match="Invalid Stripe secret key format"):
            Settings(stripe_secret_key="pk_test_publishable")

    @pytest.mark.unit
    def test_log_level_normalized(self) -> None:
        settings = Settings(stripe_secret_key="sk_test_x", log_level="debug")

        assert settings.log_level == "DEBUG"

    @pytest.mark.unit
    def test_redis_backend_requires_url(self) -> None:
        with pytest.raises(ValidationError, match="redis_url is required"):
            Settings(stripe_secret_key="sk_test_x", identity_store_backend="redis")

    @pytest.mark.unit
    def test_page_size_capped_at_stripe_limit(self) -> None:
        with pytest.raises(ValidationError):
            Settings(stripe_secret_key="sk_test_x", customer_page_size=500)

    @pytest.mark.unit
    def test_port_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "4242")

        assert Settings(stripe_secret_key="sk_test_x").api_port == 4242

    @pytest.mark.unit
    def test_allowed_origins_list(self) -> None:
        settings = Settings(
            stripe_secret_key="sk_test_x", allowed_origins="https://a.test, https://b.test,"
        )

        assert settings.get_allowed_origins_list() == ["https://a.test", "https://b.test"]
