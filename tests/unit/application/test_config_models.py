"""Tests for FinalizationConfig and its service kwargs."""

import pytest
from pydantic import ValidationError

from finwf.application.config_models import FinalizationConfig, RenderingConfig, SignatureConfig
from finwf.domain.constants import DEFAULT_SIGNATURE_INSTRUCTIONS
from finwf.domain.services import ServiceKind, ServiceRegistry
from finwf.domain.services.http_rendering_service import HttpRenderingService
from finwf.domain.services.local_rendering_service import LocalRenderingService
from finwf.domain.services.tablet_signature_service import TabletSignatureService


class TestSignatureConfig:
    def test_defaults(self) -> None:
        cfg = SignatureConfig()

        assert cfg.service == "manual"
        assert cfg.timeout_minutes == 15
        assert cfg.poll_interval == 3.0
        assert cfg.instructions == DEFAULT_SIGNATURE_INSTRUCTIONS

    @pytest.mark.parametrize("minutes", [4, 31])
    def test_timeout_out_of_range_rejected(self, minutes: int) -> None:
        with pytest.raises(ValidationError):
            SignatureConfig(timeout_minutes=minutes)

    @pytest.mark.parametrize("minutes", [5, 30])
    def test_timeout_bounds_accepted(self, minutes: int) -> None:
        assert SignatureConfig(timeout_minutes=minutes).timeout_minutes == minutes

    def test_poll_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            SignatureConfig(poll_interval=0)

    def test_extra_keys_forbidden(self) -> None:
        with pytest.raises(ValidationError):
            RenderingConfig(colour="blue")


class TestServiceConfig:
    def test_manual_signature_takes_no_kwargs(self) -> None:
        assert FinalizationConfig().signature_service_config() == {}

    def test_tablet_kwargs_read_token_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FINWF_API_TOKEN", "secret")
        cfg = FinalizationConfig(
            signature=SignatureConfig(
                service="tablet",
                base_url="https://crm.example/api",
                tablet_id="t-1",
                auth_token_env="FINWF_API_TOKEN",
            ),
            request_timeout=4,
        )

        kwargs = cfg.signature_service_config()

        assert kwargs["base_url"] == "https://crm.example/api"
        assert kwargs["tablet_id"] == "t-1"
        assert kwargs["auth_token"] == "secret"
        assert kwargs["request_timeout"] == 4

    def test_missing_env_token_is_none(self) -> None:
        cfg = FinalizationConfig(
            rendering=RenderingConfig(service="http", auth_token_env="FINWF_API_TOKEN"),
        )

        assert cfg.rendering_service_config()["auth_token"] is None

    def test_local_rendering_kwargs(self) -> None:
        cfg = FinalizationConfig(rendering=RenderingConfig(documents_dir="pdfs"))

        assert cfg.rendering_service_config() == {"documents_dir": "pdfs"}

    def test_kwargs_construct_registered_services(self) -> None:
        cfg = FinalizationConfig(
            signature=SignatureConfig(service="tablet", base_url="https://crm.example/api"),
            rendering=RenderingConfig(service="http", base_url="https://crm.example/api", template_id="tpl"),
        )

        signature = ServiceRegistry.create(ServiceKind.SIGNATURE, "tablet", cfg.signature_service_config())
        rendering = ServiceRegistry.create(ServiceKind.RENDERING, "http", cfg.rendering_service_config())
        try:
            assert isinstance(signature, TabletSignatureService)
            assert isinstance(rendering, HttpRenderingService)
            assert rendering.template_id == "tpl"
        finally:
            signature.close()
            rendering.close()

    def test_default_rendering_is_local(self) -> None:
        cfg = FinalizationConfig()

        service = ServiceRegistry.create(ServiceKind.RENDERING, cfg.rendering.service, cfg.rendering_service_config())

        assert isinstance(service, LocalRenderingService)
