"""Unit tests for Config — TributeSettings and loaders."""
from __future__ import annotations

import json
import os
from datetime import timedelta

import pytest

from tribute_billing.application.billing import InMemoryBillingStore, Plan, TributeEventProcessor
from tribute_billing.config.settings import (
    DotenvSettingsLoader,
    EnvSettingsLoader,
    TributeSettings,
    load_plans_from_file,
    load_plans_from_json,
    load_tribute_settings,
    parse_boolean,
)
from tribute_billing.config.validation import (
    ConfigurationError,
    InvalidSettingValueError,
    MissingRequiredSettingError,
)

PLAN_DICT = {
    "id": "m10",
    "title": "Monthly",
    "amount": 1000,
    "currency": "eur",
    "period": "monthly",
    "subscription_link": "https://t.me/tribute/app?startapp=m10",
    "tributeSubscriptionId": 1644,
}
PLANS_JSON = json.dumps([PLAN_DICT])


# ---------------------------------------------------------------------------
# parse_boolean
# ---------------------------------------------------------------------------
class TestParseBoolean:
    @pytest.mark.parametrize("raw", ["1", "true", "YES", " on ", "y"])
    def test_truthy(self, raw):
        assert parse_boolean(raw, False) is True

    @pytest.mark.parametrize("raw", ["0", "false", "No", "off", "n"])
    def test_falsy(self, raw):
        assert parse_boolean(raw, True) is False

    def test_fallback_for_empty(self):
        assert parse_boolean(None, True) is True
        assert parse_boolean("", False) is False

    def test_garbage(self):
        with pytest.raises(ConfigurationError):
            parse_boolean("maybe", True)


# ---------------------------------------------------------------------------
# Plan catalogs
# ---------------------------------------------------------------------------
class TestPlanCatalogs:
    def test_load_from_json(self):
        plans = load_plans_from_json(PLANS_JSON, "test")
        assert plans == [Plan.from_dict(PLAN_DICT)]
        assert plans[0].provider_subscription_id == 1644

    def test_invalid_json(self):
        with pytest.raises(ConfigurationError, match="Failed to parse"):
            load_plans_from_json("[", "test")

    def test_must_be_array(self):
        with pytest.raises(ConfigurationError, match="array"):
            load_plans_from_json('{"id": "m10"}', "test")

    @pytest.mark.parametrize(
        "broken",
        [
            {k: v for k, v in PLAN_DICT.items() if k != "id"},
            {k: v for k, v in PLAN_DICT.items() if k != "subscription_link"},
            {**PLAN_DICT, "amount": 0},
            {**PLAN_DICT, "amount": "10"},
            {**PLAN_DICT, "amount": True},
            {**PLAN_DICT, "currency": ""},
            {k: v for k, v in PLAN_DICT.items() if k != "period"},
        ],
    )
    def test_plan_validation(self, broken):
        with pytest.raises(ConfigurationError):
            load_plans_from_json([broken], "test")

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "plans.json"
        path.write_text(PLANS_JSON, encoding="utf-8")
        assert load_plans_from_file(path)[0].id == "m10"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_plans_from_file(tmp_path / "absent.json")


# ---------------------------------------------------------------------------
# TributeSettings
# ---------------------------------------------------------------------------
class TestTributeSettings:
    def test_defaults(self):
        settings = load_tribute_settings({"plans_json": PLANS_JSON, "api_key": "k"}, env={})
        assert settings.intent_ttl == timedelta(minutes=15)
        assert settings.signature_encoding == "hex"
        assert settings.event_publisher_failure_mode == "throw"
        assert "new_donation" in settings.allowed_webhook_events

    def test_from_env(self):
        env = {
            "TRIBUTE_PLANS": PLANS_JSON,
            "TRIBUTE_API_KEY": "env-key",
            "TRIBUTE_INTENT_TTL_MINUTES": "5",
            "TRIBUTE_SIGNATURE_ENCODING": "base64",
            "TRIBUTE_ALLOW_DONATIONS": "false",
            "TRIBUTE_EVENT_PUBLISHER_FAILURE_MODE": " LOG ",
        }
        settings = load_tribute_settings(env=env)
        assert settings.api_key == "env-key"
        assert settings.intent_ttl == timedelta(minutes=5)
        assert settings.signature_encoding == "base64"
        assert settings.allowed_webhook_events == ["new_subscription", "cancelled_subscription"]
        assert settings.event_publisher_failure_mode == "log"

    def test_overrides_win_over_env(self):
        env = {"TRIBUTE_PLANS": "not even json", "TRIBUTE_API_KEY": "env-key", "TRIBUTE_INTENT_TTL_MS": "1000"}
        settings = load_tribute_settings(
            {"plans": [PLAN_DICT], "api_key": "override", "intent_ttl_ms": 0}, env=env
        )
        assert settings.api_key == "override"
        assert settings.intent_ttl_ms == 0
        assert settings.plans[0].id == "m10"

    def test_ttl_ms_beats_minutes(self):
        env = {"TRIBUTE_PLANS": PLANS_JSON, "TRIBUTE_API_KEY": "k", "TRIBUTE_INTENT_TTL_MS": "2500",
               "TRIBUTE_INTENT_TTL_MINUTES": "30"}
        assert load_tribute_settings(env=env).intent_ttl_ms == 2500

    def test_plans_file_from_env(self, tmp_path):
        path = tmp_path / "plans.json"
        path.write_text(PLANS_JSON, encoding="utf-8")
        settings = load_tribute_settings(env={"TRIBUTE_PLANS_FILE": str(path), "TRIBUTE_API_KEY": "k"})
        assert [p.id for p in settings.plans] == ["m10"]

    def test_explicit_allowed_events(self):
        settings = load_tribute_settings(
            {"plans_json": PLANS_JSON, "api_key": "k", "allowed_webhook_events": ["new_donation"]}, env={}
        )
        assert settings.allowed_webhook_events == ["new_donation"]

    def test_no_plans(self):
        with pytest.raises(ConfigurationError, match="No subscription plans"):
            load_tribute_settings({"api_key": "k"}, env={})

    def test_missing_api_key(self):
        with pytest.raises(MissingRequiredSettingError) as exc_info:
            load_tribute_settings({"plans_json": PLANS_JSON}, env={})
        assert exc_info.value.setting_name == "TRIBUTE_API_KEY"

    @pytest.mark.parametrize("ttl", ["-1", "abc", "inf"])
    def test_invalid_ttl(self, ttl):
        env = {"TRIBUTE_PLANS": PLANS_JSON, "TRIBUTE_API_KEY": "k", "TRIBUTE_INTENT_TTL_MINUTES": ttl}
        with pytest.raises(InvalidSettingValueError):
            load_tribute_settings(env=env)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"signature_encoding": "base32"},
            {"event_publisher_failure_mode": "ignore"},
            {"allowed_webhook_events": ["refund"]},
            {"allowed_webhook_events": []},
            {"allowed_webhook_events": "new_donation"},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigurationError):
            load_tribute_settings({"plans_json": PLANS_JSON, "api_key": "k", **overrides}, env={})

    def test_processor_from_settings(self):
        settings = TributeSettings(plans=load_plans_from_json(PLANS_JSON, "t"), api_key="k", intent_ttl_ms=60_000)
        processor = TributeEventProcessor.from_settings(settings, InMemoryBillingStore())
        assert processor.allowed_events == frozenset(settings.allowed_webhook_events)
        assert [p.id for p in processor.plans] == ["m10"]


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------
class TestLoaders:
    def test_env_loader_with_explicit_mapping(self):
        loader = EnvSettingsLoader({"TRIBUTE_PLANS": PLANS_JSON, "TRIBUTE_API_KEY": "k"})
        assert loader.load().api_key == "k"

    def test_env_loader_reads_process_env(self, monkeypatch):
        monkeypatch.setenv("TRIBUTE_PLANS", PLANS_JSON)
        monkeypatch.setenv("TRIBUTE_API_KEY", "from-os")
        assert EnvSettingsLoader().load().api_key == "from-os"

    def test_overrides_passed_through_loader(self):
        loader = EnvSettingsLoader({"TRIBUTE_PLANS": PLANS_JSON, "TRIBUTE_API_KEY": "k"})
        assert loader.load({"intent_ttl_minutes": 1}).intent_ttl == timedelta(minutes=1)

    def _env_file(self, tmp_path):
        plans_path = tmp_path / "plans.json"
        plans_path.write_text(PLANS_JSON, encoding="utf-8")
        env_file = tmp_path / ".env"
        env_file.write_text(f"TRIBUTE_PLANS_FILE={plans_path}\nTRIBUTE_API_KEY=dotenv-key\n", encoding="utf-8")
        return env_file

    def test_dotenv_loader(self, tmp_path, monkeypatch):
        for name in ("TRIBUTE_PLANS", "TRIBUTE_PLANS_FILE", "TRIBUTE_API_KEY"):
            monkeypatch.delenv(name, raising=False)

        settings = DotenvSettingsLoader(self._env_file(tmp_path)).load()

        assert settings.api_key == "dotenv-key"
        assert settings.plans[0].id == "m10"
        assert "TRIBUTE_API_KEY" not in os.environ

    def test_process_env_wins_unless_override(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TRIBUTE_PLANS", raising=False)
        monkeypatch.setenv("TRIBUTE_API_KEY", "from-os")
        env_file = self._env_file(tmp_path)
        assert DotenvSettingsLoader(env_file).load().api_key == "from-os"
        assert DotenvSettingsLoader(env_file, override=True).load().api_key == "dotenv-key"
