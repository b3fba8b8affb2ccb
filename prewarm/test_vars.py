import importlib

import pytest

import prewarm.vars as vars_module
from prewarm.vars import _parse_key_value_list


@pytest.fixture
def reload_vars(monkeypatch):
    yield lambda: importlib.reload(vars_module)
    monkeypatch.undo()
    importlib.reload(vars_module)


def test_otlp_headers_parsing(monkeypatch, reload_vars):
    monkeypatch.setenv("OTLP_HEADERS", "authorization=Bearer abc, x-tenant = acme")

    reload_vars()

    assert vars_module.OTLP_HEADERS == {"authorization": "Bearer abc", "x-tenant": "acme"}


def test_key_value_list_skips_malformed_entries():
    assert _parse_key_value_list("a=1,,b,=2,c=,d=x=y") == {"a": "1", "d": "x=y"}
    assert _parse_key_value_list("") == {}


def test_origin_and_cache_settings(monkeypatch, reload_vars):
    monkeypatch.setenv("ORIGIN_HOSTNAME", "origin.internal")
    monkeypatch.setenv("ORIGIN_SCHEME", "HTTPS")
    monkeypatch.setenv("ORIGIN_PORT", "8443")
    monkeypatch.setenv("CACHE_EVERYTHING", "false")
    monkeypatch.setenv("CACHE_TTL", "120")

    reload_vars()

    assert vars_module.ORIGIN_HOSTNAME == "origin.internal"
    assert vars_module.ORIGIN_SCHEME == "https"
    assert vars_module.ORIGIN_PORT == 8443
    assert vars_module.CACHE_EVERYTHING is False
    assert vars_module.CACHE_TTL == 120


def test_defaults(monkeypatch, reload_vars):
    for name in ["ORIGIN_SCHEME", "ORIGIN_PORT", "CACHE_TTL", "CACHE_KEY", "CACHE_EVERYTHING"]:
        monkeypatch.delenv(name, raising=False)

    reload_vars()

    assert vars_module.ORIGIN_SCHEME == ""
    assert vars_module.ORIGIN_PORT is None
    assert vars_module.CACHE_EVERYTHING is True
    assert vars_module.CACHE_TTL is None
    assert vars_module.CACHE_KEY is None
