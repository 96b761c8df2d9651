"""Tests for placeholder expansion."""

from __future__ import annotations

import pytest

from prom_config_watcher.pipeline.expand import expand_bytes, expand_vars


def test_braced_reference() -> None:
    assert expand_vars("listen: ${PORT}", {"PORT": "9090"}) == "listen: 9090"


def test_bare_reference() -> None:
    assert expand_vars("host: $HOST:$PORT", {"HOST": "db", "PORT": "5432"}) == "host: db:5432"


def test_unresolved_reference_left_literal() -> None:
    text = "user: ${MISSING} and $ALSO_MISSING"
    assert expand_vars(text, {}) == text


def test_dollar_without_name_untouched() -> None:
    text = "price: $5, regex: ^a$, empty: ${}, escaped: $$"
    assert expand_vars(text, {}) == text


def test_name_boundary() -> None:
    assert expand_vars("$PORT_NUMBER ${PORT}x", {"PORT": "1"}) == "$PORT_NUMBER 1x"


def test_empty_value_substituted() -> None:
    assert expand_vars("a${EMPTY}b", {"EMPTY": ""}) == "ab"


def test_defaults_to_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PCW_TEST_TOKEN", "s3cret")
    assert expand_vars("token: ${PCW_TEST_TOKEN}") == "token: s3cret"


def test_expansion_is_idempotent() -> None:
    env = {"PORT": "9090", "HOST": "prom"}
    source = "url: http://${HOST}:$PORT/ keep: ${UNSET} $ 100%"
    once = expand_vars(source, env)
    assert expand_vars(once, env) == once


def test_expand_bytes_preserves_invalid_utf8() -> None:
    content = b"\xff\xfe port=${PORT}\n"
    assert expand_bytes(content, {"PORT": "9090"}) == b"\xff\xfe port=9090\n"
