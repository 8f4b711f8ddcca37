"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import logging
from io import StringIO

from app.core.logging import JsonFormatter, SensitiveDataFilter, hash_for_log


def test_sensitive_filter_redacts_api_keys():
    """Ensure SensitiveDataFilter redacts API key fields."""
    
    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    
    logger.info(
        "test_event",
        extra={
            "api_key": "sk-secret-123",
            "x-api-key": "another-secret",
            "safe_field": "visible",
        },
    )
    
    output = stream.getvalue()
    
    assert "sk-secret-123" not in output
    assert "another-secret" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_codes_and_emails():
    """Ensure verification codes, reset tokens and emails are redacted."""
    
    logger = logging.getLogger("test_code_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    
    logger.info(
        "verification_event",
        extra={
            "code": "482913",
            "reset_token": "AbCdEfGhIjKlMnOpQrStUvWxYz012345",
            "email": "user@example.com",
            "attempts": 2,
        },
    )
    
    output = stream.getvalue()
    
    assert "482913" not in output
    assert "AbCdEfGhIjKlMnOpQrStUvWxYz012345" not in output
    assert "user@example.com" not in output
    assert "[REDACTED]" in output
    assert "attempts" in output


def test_sensitive_filter_allows_safe_fields():
    """Verify safe fields pass through unmodified."""
    
    logger = logging.getLogger("test_safe_fields")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    
    logger.info(
        "safe_event",
        extra={
            "request_id": "req-123",
            "route": "/v1/ai/chat",
            "status": 200,
            "duration_ms": 150.5,
        },
    )
    
    output = stream.getvalue()
    
    assert "req-123" in output
    assert "/v1/ai/chat" in output
    assert "200" in output
    assert "[REDACTED]" not in output


def test_sensitive_filter_redacts_nested_dicts():
    """Ensure nested sensitive fields are redacted."""
    
    logger = logging.getLogger("test_nested")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    
    logger.info(
        "nested_event",
        extra={
            "headers": {
                "x-api-key": "secret-key",
                "user-agent": "pytest",
            },
            "safe_data": {
                "count": 5,
                "type": "test",
            },
        },
    )
    
    output = stream.getvalue()
    
    assert "secret-key" not in output
    assert "[REDACTED]" in output
    assert "pytest" in output
    assert "test" in output


def test_hash_for_log_is_stable_and_short():
    """Hashed identifiers correlate across lines without exposing the value."""

    first = hash_for_log("user@example.com")

    assert first == hash_for_log("user@example.com")
    assert first != hash_for_log("other@example.com")
    assert len(first) == 16
    assert "example" not in first
