"""Tests for consent token issuing."""

import re

from consentlink.services.tokens import generate_consent_token, issue_tokens, token_hint


class TestConsentTokens:
    def test_default_length_is_64_hex_chars(self):
        token = generate_consent_token()
        assert re.fullmatch(r"[0-9a-f]{64}", token)

    def test_custom_byte_count(self):
        assert len(generate_consent_token(16)) == 32

    def test_tokens_are_not_repeated(self):
        tokens = {generate_consent_token() for _ in range(500)}
        assert len(tokens) == 500

    def test_issue_batch_is_distinct(self):
        tokens = issue_tokens(50)
        assert len(tokens) == 50
        assert len(set(tokens)) == 50

    def test_issue_zero(self):
        assert issue_tokens(0) == []

    def test_hint_is_short_prefix(self):
        token = generate_consent_token()
        assert token_hint(token) == token[:8]
        assert token_hint("abc") == "abc"
