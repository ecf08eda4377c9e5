"""TokenAccessCache 单元测试"""

from __future__ import annotations

import pytest

from gitrestcache.core.exceptions import ValidationError
from gitrestcache.services.gitcache.tokens import TokenAccessCache


class TestTokenAccessCache:

    @pytest.fixture()
    def tokens(self, fake_clock):
        return TokenAccessCache(ttl=10, max_size=3, clock=fake_clock)

    def test_set_and_has(self, tokens):
        assert not tokens.has("t1", "H1")
        tokens.set("t1", "H1")
        assert tokens.has("t1", "H1")
        assert not tokens.has("t1", "H2")
        assert not tokens.has("t2", "H1")

    def test_expiry(self, tokens, fake_clock):
        tokens.set("t1", "H1")
        fake_clock.advance(10)
        assert not tokens.has("t1", "H1")
        assert len(tokens) == 0

    def test_hit_extends_ttl(self, tokens, fake_clock):
        tokens.set("t1", "H1")
        fake_clock.advance(8)
        assert tokens.has("t1", "H1")
        fake_clock.advance(8)
        assert tokens.has("t1", "H1")

    def test_remove(self, tokens):
        tokens.set("t1", "H1")
        tokens.remove("t1", "H1")
        tokens.remove("t1", "H1")
        assert not tokens.has("t1", "H1")

    def test_evicts_least_recently_used(self, tokens):
        tokens.set("t1", "H1")
        tokens.set("t2", "H1")
        tokens.set("t3", "H1")
        assert tokens.has("t1", "H1")
        tokens.set("t4", "H1")

        assert len(tokens) == 3
        assert not tokens.has("t2", "H1")
        assert tokens.has("t1", "H1")
        assert tokens.has("t4", "H1")

    def test_purge_expired(self, tokens, fake_clock):
        tokens.set("t1", "H1")
        fake_clock.advance(5)
        tokens.set("t2", "H1")
        fake_clock.advance(6)
        assert tokens.purge_expired() == 1
        assert len(tokens) == 1

    def test_clear(self, tokens):
        tokens.set("t1", "H1")
        tokens.clear()
        assert len(tokens) == 0

    def test_identity_with_separator_rejected(self, tokens):
        with pytest.raises(ValidationError, match="分隔符"):
            tokens.set("t1", "a|b")

    def test_token_may_contain_separator(self, tokens):
        tokens.set("a|b", "H1")
        assert tokens.has("a|b", "H1")
        assert not tokens.has("a", "H1")
