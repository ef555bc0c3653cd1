"""
Tests for Argon2id password hashing
"""

import pytest

from sessionguard.core.auth.argon2_auth import Argon2Hasher
from sessionguard.core.config import SecurityConfig


class TestArgon2Hasher:
    """Test hashing and verification contract"""

    def test_digest_is_self_describing(self, hasher):
        """Digest carries algorithm, version and cost parameters"""
        digest = hasher.hash("secret1")

        assert digest.startswith("$argon2id$v=19$")
        assert "m=1024,t=1,p=1" in digest

    def test_same_password_gets_fresh_salt(self, hasher):
        assert hasher.hash("secret1") != hasher.hash("secret1")

    def test_verify_roundtrip(self, hasher):
        digest = hasher.hash("secret1")

        assert hasher.verify("secret1", digest) is True
        assert hasher.verify("secret2", digest) is False

    @pytest.mark.parametrize("digest", ["", None, "not-a-digest", "$argon2id$v=19$garbage"])
    def test_malformed_digest_verifies_false(self, hasher, digest):
        """Malformed digests never raise"""
        assert hasher.verify("secret1", digest) is False

    def test_empty_password_never_verifies(self, hasher):
        digest = hasher.hash("secret1")
        assert hasher.verify("", digest) is False

    def test_hash_rejects_empty_password(self, hasher):
        with pytest.raises(ValueError):
            hasher.hash("")

    def test_verify_dummy_always_false(self, hasher):
        assert hasher.verify_dummy("secret1") is False
        assert hasher.verify_dummy("") is False

    def test_digests_from_other_parameters_still_verify(self, hasher):
        """Raising the cost later keeps old digests usable"""
        stronger = Argon2Hasher(memory_cost=2048, time_cost=2, parallelism=1)
        digest = stronger.hash("secret1")

        assert hasher.verify("secret1", digest) is True
        assert hasher.needs_rehash(digest) is True
        assert hasher.needs_rehash(hasher.hash("secret1")) is False

    def test_needs_rehash_for_malformed_digest(self, hasher):
        assert hasher.needs_rehash("not-a-digest") is True


class TestArgon2Parameters:
    """Test parameter validation and configuration"""

    def test_defaults_follow_owasp(self):
        params = Argon2Hasher().parameters

        assert params["memory_cost"] == 102400
        assert params["time_cost"] == 2
        assert params["parallelism"] == 4
        assert params["hash_length"] == 32
        assert params["salt_length"] == 16

    def test_from_config(self):
        security = SecurityConfig(argon2_memory_cost=4096, argon2_time_cost=3, argon2_parallelism=2)
        params = Argon2Hasher.from_config(security).parameters

        assert params["memory_cost"] == 4096
        assert params["time_cost"] == 3
        assert params["parallelism"] == 2

    @pytest.mark.parametrize("kwargs", [
        {"parallelism": 0},
        {"memory_cost": 4, "parallelism": 1},
        {"time_cost": 0},
        {"hash_length": 8},
        {"salt_length": 4},
    ])
    def test_rejects_weak_parameters(self, kwargs):
        with pytest.raises(ValueError):
            Argon2Hasher(**kwargs)
