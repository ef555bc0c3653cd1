"""
Tests for the credential store
"""

import pytest

from sessionguard.core.errors import DuplicateEmail, UserNotFoundError


class TestCredentialStore:
    """Test user record persistence"""

    def test_insert_and_find(self, store, clock):
        user_id = store.insert("Ana Silva", "ana@x.com", "$argon2id$digest")
        user = store.find_by_email("ana@x.com")

        assert user.id == user_id
        assert user.name == "Ana Silva"
        assert user.active is True
        assert user.created_at == clock()
        assert user.last_login_at is None
        assert user.avatar_path is None

    def test_find_is_case_insensitive(self, store):
        store.insert("Ana Silva", "ana@x.com", "digest")
        assert store.find_by_email("ANA@X.COM") is not None

    def test_find_unknown_returns_none(self, store):
        assert store.find_by_email("nobody@x.com") is None
        assert store.get_user(999) is None

    def test_duplicate_insert_raises(self, store):
        """Storage constraint rejects a second record for the same email"""
        store.insert("Ana Silva", "ana@x.com", "digest")

        with pytest.raises(DuplicateEmail) as exc_info:
            store.insert("Other Ana", "Ana@X.com", "digest")

        assert exc_info.value.email == "Ana@X.com"
        assert len(store.list_users()) == 1

    def test_exists_by_email_excluding_own_id(self, store):
        ana = store.insert("Ana Silva", "ana@x.com", "digest")
        bruno = store.insert("Bruno Lima", "bruno@x.com", "digest")

        assert store.exists_by_email("ana@x.com") is True
        assert store.exists_by_email("ana@x.com", excluding_id=ana) is False
        assert store.exists_by_email("ana@x.com", excluding_id=bruno) is True
        assert store.exists_by_email("carla@x.com") is False

    def test_update_profile_keeps_digest_without_new_one(self, store):
        user_id = store.insert("Ana Silva", "ana@x.com", "original")
        store.update_profile(user_id, "Ana S.", "ana.s@x.com")

        user = store.get_user(user_id)
        assert user.name == "Ana S."
        assert user.email == "ana.s@x.com"
        assert user.password_hash == "original"

    def test_update_profile_with_digest(self, store):
        user_id = store.insert("Ana Silva", "ana@x.com", "original")
        store.update_profile(user_id, "Ana Silva", "ana@x.com", password_hash="replacement")

        assert store.get_user(user_id).password_hash == "replacement"

    def test_update_profile_to_taken_email(self, store):
        store.insert("Ana Silva", "ana@x.com", "digest")
        bruno = store.insert("Bruno Lima", "bruno@x.com", "digest")

        with pytest.raises(DuplicateEmail):
            store.update_profile(bruno, "Bruno Lima", "ana@x.com")

    def test_update_missing_user(self, store):
        with pytest.raises(UserNotFoundError):
            store.update_profile(42, "Ghost", "ghost@x.com")

    def test_touch_last_login(self, store, clock):
        user_id = store.insert("Ana Silva", "ana@x.com", "digest")
        clock.advance(60)
        store.touch_last_login(user_id)

        assert store.get_user(user_id).last_login_at == clock()

    def test_set_active(self, store):
        user_id = store.insert("Ana Silva", "ana@x.com", "digest")
        store.set_active(user_id, False)
        assert store.get_user(user_id).active is False

        with pytest.raises(UserNotFoundError):
            store.set_active(999, True)

    def test_list_users_newest_first(self, store, clock):
        store.insert("Ana Silva", "ana@x.com", "digest")
        clock.advance(10)
        store.insert("Bruno Lima", "bruno@x.com", "digest")

        assert [u.name for u in store.list_users()] == ["Bruno Lima", "Ana Silva"]

    def test_repr_hides_digest(self, store):
        user_id = store.insert("Ana Silva", "ana@x.com", "$argon2id$secret-digest")
        assert "secret-digest" not in repr(store.get_user(user_id))
