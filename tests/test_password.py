"""Password hashing tests."""

from ecovale_hr.auth.password import hash_password, verify_password


def test_hash_and_verify():
    hashed = hash_password("correct horse", rounds=4)
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_salted():
    assert hash_password("same", rounds=4) != hash_password("same", rounds=4)


def test_long_passwords_truncated_at_72_bytes():
    base = "a" * 72
    hashed = hash_password(base + "suffix-one", rounds=4)
    assert verify_password(base + "suffix-two", hashed)


def test_malformed_hash_never_matches():
    assert not verify_password("anything", "not-a-bcrypt-hash")
    assert not verify_password("anything", "")
