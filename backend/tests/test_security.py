from backend.app.security import hash_password, verify_password


def test_password_hash_roundtrip():
    h = hash_password("correct horse")
    assert h != "correct horse"
    assert h.startswith("$2")
    assert verify_password("correct horse", h) is True
    assert verify_password("wrong horse", h) is False


def test_verify_password_without_hash_is_false():
    assert verify_password("anything", None) is False
    assert verify_password("anything", "") is False
