# tests/test_signature.py
from hookpanel.static.signature import SignatureVerifier, body_signature, url_signature

SECRET = "a" * 64
SCRIPT_ID = "0b6e5a3c-4a51-4a0e-9d62-6f0e2f1d7a10"


def test_valid_url_signature_is_accepted():
    signature = url_signature(SECRET, SCRIPT_ID)
    assert SignatureVerifier.verify(SECRET, SCRIPT_ID, b"", signature) == (True, None)


def test_same_signature_can_be_reused():
    signature = url_signature(SECRET, SCRIPT_ID)
    assert SignatureVerifier.verify(SECRET, SCRIPT_ID, b"first", signature)[0]
    assert SignatureVerifier.verify(SECRET, SCRIPT_ID, b"second", signature)[0]


def test_flipping_any_character_rejects():
    signature = url_signature(SECRET, SCRIPT_ID)
    for index in range(len(signature)):
        flipped = "0" if signature[index] != "0" else "1"
        tampered = signature[:index] + flipped + signature[index + 1:]
        valid, message = SignatureVerifier.verify(SECRET, SCRIPT_ID, b"", tampered)
        assert not valid
        assert message == "Invalid signature"


def test_missing_signature_rejects():
    assert SignatureVerifier.verify(SECRET, SCRIPT_ID, b"", None) == (False, "Missing signature")
    assert SignatureVerifier.verify(SECRET, SCRIPT_ID, b"", "") == (False, "Missing signature")


def test_signature_is_bound_to_script_id():
    signature = url_signature(SECRET, SCRIPT_ID)
    assert not SignatureVerifier.verify(SECRET, "another-script", b"", signature)[0]


def test_rotated_secret_invalidates_old_signature():
    old = url_signature(SECRET, SCRIPT_ID)
    assert not SignatureVerifier.verify("b" * 64, SCRIPT_ID, b"", old)[0]


def test_body_signature():
    body = b'{"ref": "refs/heads/main"}'
    signature = body_signature(SECRET, body)
    assert signature.startswith("sha256=")
    assert SignatureVerifier.verify(SECRET, SCRIPT_ID, body, signature)[0]
    assert not SignatureVerifier.verify(SECRET, SCRIPT_ID, body + b" ", signature)[0]


def test_query_parameter_wins_over_header():
    assert SignatureVerifier.extract("from-query", "from-header") == "from-query"
    assert SignatureVerifier.extract(None, "from-header") == "from-header"
    assert SignatureVerifier.extract(None, None) is None
