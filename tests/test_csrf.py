import base64

from src.services.csrf import CSRFProtection


def test_token_round_trip(clock):
    protection = CSRFProtection("secret", clock=clock)
    token = protection.generate_token("operator-1")

    assert protection.validate_token(token, "operator-1")


def test_token_bound_to_session(clock):
    protection = CSRFProtection("secret", clock=clock)
    token = protection.generate_token("operator-1")

    assert not protection.validate_token(token, "operator-2")


def test_session_ids_may_contain_colons(clock):
    protection = CSRFProtection("secret", clock=clock)
    token = protection.generate_token("tenant:operator:1")

    assert protection.validate_token(token, "tenant:operator:1")


def test_token_expires(clock):
    protection = CSRFProtection("secret", max_age_seconds=60, clock=clock)
    token = protection.generate_token("operator-1")

    clock.advance(seconds=61)

    assert not protection.validate_token(token, "operator-1")


def test_foreign_signature_rejected(clock):
    token = CSRFProtection("other", clock=clock).generate_token("operator-1")

    assert not CSRFProtection("secret", clock=clock).validate_token(
        token, "operator-1"
    )


def test_malformed_tokens_rejected(clock):
    protection = CSRFProtection("secret", clock=clock)
    garbage = base64.b64encode(b"no-separators").decode("ascii")

    assert not protection.validate_token(None, "operator-1")
    assert not protection.validate_token("", "operator-1")
    assert not protection.validate_token("%%%not-base64%%%", "operator-1")
    assert not protection.validate_token(garbage, "operator-1")
    assert not protection.validate_token(
        protection.generate_token("operator-1"), None
    )
