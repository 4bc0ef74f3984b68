import pytest

from room_access.device.digest_auth import (
    DigestChallenge,
    DigestChallengeError,
    build_authorization_header,
    compute_response,
    md5_hex,
    parse_challenge,
)

pytestmark = pytest.mark.unit

RFC_CHALLENGE = (
    'Digest realm="testrealm@host.com", qop="auth,auth-int", '
    'nonce="dcd98b7102dd2f0e8b11d0f600bfb0c093", '
    'opaque="5ccc069c403ebaf9f0171e9517f40e41"'
)


def test_rfc2617_response_vector():
    challenge = parse_challenge(RFC_CHALLENGE)

    response = compute_response(
        "Mufasa", "Circle Of Life", challenge, "GET", "/dir/index.html", cnonce="0a4f113b"
    )

    assert response == "6629fae49393a05397450978507c4ef1"


def test_response_without_qop_uses_rfc2069_formula():
    challenge = DigestChallenge(realm="R", nonce="N")

    expected = md5_hex(f"{md5_hex('user:R:pass')}:N:{md5_hex('GET:/cgi-bin/x.cgi')}")

    assert compute_response("user", "pass", challenge, "GET", "/cgi-bin/x.cgi") == expected


def test_parse_challenge_reads_all_parameters():
    challenge = parse_challenge(RFC_CHALLENGE)

    assert challenge.realm == "testrealm@host.com"
    assert challenge.nonce == "dcd98b7102dd2f0e8b11d0f600bfb0c093"
    assert challenge.qop == "auth"
    assert challenge.opaque == "5ccc069c403ebaf9f0171e9517f40e41"


def test_parse_challenge_finds_digest_among_combined_headers():
    challenge = parse_challenge('Basic realm="x", Digest realm="dev", nonce="abc"')

    assert challenge.realm == "dev"
    assert challenge.nonce == "abc"
    assert challenge.qop is None


@pytest.mark.parametrize(
    "header",
    [
        None,
        "",
        'Basic realm="device"',
        'Digest realm="device"',
        'Digest realm="d", nonce="n", algorithm=SHA-256',
        'Digest realm="d", nonce="n", qop="auth-int"',
    ],
)
def test_parse_challenge_rejects_unusable_headers(header):
    with pytest.raises(DigestChallengeError):
        parse_challenge(header)


def test_authorization_header_with_qop():
    challenge = parse_challenge(RFC_CHALLENGE)

    header = build_authorization_header(
        "Mufasa", "Circle Of Life", challenge, "GET", "/dir/index.html", cnonce="0a4f113b"
    )

    assert header.startswith("Digest ")
    assert 'username="Mufasa"' in header
    assert 'uri="/dir/index.html"' in header
    assert "qop=auth" in header
    assert "nc=00000001" in header
    assert 'cnonce="0a4f113b"' in header
    assert 'response="6629fae49393a05397450978507c4ef1"' in header
    assert 'opaque="5ccc069c403ebaf9f0171e9517f40e41"' in header


def test_authorization_header_without_qop_omits_nonce_count():
    challenge = DigestChallenge(realm="R", nonce="N")

    header = build_authorization_header("user", "pass", challenge, "GET", "/x")

    assert "nc=" not in header
    assert "cnonce=" not in header
    assert "opaque=" not in header
