"""
HTTP Digest authentication (RFC 2069 / RFC 2617) for Dahua controllers.

The controllers issue a fresh nonce on every 401, so a challenge is parsed and
answered once per request. Only the MD5 algorithm is supported; the ``auth-int``
quality of protection is not, since no command needs body integrity.
"""

import hashlib
import os
import re
from dataclasses import dataclass
from typing import Dict, Optional

NONCE_COUNT = "00000001"

_DIGEST_SCHEME_RE = re.compile(r"(?:^|[\s,])Digest\s+", re.IGNORECASE)
_PARAM_RE = re.compile(r'(\w+)\s*=\s*(?:"((?:[^"\\]|\\.)*)"|([^\s,]+))')


class DigestChallengeError(ValueError):
    """The WWW-Authenticate header cannot be answered with digest auth"""


@dataclass(frozen=True)
class DigestChallenge:
    realm: str
    nonce: str
    qop: Optional[str] = None
    opaque: Optional[str] = None
    algorithm: str = "MD5"


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def parse_challenge(header: Optional[str]) -> DigestChallenge:
    """Parse a ``WWW-Authenticate: Digest ...`` header"""
    if not header:
        raise DigestChallengeError("No authentication challenge in 401 response")

    # requests joins repeated WWW-Authenticate headers with ", "
    scheme_match = _DIGEST_SCHEME_RE.search(header)
    if not scheme_match:
        scheme = header.strip().split(" ", 1)[0]
        raise DigestChallengeError(f"Unsupported authentication scheme: {scheme}")

    params: Dict[str, str] = {}
    for match in _PARAM_RE.finditer(header[scheme_match.end():]):
        key = match.group(1).lower()
        value = match.group(2) if match.group(2) is not None else match.group(3)
        params.setdefault(key, value)

    if "nonce" not in params:
        raise DigestChallengeError("Digest challenge has no nonce")

    algorithm = params.get("algorithm", "MD5")
    if algorithm.upper() != "MD5":
        raise DigestChallengeError(f"Unsupported digest algorithm: {algorithm}")

    qop = None
    if params.get("qop"):
        offered = [option.strip().lower() for option in params["qop"].split(",")]
        if "auth" not in offered:
            raise DigestChallengeError(f"Unsupported qop options: {params['qop']}")
        qop = "auth"

    return DigestChallenge(
        realm=params.get("realm", ""),
        nonce=params["nonce"],
        qop=qop,
        opaque=params.get("opaque"),
        algorithm=algorithm,
    )


def generate_cnonce() -> str:
    return os.urandom(8).hex()


def compute_response(
    username: str,
    password: str,
    challenge: DigestChallenge,
    method: str,
    uri: str,
    cnonce: Optional[str] = None,
    nc: str = NONCE_COUNT,
) -> str:
    """Digest ``response`` value for a request"""
    ha1 = md5_hex(f"{username}:{challenge.realm}:{password}")
    ha2 = md5_hex(f"{method.upper()}:{uri}")

    if challenge.qop:
        if cnonce is None:
            raise ValueError("cnonce is required when qop is present")
        return md5_hex(f"{ha1}:{challenge.nonce}:{nc}:{cnonce}:{challenge.qop}:{ha2}")

    return md5_hex(f"{ha1}:{challenge.nonce}:{ha2}")


def build_authorization_header(
    username: str,
    password: str,
    challenge: DigestChallenge,
    method: str,
    uri: str,
    cnonce: Optional[str] = None,
) -> str:
    """Authorization header answering the challenge"""
    if challenge.qop and cnonce is None:
        cnonce = generate_cnonce()

    response = compute_response(username, password, challenge, method, uri, cnonce)

    parts = [
        f'username="{username}"',
        f'realm="{challenge.realm}"',
        f'nonce="{challenge.nonce}"',
        f'uri="{uri}"',
    ]
    if challenge.qop:
        parts += [f"qop={challenge.qop}", f"nc={NONCE_COUNT}", f'cnonce="{cnonce}"']
    parts.append(f'response="{response}"')
    if challenge.opaque is not None:
        parts.append(f'opaque="{challenge.opaque}"')
    if challenge.algorithm:
        parts.append(f"algorithm={challenge.algorithm}")

    return "Digest " + ", ".join(parts)
