"""
Clerk session token verification.

Two modes, picked from settings:
- CLERK_SECRET_KEY set: HS256 with the shared secret (development, tests)
- otherwise: RS256 against the instance JWKS, located by CLERK_JWKS_URL
  or derived from CLERK_ISSUER

Every failure surfaces as jwt.PyJWTError so callers have one thing to
catch. Tests inject a JWKS with set_jwks_provider_for_tests() and mint
tokens with create_test_jwt(); nothing here touches the network then.
"""
import time
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
import jwt

from aisaint.core.config import settings

JWKS_TTL_SECONDS = 3600
JWKS_FETCH_TIMEOUT = 5.0

JwksProvider = Callable[[str, str], Dict[str, Any]]

_jwks_provider_override: Optional[JwksProvider] = None
# jwks url -> (fetched_at, key set)
_jwks_cache: Dict[str, Tuple[float, jwt.PyJWKSet]] = {}


def set_jwks_provider_for_tests(provider: Optional[JwksProvider]) -> None:
    """Install (or clear with None) a JWKS source and drop cached key sets."""
    global _jwks_provider_override
    _jwks_provider_override = provider
    _jwks_cache.clear()


def _jwks_url(issuer: Optional[str]) -> str:
    if settings.CLERK_JWKS_URL:
        return settings.CLERK_JWKS_URL
    if not issuer:
        raise jwt.PyJWTError("CLERK_ISSUER or CLERK_JWKS_URL must be configured for RS256 verification")
    return f"{issuer.rstrip('/')}/.well-known/jwks.json"


async def _fetch_jwks(issuer: str, url: str) -> Dict[str, Any]:
    if _jwks_provider_override is not None:
        return _jwks_provider_override(issuer, url)
    try:
        async with httpx.AsyncClient(timeout=JWKS_FETCH_TIMEOUT) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise jwt.PyJWTError(f"Unable to fetch JWKS: {exc}") from exc


async def get_signing_keys(issuer: Optional[str]) -> jwt.PyJWKSet:
    """Key set for the configured Clerk instance, cached for JWKS_TTL_SECONDS."""
    url = _jwks_url(issuer)
    cached = _jwks_cache.get(url)
    if cached and time.monotonic() - cached[0] < JWKS_TTL_SECONDS:
        return cached[1]

    key_set = jwt.PyJWKSet.from_dict(await _fetch_jwks(issuer or "", url))
    _jwks_cache[url] = (time.monotonic(), key_set)
    return key_set


async def _signing_key(token: str, issuer: Optional[str]) -> Any:
    kid = jwt.get_unverified_header(token).get("kid")
    if not kid:
        raise jwt.PyJWTError("Token missing 'kid' in header")
    for key in (await get_signing_keys(issuer)).keys:
        if key.key_id == kid:
            return key.key
    raise jwt.PyJWTError(f"Key ID '{kid}' not found in JWKS")


async def verify_jwt_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry; return the claims (sub is the user id)."""
    if settings.CLERK_SECRET_KEY:
        return jwt.decode(
            token,
            settings.CLERK_SECRET_KEY,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )

    issuer = settings.CLERK_ISSUER
    audience = settings.CLERK_AUDIENCE
    return jwt.decode(
        token,
        await _signing_key(token, issuer),
        algorithms=["RS256"],
        audience=audience,
        issuer=issuer,
        options={"verify_aud": bool(audience), "verify_iss": bool(issuer)},
    )


def create_test_jwt(
    sub: str = "test_user_123",
    email: Optional[str] = "test@example.com",
    exp_minutes: int = 60,
    secret: str = "test-secret-key-for-aisaint-tests-0000",
    algorithm: str = "HS256",
    private_key: Optional[str] = None,
    kid: Optional[str] = None,
    issuer: Optional[str] = None,
    audience: Optional[str] = None,
) -> str:
    """Mint a token shaped like a Clerk session token (tests only)."""
    now = int(time.time())
    claims = {
        "sub": sub,
        "email": email,
        "iat": now,
        "exp": now + exp_minutes * 60,
        "iss": issuer or settings.CLERK_ISSUER or "https://test.clerk.accounts.dev",
    }
    if audience or settings.CLERK_AUDIENCE:
        claims["aud"] = audience or settings.CLERK_AUDIENCE

    signing_key = private_key if algorithm == "RS256" else secret
    return jwt.encode(claims, signing_key, algorithm=algorithm, headers={"kid": kid} if kid else None)
