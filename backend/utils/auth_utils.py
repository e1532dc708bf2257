import json
import logging
import time
from typing import Any, Callable, Dict, Iterable, Optional
import urllib.request

from fastapi import Depends, HTTPException, status, Request
from jose import jwt
from jose.exceptions import JWTError

from schemas.actor import Actor, Role

# === Cognito Configuration ===
# You can find these in your AWS Cognito User Pool settings.
import os
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("auth")

COGNITO_REGION = os.getenv("COGNITO_REGION", "eu-north-1")
COGNITO_USER_POOL_ID = os.getenv("COGNITO_USER_POOL_ID")
COGNITO_APP_CLIENT_ID = os.getenv("COGNITO_APP_CLIENT_ID")

# --- Advanced Configuration ---
# These are constructed from the settings above.
COGNITO_ISSUER = f"https://cognito-idp.{COGNITO_REGION}.amazonaws.com/{COGNITO_USER_POOL_ID}"
COGNITO_JWKS_URL = f"{COGNITO_ISSUER}/.well-known/jwks.json"

JWKS_CACHE_SECONDS = 60 * 60 * 24

# =================================================================

# Cache for Cognito's public keys (JWKS)
# This avoids fetching the keys on every single request.
jwks_cache = {
    "keys": [],
    "expiration_time": 0,
}


def get_jwks():
    """
    Retrieves the JSON Web Key Set (JWKS) from Cognito.
    Caches the keys for a day.
    """
    global jwks_cache
    if jwks_cache["keys"] and jwks_cache["expiration_time"] > time.time():
        return jwks_cache["keys"]

    logger.info(f"Fetching JWKS from: {COGNITO_JWKS_URL}")
    try:
        with urllib.request.urlopen(COGNITO_JWKS_URL) as response:
            jwks_data = json.loads(response.read().decode("utf-8"))

        jwks_cache = {
            "keys": jwks_data["keys"],
            "expiration_time": time.time() + JWKS_CACHE_SECONDS,
        }
        return jwks_cache["keys"]
    except Exception as e:
        logger.error(f"Error fetching JWKS: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not fetch Cognito public keys for token validation."
        )


def get_current_user(request: Request) -> Dict[str, Any]:
    """
    FastAPI dependency to validate the Cognito JWT from the Authorization header.

    Returns the verified token claims.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header is missing",
        )

    # The token is expected to be in the format "Bearer <token>"
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
        )

    token = parts[1]
    jwks = get_jwks()

    # Find the right key to use for decoding
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token header"
        )

    rsa_key = {}
    for key in jwks:
        if key["kid"] == unverified_header.get("kid"):
            rsa_key = {
                "kty": key["kty"],
                "kid": key["kid"],
                "use": key["use"],
                "n": key["n"],
                "e": key["e"],
            }
            break

    if not rsa_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unable to find a matching public key to verify the token",
        )

    # Decode and validate the token
    try:
        payload = jwt.decode(
            token,
            rsa_key,
            algorithms=["RS256"],
            audience=COGNITO_APP_CLIENT_ID,
            issuer=COGNITO_ISSUER,
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired"
        )
    except jwt.JWTClaimsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token claims: {e}"
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token validation failed: {e}"
        )


def get_user_identifier(user: Dict[str, Any]) -> Optional[str]:
    """Stable identifier for audit columns: the Cognito subject, else the username or email."""
    if not user:
        return None
    return user.get("sub") or user.get("cognito:username") or user.get("username") or user.get("email")


def get_user_role(user: Dict[str, Any]) -> Optional[Role]:
    """Role from the custom:role claim, falling back to the first known Cognito group."""
    candidates = [user.get("custom:role")] + list(user.get("cognito:groups") or [])
    for candidate in candidates:
        if not candidate:
            continue
        try:
            return Role(str(candidate).strip().lower())
        except ValueError:
            continue
    return None


def get_current_actor(user: Dict[str, Any] = Depends(get_current_user)) -> Actor:
    identifier = get_user_identifier(user)
    role = get_user_role(user)
    if not identifier or role is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token does not carry a user id and a recognised role",
        )
    return Actor(id=identifier, role=role)


def require_role(roles: Iterable[Role]) -> Callable[..., Actor]:
    """
    Dependency factory restricting an endpoint to the given roles.

    Usage:
        @router.post("/", dependencies=[Depends(require_role(ADMIN_ROLES))])
    """
    allowed = frozenset(roles)

    def _dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{actor.role.value}' is not allowed to perform this action",
            )
        return actor

    return _dependency
