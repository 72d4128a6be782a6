"""JWT decoding.

Tokens are issued by the identity service, not here. Claims read:
  - sub:   acting user id
  - type:  must be "access" when present
  - exp:   expiry timestamp (checked by python-jose)
"""

from jose import JWTError, jwt

from careaccess.config import settings

ALGORITHM = settings.jwt_algorithm


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
