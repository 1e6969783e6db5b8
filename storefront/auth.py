from fastapi import Header, HTTPException
from jose import JWTError, jwt

from storefront import config


def verify_token(authorization: str = Header(None)):
    """Bearer JWT (HS256, JWT_SECRET) for the operator endpoints."""
    secret = config.jwt_secret()
    try:
        scheme, token = (authorization or "").split()
        if scheme.lower() != "bearer" or not secret:
            raise ValueError("unsupported scheme")
        return jwt.decode(token, secret, algorithms=["HS256"])
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")
