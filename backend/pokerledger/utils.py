import logging
from fastapi import Request, HTTPException, status
from jose import jwt
from pokerledger.config import AUTH_PROVIDER, SUPABASE_JWT_SECRET, FIREBASE_PROJECT_ID

# Firebase 用
from google.oauth2 import id_token
from google.auth.transport.requests import Request as GoogleRequest

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> str:
    auth = request.headers.get("Authorization")
    if not auth or not auth.startswith("Bearer "):
        logger.warning("Authorization header missing or invalid")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return auth.split()[1]


def decode_user_id(token: str) -> str:
    """Resolve the user id (``sub``) from a Supabase JWT or a Firebase ID token."""
    if AUTH_PROVIDER == "supabase":
        try:
            payload = jwt.decode(
                token,
                SUPABASE_JWT_SECRET,
                algorithms=["HS256"],
                audience="authenticated"
            )
            user_id = payload.get("sub")
        except Exception as e:
            logger.error("Supabase JWT decode error: %s", e)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Supabase decode error: {e}"
            )

    elif AUTH_PROVIDER == "firebase":
        try:
            id_info = id_token.verify_firebase_token(
                token,
                GoogleRequest(),
                audience=FIREBASE_PROJECT_ID
            )
            # Token によっては "user_id"、または "sub" にユーザー UID が入っている
            user_id = id_info.get("user_id") or id_info.get("sub")
        except Exception as e:
            logger.error("Firebase token verify error: %s", e)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid Firebase token"
            )
    else:
        logger.error("Unknown AUTH_PROVIDER: %s", AUTH_PROVIDER)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail="Invalid AUTH_PROVIDER setting")

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not retrieve user id from token"
        )
    return user_id


async def get_current_uid(request: Request) -> str:
    return decode_user_id(_bearer_token(request))
