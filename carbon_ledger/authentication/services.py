import datetime

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from carbon_ledger.authentication.schemas import Identity
from carbon_ledger.core.errors import Unauthorized
from carbon_ledger.logging_config import logger
from carbon_ledger.settings import settings as st

bearer_scheme = HTTPBearer(auto_error=False)


JWT_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired JWT access-token",
    headers={"WWW-Authenticate": "Bearer"},
)


MISSING_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Missing authentication credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


def create_access_token(
    data: dict, expires_delta: datetime.timedelta | None = None
) -> str:
    """Create an access token with the provided data and expiration.

    Tokens are minted by the authentication service; the ledger only needs
    this to issue tokens for its operators and its tests.

    Args:
        data (dict): The claims to encode, including organisation_id and is_admin.
        expires_delta (datetime.timedelta): The time until the token expires.

    Returns:
        str: The encoded JWT token.
    """
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = datetime.timedelta(minutes=st.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": datetime.datetime.now(datetime.timezone.utc) + expires_delta})
    return jwt.encode(to_encode, st.JWT_SECRET_KEY, algorithm=st.JWT_ALGORITHM)


def decode_identity(token: str) -> Identity:
    try:
        payload = jwt.decode(token, st.JWT_SECRET_KEY, algorithms=[st.JWT_ALGORITHM])
        return Identity.model_validate(payload)
    except (JWTError, ValidationError) as e:
        logger.warning(f"Rejected access token: {str(e)}")
        raise JWT_CREDENTIALS_EXCEPTION


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    """Return the identity carried by the bearer token.

    The token signature is verified and its claims are trusted as-is; user
    and credential management live with the authentication service.

    Raises:
        HTTPException: 401 if the token is missing, malformed or expired.
    """
    if credentials is None:
        raise MISSING_CREDENTIALS_EXCEPTION
    return decode_identity(credentials.credentials)


def validate_admin(identity: Identity):
    if not identity.is_admin:
        msg = f"Organisation {identity.organisation_id} is not a registry administrator"
        logger.error(msg)
        raise Unauthorized(msg)
