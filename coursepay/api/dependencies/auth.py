"""
Request-scoped dependencies: the authenticated caller and the billing services.

Tokens are issued by the LMS auth service; this API only verifies them.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from coursepay.core.logging_config import get_logger
from coursepay.core.security import CurrentUser, decode_access_token
from coursepay.services.payments.payment_service import PaymentService
from coursepay.services.payments.subscription_service import SubscriptionService

logger = get_logger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        return decode_access_token(token)
    except JWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise credentials_exception


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service


def get_subscription_service(request: Request) -> SubscriptionService:
    return request.app.state.subscription_service
