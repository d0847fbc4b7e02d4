import logging
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from mepcalls.core.config import settings
from mepcalls.core.database import get_db
from mepcalls.core.security import create_access_token, verify_password
from mepcalls.models import User
from mepcalls.schemas import LoginRequest, TokenResponse
from mepcalls.services.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
rate_limiter = RateLimiter()


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    client_key = request.client.host if request.client else payload.phone
    if settings.rate_limit_enabled and not rate_limiter.hit(client_key):
        logger.warning("Login rate limited for %s", client_key)
        raise HTTPException(status_code=429, detail="Too many attempts")
    user = db.query(User).filter(User.phone == payload.phone).first()
    if not user or not verify_password(payload.password, user.hashed_password):
        logger.info("Failed login for %s", payload.phone)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User inactive")
    if settings.rate_limit_enabled:
        rate_limiter.reset(client_key)
    return TokenResponse(access_token=create_access_token(user.phone, user.role.value))
