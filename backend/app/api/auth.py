import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyCookie
from jose import JWTError, jwt
from config import SECRET_KEY, ALGORITHM
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User

logger = logging.getLogger(__name__)

cookie_scheme = APIKeyCookie(name="access_token")

def get_current_user(token: str = Depends(cookie_scheme), db: Session = Depends(get_db)) -> User:
    """Resolve the signed-in user from the session cookie set by the main app."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Session expired. Please re-login.",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not SECRET_KEY:
        logger.error("SECRET_KEY is not set; cannot verify session tokens")
        raise credentials_exception

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        email = payload.get("sub")
        if email is None:
            raise credentials_exception
    except JWTError:
        # Expired or tampered token
        raise credentials_exception

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise credentials_exception

    return user
