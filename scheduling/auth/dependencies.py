from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from scheduling.auth import jwt_handler
from scheduling.database import get_db
from scheduling.models.user import User, DOCTOR_ROLE

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_current_user_id(current_user: User = Depends(get_current_user)) -> int:
    return current_user.id


def require_doctor(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != DOCTOR_ROLE:
        raise HTTPException(status_code=403, detail="Only doctors can manage availability and appointments.")
    return current_user
