import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from mepcalls.core.database import get_db
from mepcalls.core.deps import get_current_user, require_admin
from mepcalls.core.security import hash_password
from mepcalls.models import Role, User
from mepcalls.schemas import StaffCreate, UserOut

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


@router.get("/users/me", response_model=UserOut)
def get_me(user: User = Depends(get_current_user)):
    return user


@router.get("/staff", response_model=list[UserOut])
def list_staff(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return db.query(User).filter(User.role == Role.STAFF).order_by(User.name).all()


@router.post("/staff", response_model=UserOut)
def create_staff(payload: StaffCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    existing = db.query(User).filter(User.phone == payload.phone).first()
    if existing:
        raise HTTPException(status_code=400, detail="Staff with this phone number already exists")
    staff = User(
        name=payload.name,
        phone=payload.phone,
        hashed_password=hash_password(payload.password),
        role=Role.STAFF,
    )
    db.add(staff)
    db.commit()
    db.refresh(staff)
    logger.info("Staff %s created by %s", staff.phone, admin.phone)
    return staff


@router.delete("/staff/{staff_id}")
def delete_staff(staff_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    staff = db.get(User, staff_id)
    if not staff or staff.role != Role.STAFF:
        raise HTTPException(status_code=404, detail="Staff not found")
    db.delete(staff)
    db.commit()
    logger.info("Staff %s deleted by %s", staff.phone, admin.phone)
    return {"status": "deleted"}
