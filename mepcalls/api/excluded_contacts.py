from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from mepcalls.core.database import get_db
from mepcalls.core.deps import get_current_user
from mepcalls.models import ExcludedContact, User
from mepcalls.schemas import BatchExclusionResult, ExcludedContactIn, ExcludedContactOut
from mepcalls.services.phone import normalize_phone, same_number

router = APIRouter(prefix="/excluded-contacts", tags=["excluded-contacts"])


def _matching(db: Session, phone: str) -> list[ExcludedContact]:
    return [contact for contact in db.query(ExcludedContact).all() if same_number(contact.phone_number, phone)]


@router.get("", response_model=list[ExcludedContactOut])
def list_excluded(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return db.query(ExcludedContact).order_by(ExcludedContact.created_at.desc()).all()


@router.get("/phones", response_model=list[str])
def list_excluded_phones(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [row[0] for row in db.query(ExcludedContact.phone_number).all()]


@router.get("/check/{phone_number}")
def check_excluded(phone_number: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"excluded": bool(_matching(db, phone_number))}


@router.post("", response_model=ExcludedContactOut)
def add_excluded(payload: ExcludedContactIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    existing = _matching(db, payload.phone_number)
    if existing:
        return existing[0]
    contact = ExcludedContact(phone_number=payload.phone_number, contact_name=payload.contact_name)
    db.add(contact)
    db.commit()
    db.refresh(contact)
    return contact


@router.post("/batch", response_model=BatchExclusionResult)
def add_excluded_batch(phones: list[str], db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    known = {normalize_phone(row[0]) for row in db.query(ExcludedContact.phone_number).all()}
    added = 0
    skipped = 0
    for phone in phones:
        normalized = normalize_phone(phone)
        if not normalized or normalized in known:
            skipped += 1
            continue
        db.add(ExcludedContact(phone_number=phone))
        known.add(normalized)
        added += 1
    db.commit()
    total = db.query(ExcludedContact).count()
    return BatchExclusionResult(added=added, skipped=skipped, total=total)


@router.delete("/{phone_number}")
def remove_excluded(phone_number: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    matches = _matching(db, phone_number)
    if not matches:
        raise HTTPException(status_code=404, detail="Excluded contact not found")
    for contact in matches:
        db.delete(contact)
    db.commit()
    return {"status": "deleted", "phoneNumber": phone_number}
