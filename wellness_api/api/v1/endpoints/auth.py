# wellness_api/api/v1/endpoints/auth.py
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from wellness_api.db import session, models
from wellness_api.core import security
from wellness_api.schemas import token as token_schema
from wellness_api.schemas import user as user_schema

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/token", response_model=token_schema.Token)
def login(db: Session = Depends(session.get_db), form_data: OAuth2PasswordRequestForm = Depends()):
    user = db.query(models.User).filter(models.User.email == form_data.username).first()
    if not user or not user.is_active or not security.verify_password(form_data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password")

    access_token = security.create_access_token(data={"sub": user.email})
    return {"access_token": access_token, "token_type": "bearer"}

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register_employer(payload: user_schema.EmployerRegister, db: Session = Depends(session.get_db)):
    """ Employer self-registration: creates the company and its root employer account. """
    if db.query(models.User).filter(models.User.email == payload.email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="An account with this email already exists.")

    user_id = models.new_id()
    company = models.Company(
        id=f"company_{user_id}", name=payload.company_name,
        size=payload.company_size or "Not specified", industry=payload.industry or "Not specified",
        owner_id=user_id,
    )
    employer = models.User(
        id=user_id, email=payload.email, hashed_password=security.get_password_hash(payload.password),
        first_name=payload.first_name, last_name=payload.last_name, role="employer",
        company_id=company.id, hierarchy_level=0, manager_id=None,
        direct_reports=[], reporting_chain=[],
        can_view_team_reports=True, can_manage_employees=True, can_approve_leaves=True,
        is_department_head=True, skip_level_access=True,
    )
    db.add(company)
    db.add(employer)
    db.commit()
    logger.info("Registered company %s with employer %s", company.id, user_id)
    return {"message": "Company account created successfully!", "userId": user_id, "companyId": company.id}
