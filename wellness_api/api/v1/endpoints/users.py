# wellness_api/api/v1/endpoints/users.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from wellness_api.db import models, session
from wellness_api.core import security
from wellness_api.schemas import user as user_schema
from wellness_api.services.permissions import PermissionSet, get_manager_permissions

router = APIRouter()

@router.get("/me", response_model=user_schema.User)
def read_user_me(current_user: models.User = Depends(security.get_current_user)):
    """
    Get the details for the currently logged-in user.
    """
    return current_user

@router.get("/me/permissions", response_model=PermissionSet)
def read_my_permissions(current_user: models.User = Depends(security.get_current_user)):
    return get_manager_permissions(current_user)

@router.put("/me/password", status_code=status.HTTP_204_NO_CONTENT)
def update_user_password(
    passwords: user_schema.PasswordUpdate,
    db: Session = Depends(session.get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """
    Allows a logged-in user to change their own password.
    """
    if not security.verify_password(passwords.current_password, current_user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Incorrect current password")

    current_user.hashed_password = security.get_password_hash(passwords.new_password)
    db.commit()
    return
