# wellness_api/api/v1/endpoints/employees.py
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from wellness_api.db import models, session
from wellness_api.core import security
from wellness_api.schemas import user as user_schema
from wellness_api.services import hierarchy
from wellness_api.services.permissions import (
    OWNER_ROLES, PRIVILEGED_ROLES, Capability, can_access_employee_data, ensure_can_grant, get_manager_permissions,
)

router = APIRouter()
logger = logging.getLogger(__name__)

FLAG_FIELDS = list(user_schema.PermissionFlags.model_fields)


def _company_user(db: Session, user_id: str, company_id: str) -> models.User:
    db_user = db.get(models.User, user_id)
    if not db_user or db_user.company_id != company_id:
        raise HTTPException(status_code=404, detail="User not found")
    return db_user


def _managed_user(db: Session, user_id: str, editor: models.User) -> models.User:
    db_user = _company_user(db, user_id, editor.company_id)
    if not can_access_employee_data(db, editor.id, db_user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This user is outside your organization")
    return db_user


# --- API Endpoints ---

@router.post("", response_model=user_schema.User, status_code=status.HTTP_201_CREATED)
def create_employee(
    user_in: user_schema.EmployeeCreate,
    db: Session = Depends(session.get_db),
    creator: models.User = Depends(security.get_current_people_manager)
):
    """ Creates a subordinate account inside the creator's company. """
    if db.query(models.User).filter(models.User.email == user_in.email).first():
        raise HTTPException(status_code=409, detail="Email already registered")

    manager = _managed_user(db, user_in.manager_id or creator.id, creator)
    if not manager.is_active:
        raise HTTPException(status_code=400, detail="Manager account is deactivated")
    level = user_in.hierarchy_level if user_in.hierarchy_level is not None else manager.hierarchy_level + 1
    if level <= manager.hierarchy_level:
        raise HTTPException(
            status_code=400,
            detail=f"hierarchy_level must be greater than the manager's level ({manager.hierarchy_level})",
        )
    ensure_can_grant(creator, user_in.role, user_in.permissions.model_dump(), level)

    db_user = models.User(
        id=models.new_id(), email=user_in.email, hashed_password=security.get_password_hash(user_in.password),
        first_name=user_in.first_name, last_name=user_in.last_name, role=user_in.role,
        department=user_in.department, position=user_in.position,
        company_id=creator.company_id, hierarchy_level=level, direct_reports=[],
        **user_in.permissions.model_dump(),
    )
    hierarchy.attach_to_manager(db, db_user, manager)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info("%s created %s under %s", creator.id, db_user.id, manager.id)
    return db_user

@router.get("", response_model=List[user_schema.User])
def get_company_users(
    db: Session = Depends(session.get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """ Lists the active users of the caller's company. """
    permissions = get_manager_permissions(current_user)
    if not (permissions.has(Capability.VIEW_COMPANY_REPORTS) or permissions.has(Capability.MANAGE_EMPLOYEES)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions for this resource")
    return list(hierarchy.OrgIndex.for_company(db, current_user.company_id).users.values())

@router.put("/{user_id}", response_model=user_schema.User)
def update_employee(
    user_id: str,
    updates: user_schema.EmployeeUpdate,
    db: Session = Depends(session.get_db),
    editor: models.User = Depends(security.get_current_people_manager)
):
    """ Updates a user's role, department, flags, or manager. """
    db_user = _managed_user(db, user_id, editor)

    update_data = updates.model_dump(exclude_unset=True)
    granting = [f for f in ["role", *FLAG_FIELDS] if update_data.get(f) is not None]
    if granting:
        if db_user.id == editor.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot change your own role or permissions")
        if db_user.role in PRIVILEGED_ROLES and editor.role not in OWNER_ROLES:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only an employer or admin can change this user")
        flags = {f: update_data[f] if update_data.get(f) is not None else getattr(db_user, f) for f in FLAG_FIELDS}
        ensure_can_grant(editor, update_data.get("role") or db_user.role, flags, db_user.hierarchy_level)

    new_manager = update_data.pop("manager_id", db_user.manager_id)
    if new_manager is not None and new_manager != db_user.manager_id:
        _managed_user(db, new_manager, editor)
    for field, value in update_data.items():
        if value is not None:
            setattr(db_user, field, value)
    db.commit()

    if new_manager != db_user.manager_id:
        db_user = hierarchy.reassign_manager(db, user_id, new_manager)
    db.refresh(db_user)
    return db_user

@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_employee(
    user_id: str,
    db: Session = Depends(session.get_db),
    editor: models.User = Depends(security.get_current_people_manager)
):
    """
    Soft-deactivates a user, but only if they have no active direct reports.
    Report history stays intact.
    """
    db_user = _managed_user(db, user_id, editor)
    if db_user.id == editor.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    report_count = len(hierarchy.get_direct_reports(db, user_id))
    if report_count > 0:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot deactivate manager. They still have {report_count} direct reports. Please reassign them first."
        )

    db_user.is_active = False
    if db_user.manager_id:
        manager = db.get(models.User, db_user.manager_id)
        if manager is not None:
            manager.direct_reports = [i for i in (manager.direct_reports or []) if i != user_id]
    db.commit()
    return
