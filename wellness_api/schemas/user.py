# wellness_api/schemas/user.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Role = Literal["employee", "manager", "employer", "hr", "admin"]


class PermissionFlags(BaseModel):
    can_view_team_reports: bool = False
    can_manage_employees: bool = False
    can_approve_leaves: bool = False
    is_department_head: bool = False
    skip_level_access: bool = False


class UserBase(BaseModel):
    email: EmailStr
    first_name: str = ""
    last_name: str = ""
    department: Optional[str] = None
    position: Optional[str] = None


class EmployeeCreate(UserBase):
    password: str = Field(min_length=6)
    role: Role = "employee"
    manager_id: Optional[str] = None
    hierarchy_level: Optional[int] = Field(default=None, ge=0)
    permissions: PermissionFlags = PermissionFlags()


class EmployeeUpdate(BaseModel):
    role: Optional[Role] = None
    manager_id: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    can_view_team_reports: Optional[bool] = None
    can_manage_employees: Optional[bool] = None
    can_approve_leaves: Optional[bool] = None
    is_department_head: Optional[bool] = None
    skip_level_access: Optional[bool] = None


class EmployerRegister(BaseModel):
    first_name: str = Field(min_length=1, alias="firstName")
    last_name: str = Field(min_length=1, alias="lastName")
    email: EmailStr
    password: str = Field(min_length=6)
    company_name: str = Field(min_length=1, alias="companyName")
    company_size: Optional[str] = Field(default=None, alias="companySize")
    industry: Optional[str] = None

    class Config:
        populate_by_name = True


class User(UserBase):
    id: str
    role: str
    company_id: str
    manager_id: Optional[str] = None
    hierarchy_level: int
    direct_reports: List[str] = []
    reporting_chain: List[str] = []
    can_view_team_reports: bool
    can_manage_employees: bool
    can_approve_leaves: bool
    is_department_head: bool
    skip_level_access: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    id: str
    name: str
    role: str
    department: Optional[str] = None
    position: Optional[str] = None
    hierarchy_level: int


class PasswordUpdate(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)
