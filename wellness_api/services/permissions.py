# wellness_api/services/permissions.py
# Capability policy and the single authorization check for employee wellness data.
import enum
import logging
from typing import Dict, FrozenSet

from pydantic import BaseModel
from sqlalchemy.orm import Session

from wellness_api.core.errors import AccessDeniedError
from wellness_api.db import models

logger = logging.getLogger(__name__)


class Capability(str, enum.Enum):
    VIEW_DIRECT_REPORTS = "view_direct_reports"
    VIEW_TEAM_REPORTS = "view_team_reports"
    VIEW_SUBORDINATE_TEAMS = "view_subordinate_teams"
    VIEW_COMPANY_REPORTS = "view_company_reports"
    ACCESS_ANALYTICS = "access_analytics"
    APPROVE_LEAVES = "approve_leaves"
    MANAGE_EMPLOYEES = "manage_employees"
    DEPARTMENT_HEAD = "department_head"


ROLE_DEFAULTS = {
    "employer": frozenset(Capability),
    "admin": frozenset(Capability),
    "hr": frozenset({
        Capability.VIEW_COMPANY_REPORTS, Capability.ACCESS_ANALYTICS,
        Capability.VIEW_DIRECT_REPORTS, Capability.VIEW_TEAM_REPORTS,
    }),
    "manager": frozenset({Capability.VIEW_DIRECT_REPORTS, Capability.VIEW_TEAM_REPORTS}),
    "employee": frozenset(),
}

# Flags only ever add capabilities on top of the role defaults.
FLAG_GRANTS = {
    "can_view_team_reports": {Capability.VIEW_DIRECT_REPORTS, Capability.VIEW_TEAM_REPORTS},
    "skip_level_access": {Capability.VIEW_SUBORDINATE_TEAMS},
    "can_manage_employees": {Capability.MANAGE_EMPLOYEES},
    "can_approve_leaves": {Capability.APPROVE_LEAVES},
    "is_department_head": {Capability.DEPARTMENT_HEAD},
}

ANALYTICS_MAX_LEVEL = 3


class PermissionSet(BaseModel):
    capabilities: FrozenSet[Capability] = frozenset()
    can_view_direct_reports: bool = False
    can_view_team_reports: bool = False
    can_view_subordinate_teams: bool = False
    can_view_company_reports: bool = False
    can_approve_leaves: bool = False
    can_manage_team_members: bool = False
    can_access_analytics: bool = False
    hierarchy_access_level: int = 0

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities


def get_manager_permissions(user: models.User) -> PermissionSet:
    """Effective capabilities: role defaults united with the user's explicit grant flags."""
    caps = set(ROLE_DEFAULTS.get(user.role, frozenset()))
    for flag, grants in FLAG_GRANTS.items():
        if getattr(user, flag, False):
            caps |= grants
    if user.role != "employee" and user.hierarchy_level is not None and user.hierarchy_level <= ANALYTICS_MAX_LEVEL:
        caps.add(Capability.ACCESS_ANALYTICS)

    access_level = 0
    if Capability.VIEW_DIRECT_REPORTS in caps:
        access_level = 2 if Capability.VIEW_SUBORDINATE_TEAMS in caps else 1

    return PermissionSet(
        capabilities=frozenset(caps),
        can_view_direct_reports=Capability.VIEW_DIRECT_REPORTS in caps,
        can_view_team_reports=Capability.VIEW_TEAM_REPORTS in caps,
        can_view_subordinate_teams=Capability.VIEW_SUBORDINATE_TEAMS in caps,
        can_view_company_reports=Capability.VIEW_COMPANY_REPORTS in caps,
        can_approve_leaves=Capability.APPROVE_LEAVES in caps,
        can_manage_team_members=Capability.MANAGE_EMPLOYEES in caps,
        can_access_analytics=Capability.ACCESS_ANALYTICS in caps,
        hierarchy_access_level=access_level,
    )


PRIVILEGED_ROLES = {"employer", "hr", "admin"}
OWNER_ROLES = {"employer", "admin"}


def ensure_can_grant(editor: models.User, role: str, flags: Dict[str, bool], hierarchy_level: int) -> None:
    """
    Refuses a role/flag assignment that would hand out capabilities the editor
    does not hold. Only employers and admins may assign the privileged roles.
    """
    if role in PRIVILEGED_ROLES and editor.role not in OWNER_ROLES:
        raise AccessDeniedError(f"Only an employer or admin can assign the {role} role", {"role": role})
    candidate = models.User(role=role, hierarchy_level=hierarchy_level, **flags)
    granted = get_manager_permissions(candidate).capabilities
    excess = granted - get_manager_permissions(editor).capabilities
    if excess:
        raise AccessDeniedError(
            "You cannot grant permissions you do not hold",
            {"capabilities": sorted(c.value for c in excess)},
        )


def _is_below(db: Session, viewer_id: str, target: models.User) -> bool:
    """Walks target's manager_id edges upward looking for viewer_id."""
    seen = {target.id}
    manager_id = target.manager_id
    while manager_id:
        if manager_id == viewer_id:
            return True
        if manager_id in seen:
            logger.warning("Cycle in reporting line above %s while checking access", target.id)
            return False
        seen.add(manager_id)
        manager = db.get(models.User, manager_id)
        if manager is None or manager.company_id != target.company_id:
            return False
        manager_id = manager.manager_id
    return False


def _check_access(db: Session, viewer_id: str, target_id: str) -> bool:
    if viewer_id == target_id:
        return True

    viewer = db.get(models.User, viewer_id)
    target = db.get(models.User, target_id)
    if viewer is None or target is None or not viewer.is_active:
        return False
    if viewer.company_id != target.company_id:
        return False

    permissions = get_manager_permissions(viewer)
    if permissions.has(Capability.VIEW_COMPANY_REPORTS):
        return True
    if target.manager_id == viewer.id or viewer.id in (target.reporting_chain or []):
        return True
    if permissions.has(Capability.VIEW_SUBORDINATE_TEAMS) and _is_below(db, viewer.id, target):
        return True
    return False


def can_access_employee_data(db: Session, viewer_id: str, target_id: str) -> bool:
    """
    The authorization choke point for employee wellness data. Always returns
    a bool: any lookup failure counts as a denial.
    """
    try:
        allowed = _check_access(db, viewer_id, target_id)
    except Exception:
        logger.exception("Access check %s -> %s failed; denying", viewer_id, target_id)
        return False
    if not allowed:
        logger.info("Access denied: %s may not view data of %s", viewer_id, target_id)
    return allowed
