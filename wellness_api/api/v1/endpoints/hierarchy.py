# wellness_api/api/v1/endpoints/hierarchy.py
from datetime import datetime, timezone
from typing import List, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from wellness_api.db import models, session
from wellness_api.core import security
from wellness_api.schemas.hierarchy import AccessCheck, HierarchyNode, RebuildResult
from wellness_api.services import hierarchy
from wellness_api.services.permissions import Capability, can_access_employee_data, get_manager_permissions

router = APIRouter()

TestType = Literal["all", "directReports", "hierarchy", "teamStats", "analytics", "permissions"]


def _require_visibility(db: Session, viewer: models.User, user_id: str) -> None:
    if not can_access_employee_data(db, viewer.id, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot view this user's team data")


# --- API Endpoints ---

@router.get("/test")
def query_hierarchy(
    userId: str = Query(..., min_length=1),
    companyId: str = Query(..., min_length=1),
    testType: TestType = "all",
    db: Session = Depends(session.get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """ Hierarchy query surface: direct reports, tree, team stats, analytics and permissions of one user. """
    if current_user.company_id != companyId:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot view another company's data")
    _require_visibility(db, current_user, userId)
    target = db.get(models.User, userId)

    results = {}
    if testType in ("all", "directReports"):
        reports = hierarchy.get_direct_reports(db, userId)
        results["directReports"] = {
            "count": len(reports),
            "employees": [hierarchy.summarize(u) for u in reports],
        }
    if testType in ("all", "hierarchy"):
        tree = hierarchy.get_team_hierarchy(db, userId, 3)
        results["teamHierarchy"] = {"levels": len(tree), "structure": tree}
    if testType in ("all", "teamStats"):
        results["teamStats"] = hierarchy.get_team_stats(db, userId)
    if testType in ("all", "analytics"):
        if get_manager_permissions(current_user).has(Capability.ACCESS_ANALYTICS):
            results["hierarchyAnalytics"] = hierarchy.get_hierarchy_analytics(db, companyId)
        elif testType == "analytics":
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Analytics access required")
    if testType in ("all", "permissions") and target is not None:
        results["permissions"] = get_manager_permissions(target)

    return {
        "success": True,
        "userId": userId,
        "companyId": companyId,
        "testType": testType,
        "results": results,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

@router.post("/test")
def check_access(
    payload: AccessCheck,
    db: Session = Depends(session.get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """ Access test surface. Answers whether userId may see targetUserId's wellness data. """
    if payload.userId != current_user.id:
        _require_visibility(db, current_user, payload.userId)
    can_access = can_access_employee_data(db, payload.userId, payload.targetUserId)
    return {
        "success": True,
        "canAccess": can_access,
        "userId": payload.userId,
        "targetUserId": payload.targetUserId,
        "message": "User has access to target employee data" if can_access
        else "User does not have access to target employee data",
    }

@router.get("/org-chart", response_model=List[HierarchyNode])
def read_org_chart(
    maxDepth: int = Query(3, ge=1, le=10),
    db: Session = Depends(session.get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """ The report tree below the logged-in user. """
    return hierarchy.get_team_hierarchy(db, current_user.id, maxDepth)

@router.post("/rebuild", response_model=RebuildResult)
def rebuild_hierarchy(
    db: Session = Depends(session.get_db),
    admin: models.User = Depends(security.get_current_company_viewer)
):
    """ Recomputes the direct_reports and reporting_chain caches of the caller's company. """
    return hierarchy.rebuild_hierarchy_cache(db, admin.company_id)
