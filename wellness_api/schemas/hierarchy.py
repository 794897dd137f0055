# wellness_api/schemas/hierarchy.py
from typing import List, Optional

from pydantic import BaseModel, Field

from wellness_api.schemas.user import UserSummary


class HierarchyNode(BaseModel):
    user: UserSummary
    children: List["HierarchyNode"] = []
    level: int
    is_expanded: bool = False


class TeamStats(BaseModel):
    team_size: int = 0
    direct_reports: int = 0
    total_subordinates: int = 0
    avg_team_wellness: float = 0.0
    high_risk_team_members: int = 0
    team_departments: List[str] = []
    recent_reports_count: int = 0


class TeamWellness(BaseModel):
    team_name: str
    manager_id: str
    manager_name: str
    avg_wellness: float
    team_size: int
    high_risk_count: int


class DepartmentPerformance(BaseModel):
    department: str
    avg_wellness: float
    employee_count: int
    manager_count: int


class LevelHealth(BaseModel):
    level: int
    level_name: str
    avg_wellness: float
    employee_count: int


class IntegrityIssue(BaseModel):
    user_id: str
    kind: str
    detail: str


class HierarchyAnalytics(BaseModel):
    team_wellness_comparison: List[TeamWellness] = []
    department_performance: List[DepartmentPerformance] = []
    hierarchy_health: List[LevelHealth] = []
    integrity_issues: List[IntegrityIssue] = []


class RebuildResult(BaseModel):
    company_id: str
    users_scanned: int
    records_updated: int
    integrity_issues: List[IntegrityIssue] = []


class AccessCheck(BaseModel):
    userId: str = Field(min_length=1)
    targetUserId: str = Field(min_length=1)
    companyId: Optional[str] = None


HierarchyNode.model_rebuild()
