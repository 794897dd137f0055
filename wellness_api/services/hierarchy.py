# wellness_api/services/hierarchy.py
"""
Organizational hierarchy engine.

manager_id is the only authoritative edge. direct_reports and reporting_chain
on each user are caches that can always be rebuilt from it. Every traversal
loads one tenant's users in a single query and walks an in-memory index, so a
cycle or an orphaned manager_id never turns into unbounded recursion: the
offending branch is logged and truncated.
"""
import logging
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from wellness_api.db import models
from wellness_api.schemas.hierarchy import (
    DepartmentPerformance, HierarchyAnalytics, HierarchyNode, IntegrityIssue,
    LevelHealth, RebuildResult, TeamStats, TeamWellness,
)
from wellness_api.schemas.user import UserSummary
from wellness_api.core.errors import ConflictError, DataIntegrityError, InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)

RECENT_WINDOW_DAYS = 30
LEVEL_NAMES = {
    0: "Executive",
    1: "Senior Management",
    2: "Middle Management",
    3: "Team Leads",
    4: "Individual Contributors",
}


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything here is stored in UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _sort_key(user: models.User):
    return (as_utc(user.created_at), user.id)


def summarize(user: models.User) -> UserSummary:
    return UserSummary(
        id=user.id, name=user.full_name, role=user.role,
        department=user.department, position=user.position,
        hierarchy_level=user.hierarchy_level,
    )


class OrgIndex:
    """In-memory view of one company's manager_id forest."""

    def __init__(self, users: Iterable[models.User]):
        self.users: Dict[str, models.User] = {}
        self.children: Dict[str, List[models.User]] = defaultdict(list)
        for user in sorted(users, key=_sort_key):
            self.users[user.id] = user
        for user in self.users.values():
            if user.manager_id:
                self.children[user.manager_id].append(user)

    @classmethod
    def for_company(cls, db: Session, company_id: str, include_inactive: bool = False) -> "OrgIndex":
        query = db.query(models.User).filter(models.User.company_id == company_id)
        if not include_inactive:
            query = query.filter(models.User.is_active.is_(True))
        return cls(query.all())

    def direct_reports(self, manager_id: str) -> List[models.User]:
        return list(self.children.get(manager_id, []))

    def subordinates(self, manager_id: str) -> List[models.User]:
        """Transitive closure below manager_id, breadth first, each user at most once."""
        found: List[models.User] = []
        visited: Set[str] = {manager_id}
        queue = deque([manager_id])
        while queue:
            current = queue.popleft()
            for child in self.children.get(current, []):
                if child.id in visited:
                    logger.warning(
                        "Hierarchy cycle: user %s reached again below %s; truncating branch", child.id, manager_id
                    )
                    continue
                visited.add(child.id)
                found.append(child)
                queue.append(child.id)
        return found

    def ancestors(self, user_id: str) -> List[str]:
        """Manager ids from the nearest manager up to the root, following manager_id."""
        chain: List[str] = []
        seen: Set[str] = {user_id}
        user = self.users.get(user_id)
        while user is not None and user.manager_id:
            if user.manager_id in seen:
                raise DataIntegrityError(
                    f"Cycle in reporting line of user {user_id}", {"user_id": user_id, "repeated": user.manager_id}
                )
            chain.append(user.manager_id)
            seen.add(user.manager_id)
            user = self.users.get(user.manager_id)
        return chain

    def integrity_issues(self) -> List[IntegrityIssue]:
        issues: List[IntegrityIssue] = []
        for user in self.users.values():
            if user.manager_id and user.manager_id not in self.users:
                issues.append(IntegrityIssue(
                    user_id=user.id, kind="orphan",
                    detail=f"manager_id {user.manager_id} is not an active user of this company",
                ))
                continue
            try:
                self.ancestors(user.id)
            except DataIntegrityError as exc:
                issues.append(IntegrityIssue(user_id=user.id, kind="cycle", detail=exc.message))
                continue
            manager = self.users.get(user.manager_id) if user.manager_id else None
            if manager is not None and user.hierarchy_level <= manager.hierarchy_level:
                issues.append(IntegrityIssue(
                    user_id=user.id, kind="level",
                    detail=f"level {user.hierarchy_level} is not below manager level {manager.hierarchy_level}",
                ))
        return issues


def _index_for_user(db: Session, user_id: str) -> Optional[OrgIndex]:
    user = db.get(models.User, user_id)
    if user is None:
        return None
    return OrgIndex.for_company(db, user.company_id)


# --- Queries ---

def get_direct_reports(db: Session, manager_id: str) -> List[models.User]:
    """Active users whose manager_id is manager_id, oldest first. Repairs a stale direct_reports cache."""
    manager = db.get(models.User, manager_id)
    if manager is None:
        return []
    reports = (
        db.query(models.User)
        .filter(models.User.manager_id == manager_id, models.User.is_active.is_(True))
        .all()
    )
    reports.sort(key=_sort_key)

    computed = [u.id for u in reports]
    if set(manager.direct_reports or []) != set(computed):
        logger.warning("Stale direct_reports cache for %s; rebuilding from manager_id edges", manager_id)
        manager.direct_reports = computed
        db.commit()
    return reports


def get_all_subordinates(db: Session, manager_id: str) -> List[models.User]:
    index = _index_for_user(db, manager_id)
    if index is None:
        return []
    return index.subordinates(manager_id)


def get_team_hierarchy(db: Session, root_id: str, max_depth: int = 3) -> List[HierarchyNode]:
    """
    Builds the report tree below root_id. The root sits at depth 0, so the
    returned nodes are its direct reports at level 1 and descent stops after
    level max_depth.
    """
    index = _index_for_user(db, root_id)
    if index is None:
        return []

    def build(user_id: str, level: int, path: Set[str]) -> List[HierarchyNode]:
        if level > max_depth:
            return []
        nodes = []
        for child in index.direct_reports(user_id):
            if child.id in path:
                logger.warning(
                    "Hierarchy cycle at %s under root %s; subtree truncated", child.id, root_id
                )
                continue
            nodes.append(HierarchyNode(
                user=summarize(child),
                children=build(child.id, level + 1, path | {child.id}),
                level=level,
                is_expanded=level <= 2,
            ))
        return nodes

    return build(root_id, 1, {root_id})


def _latest_reports(db: Session, employee_ids: List[str]) -> Dict[str, models.WellnessReport]:
    latest: Dict[str, models.WellnessReport] = {}
    if not employee_ids:
        return latest
    reports = db.query(models.WellnessReport).filter(models.WellnessReport.employee_id.in_(employee_ids)).all()
    for report in reports:
        current = latest.get(report.employee_id)
        if current is None or as_utc(report.created_at) > as_utc(current.created_at):
            latest[report.employee_id] = report
    return latest


def _average(values: List[float]) -> float:
    return round(sum(values) / len(values), 1) if values else 0.0


def _team_stats_from_index(db: Session, index: OrgIndex, manager_id: str) -> TeamStats:
    direct = index.direct_reports(manager_id)
    subordinates = index.subordinates(manager_id)
    ids = [u.id for u in subordinates]

    latest = _latest_reports(db, ids)
    cutoff = datetime.now(timezone.utc) - timedelta(days=RECENT_WINDOW_DAYS)
    recent_count = 0
    if ids:
        recent_count = (
            db.query(models.WellnessReport)
            .filter(models.WellnessReport.employee_id.in_(ids), models.WellnessReport.created_at >= cutoff)
            .count()
        )

    return TeamStats(
        team_size=len(subordinates),
        direct_reports=len(direct),
        total_subordinates=len(subordinates),
        avg_team_wellness=_average([r.overall_wellness for r in latest.values()]),
        high_risk_team_members=sum(1 for r in latest.values() if r.risk_level == "high"),
        team_departments=sorted({u.department for u in subordinates if u.department}),
        recent_reports_count=recent_count,
    )


def get_team_stats(db: Session, manager_id: str) -> TeamStats:
    index = _index_for_user(db, manager_id)
    if index is None:
        return TeamStats()
    return _team_stats_from_index(db, index, manager_id)


def get_hierarchy_analytics(db: Session, company_id: str) -> HierarchyAnalytics:
    """Company-wide rollup across the whole forest of one tenant."""
    index = OrgIndex.for_company(db, company_id)
    users = list(index.users.values())
    if not users:
        return HierarchyAnalytics()

    cutoff = datetime.now(timezone.utc) - timedelta(days=RECENT_WINDOW_DAYS)
    recent = (
        db.query(models.WellnessReport)
        .filter(models.WellnessReport.company_id == company_id, models.WellnessReport.created_at >= cutoff)
        .all()
    )
    reports_by_user: Dict[str, List[models.WellnessReport]] = defaultdict(list)
    for report in recent:
        reports_by_user[report.employee_id].append(report)

    def is_manager(user: models.User) -> bool:
        return user.role == "manager" or bool(index.direct_reports(user.id))

    teams = []
    for manager in filter(is_manager, users):
        stats = _team_stats_from_index(db, index, manager.id)
        teams.append(TeamWellness(
            team_name=f"{manager.full_name}'s Team",
            manager_id=manager.id,
            manager_name=manager.full_name,
            avg_wellness=stats.avg_team_wellness,
            team_size=stats.team_size,
            high_risk_count=stats.high_risk_team_members,
        ))

    departments = []
    for dept in sorted({u.department for u in users if u.department}):
        members = [u for u in users if u.department == dept]
        scores = [r.overall_wellness for u in members for r in reports_by_user.get(u.id, [])]
        departments.append(DepartmentPerformance(
            department=dept,
            avg_wellness=_average(scores),
            employee_count=len(members),
            manager_count=sum(1 for u in members if is_manager(u)),
        ))

    levels = []
    for level, name in LEVEL_NAMES.items():
        members = [u for u in users if u.hierarchy_level == level]
        if not members:
            continue
        scores = [r.overall_wellness for u in members for r in reports_by_user.get(u.id, [])]
        levels.append(LevelHealth(
            level=level, level_name=name, avg_wellness=_average(scores), employee_count=len(members)
        ))

    return HierarchyAnalytics(
        team_wellness_comparison=teams,
        department_performance=departments,
        hierarchy_health=levels,
        integrity_issues=index.integrity_issues(),
    )


# --- Mutations ---

def _refresh_subtree(index: OrgIndex, root: models.User) -> int:
    """Recomputes reporting_chain and lifts hierarchy_level below root. Returns how many users changed."""
    changed = 0
    queue = deque([root])
    visited = {root.id}
    while queue:
        user = queue.popleft()
        manager = index.users.get(user.manager_id) if user.manager_id else None
        chain = [manager.id] + list(manager.reporting_chain or []) if manager else []
        level = user.hierarchy_level
        if manager is not None and level <= manager.hierarchy_level:
            level = manager.hierarchy_level + 1
        if list(user.reporting_chain or []) != chain or level != user.hierarchy_level:
            user.reporting_chain = chain
            user.hierarchy_level = level
            changed += 1
        for child in index.direct_reports(user.id):
            if child.id not in visited:
                visited.add(child.id)
                queue.append(child)
    return changed


def attach_to_manager(db: Session, employee: models.User, manager: models.User) -> None:
    """Fills the caches of a freshly created employee and of its manager. Caller commits."""
    employee.manager_id = manager.id
    employee.reporting_chain = [manager.id] + list(manager.reporting_chain or [])
    manager.direct_reports = list(manager.direct_reports or []) + [employee.id]


def reassign_manager(db: Session, employee_id: str, new_manager_id: Optional[str]) -> models.User:
    """Moves employee (and its whole subtree) under new_manager_id, or to the top when None."""
    employee = db.get(models.User, employee_id)
    if employee is None:
        raise NotFoundError("Employee not found")
    if new_manager_id == employee.manager_id:
        return employee

    index = OrgIndex.for_company(db, employee.company_id)
    new_manager = None
    if new_manager_id is not None:
        new_manager = index.users.get(new_manager_id)
        if new_manager is None:
            raise InvalidRequestError(
                "Manager must be an active user of the same company", {"manager_id": "unknown manager"}
            )
        if new_manager_id == employee_id or new_manager_id in {u.id for u in index.subordinates(employee_id)}:
            raise ConflictError(
                "Reassignment would create a reporting cycle", {"manager_id": "is a subordinate of the employee"}
            )

    old_manager = index.users.get(employee.manager_id) if employee.manager_id else None
    if old_manager is not None:
        old_manager.direct_reports = [i for i in (old_manager.direct_reports or []) if i != employee_id]
        index.children[old_manager.id] = [u for u in index.children[old_manager.id] if u.id != employee_id]
    employee.manager_id = new_manager_id
    if new_manager is not None:
        new_manager.direct_reports = [i for i in (new_manager.direct_reports or []) if i != employee_id] + [employee_id]
        index.children[new_manager.id].append(employee)

    changed = _refresh_subtree(index, employee)
    db.commit()
    db.refresh(employee)
    logger.info("Moved %s under %s (%d records refreshed)", employee_id, new_manager_id, changed)
    return employee


def rebuild_hierarchy_cache(db: Session, company_id: str) -> RebuildResult:
    """Recomputes direct_reports and reporting_chain for a tenant from manager_id edges."""
    index = OrgIndex.for_company(db, company_id)
    issues = index.integrity_issues()
    broken = {issue.user_id for issue in issues if issue.kind in ("cycle", "orphan")}
    for issue in issues:
        logger.warning("Hierarchy integrity issue in %s: %s %s (%s)", company_id, issue.kind, issue.user_id, issue.detail)

    updated: Set[str] = set()
    for user in index.users.values():
        reports = [u.id for u in index.direct_reports(user.id)]
        if list(user.direct_reports or []) != reports:
            user.direct_reports = reports
            updated.add(user.id)
        if user.id in broken:
            continue
        try:
            chain = index.ancestors(user.id)
        except DataIntegrityError:
            continue
        if list(user.reporting_chain or []) != chain:
            user.reporting_chain = chain
            updated.add(user.id)

    db.commit()
    return RebuildResult(
        company_id=company_id,
        users_scanned=len(index.users),
        records_updated=len(updated),
        integrity_issues=issues,
    )
