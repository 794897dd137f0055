# wellness_api/services/reports.py
import csv
import io
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from wellness_api.core.errors import NotFoundError
from wellness_api.db import models
from wellness_api.schemas.chat import StructuredReport
from wellness_api.schemas.report import (
    DailyTrend, DepartmentBreakdown, PersonalHistory, ProgressTrend, ProgressTrends,
    ReportsAnalytics, RiskDistribution, SessionSummary, WellnessReport,
)
from wellness_api.services.hierarchy import OrgIndex, as_utc
from wellness_api.services.permissions import Capability, get_manager_permissions

logger = logging.getLogger(__name__)

SUBSCORES = [
    "mood_rating", "stress_level", "anxiety_level", "work_satisfaction",
    "work_life_balance", "energy_level", "confidence_level", "sleep_quality",
]
TREND_DEADBAND = 0.3
PROGRESS_DEADBAND = 0.5
AI_CONTEXT_MAX_CHARS = 4000
TIME_RANGES = {"7d": 7, "30d": 30, "90d": 90}

CSV_HEADERS = [
    "Report ID", "Employee ID", "Date", "Session Type",
    "Mood Rating", "Stress Level", "Energy Level", "Work Satisfaction",
    "Work Life Balance", "Anxiety Level", "Confidence Level", "Sleep Quality",
    "Overall Wellness", "Risk Level", "Session Duration (min)", "AI Analysis Summary",
]


def _round1(value: float) -> float:
    return round(value, 1)


def _mean(values: List[float]) -> float:
    return _round1(sum(values) / len(values)) if values else 0.0


def _newest_first(reports: List[models.WellnessReport]) -> List[models.WellnessReport]:
    return sorted(reports, key=lambda r: as_utc(r.created_at), reverse=True)


# --- Building a report from a finished coaching session ---

def _clamp(value: float) -> int:
    return max(1, min(10, int(round(value))))


def calculate_risk_level(report: StructuredReport) -> str:
    factors = [
        2 if report.stress_score >= 8 else 1 if report.stress_score >= 6 else 0,
        2 if report.anxious_level >= 8 else 1 if report.anxious_level >= 6 else 0,
        2 if report.mood <= 3 else 1 if report.mood <= 5 else 0,
        1 if report.energy_level <= 3 else 0,
        1 if report.work_satisfaction <= 3 else 0,
        1 if report.sleep_quality <= 3 else 0,
        1 if report.confident_level <= 3 else 0,
    ]
    total = sum(factors)
    if total >= 6:
        return "high"
    if total >= 3:
        return "medium"
    return "low"


def calculate_overall_wellness(report: StructuredReport) -> float:
    positive = (
        report.mood + report.energy_level + report.work_satisfaction
        + report.work_life_balance + report.confident_level + report.sleep_quality
    )
    inverted = (11 - report.stress_score) + (11 - report.anxious_level)
    return max(1.0, min(10.0, _round1((positive + inverted) / 8)))


def build_wellness_report(
    structured: StructuredReport,
    *,
    employee_id: str,
    company_id: str,
    session_type: str = "text",
    session_duration: Optional[int] = None,
) -> models.WellnessReport:
    return models.WellnessReport(
        employee_id=employee_id,
        company_id=company_id,
        mood_rating=_clamp(structured.mood),
        stress_level=_clamp(structured.stress_score),
        anxiety_level=_clamp(structured.anxious_level),
        work_satisfaction=_clamp(structured.work_satisfaction),
        work_life_balance=_clamp(structured.work_life_balance),
        energy_level=_clamp(structured.energy_level),
        confidence_level=_clamp(structured.confident_level),
        sleep_quality=_clamp(structured.sleep_quality),
        overall_wellness=calculate_overall_wellness(structured),
        risk_level=calculate_risk_level(structured),
        session_type=session_type,
        session_duration=session_duration,
        ai_analysis=structured.complete_report,
        key_insights=list(structured.key_insights),
        recommendations=list(structured.recommendations),
    )


def save_structured_report(db: Session, structured: StructuredReport, *, user: models.User,
                           session_type: str, session_duration: int) -> models.WellnessReport:
    """Writes the session's report in a single commit."""
    report = build_wellness_report(
        structured, employee_id=user.id, company_id=user.company_id,
        session_type=session_type, session_duration=session_duration,
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("Stored %s-risk wellness report %s for %s", report.risk_level, report.id, user.id)
    return report


# --- Company-wide window ---

def get_recent_reports(db: Session, company_id: str, days_back: int = 7) -> List[models.WellnessReport]:
    """Reports of one tenant created in the last days_back days, newest first (sorted after fetch)."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=days_back)
    reports = (
        db.query(models.WellnessReport)
        .options(joinedload(models.WellnessReport.employee))
        .filter(models.WellnessReport.company_id == company_id, models.WellnessReport.created_at >= cutoff)
        .all()
    )
    return _newest_first(reports)


def _trend_direction(reports: List[models.WellnessReport]) -> str:
    """Mean overall_wellness of the newer half against the older half, split by count."""
    if len(reports) < 2:
        return "stable"
    ordered = sorted(reports, key=lambda r: as_utc(r.created_at))
    middle = len(ordered) // 2
    older = [r.overall_wellness for r in ordered[:middle]]
    newer = [r.overall_wellness for r in ordered[middle:]]
    diff = sum(newer) / len(newer) - sum(older) / len(older)
    if abs(diff) <= TREND_DEADBAND:
        return "stable"
    return "up" if diff > 0 else "down"


def _department_of(report: models.WellnessReport) -> str:
    employee = report.employee
    return (employee.department if employee is not None else None) or "Unassigned"


def generate_reports_analytics(reports: List[models.WellnessReport]) -> ReportsAnalytics:
    if not reports:
        return ReportsAnalytics(avg_by_subscore={name: 0.0 for name in SUBSCORES})

    risk = RiskDistribution()
    for report in reports:
        setattr(risk, report.risk_level, getattr(risk, report.risk_level) + 1)

    by_department: Dict[str, List[float]] = {}
    for report in reports:
        by_department.setdefault(_department_of(report), []).append(report.overall_wellness)

    today = datetime.now(timezone.utc).date()
    daily = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        day_reports = [r for r in reports if as_utc(r.created_at).date() == day]
        if day_reports:
            daily.append(DailyTrend(
                date=day.isoformat(),
                wellness=_mean([r.overall_wellness for r in day_reports]),
                stress=_mean([r.stress_level for r in day_reports]),
                report_count=len(day_reports),
            ))

    return ReportsAnalytics(
        count=len(reports),
        avg_by_subscore={name: _mean([getattr(r, name) for r in reports]) for name in SUBSCORES},
        avg_wellness=_mean([r.overall_wellness for r in reports]),
        risk_distribution=risk,
        trend_direction=_trend_direction(reports),
        department_breakdown={
            dept: DepartmentBreakdown(count=len(scores), avg_wellness=_mean(scores))
            for dept, scores in by_department.items()
        },
        daily_trends=daily,
    )


def _bounded(text: str) -> str:
    text = text.strip()
    if len(text) <= AI_CONTEXT_MAX_CHARS:
        return text
    return text[: AI_CONTEXT_MAX_CHARS - 3].rstrip() + "..."


def format_reports_for_ai(reports: List[models.WellnessReport], analytics: ReportsAnalytics, days: int = 7) -> str:
    """Aggregate-only digest for an LLM prompt. Never contains employee identifiers."""
    avg = analytics.avg_by_subscore
    risk = analytics.risk_distribution
    departments = sorted(analytics.department_breakdown.items(), key=lambda item: item[1].count, reverse=True)

    if analytics.avg_wellness >= 7:
        wellness_note = "Overall wellness is good"
    elif analytics.avg_wellness >= 5:
        wellness_note = "Overall wellness is moderate"
    else:
        wellness_note = "Overall wellness needs attention"
    stress = avg.get("stress_level", 0.0)
    if stress >= 7:
        stress_note = "Stress levels are concerning"
    elif stress >= 5:
        stress_note = "Stress levels are moderate"
    else:
        stress_note = "Stress levels are manageable"

    lines = [
        f"COMPANY WELLNESS SUMMARY (Last {days} Days):",
        f"- Total Reports: {analytics.count}",
        f"- Average Wellness Score: {analytics.avg_wellness}/10",
        f"- Average Stress Level: {stress}/10",
        f"- Average Anxiety Level: {avg.get('anxiety_level', 0.0)}/10",
        f"- Average Mood: {avg.get('mood_rating', 0.0)}/10",
        f"- Average Energy: {avg.get('energy_level', 0.0)}/10",
        f"- Average Sleep Quality: {avg.get('sleep_quality', 0.0)}/10",
        f"- Wellness Trend: {analytics.trend_direction}",
        "",
        "RISK DISTRIBUTION:",
        f"- High Risk: {risk.high} reports",
        f"- Medium Risk: {risk.medium} reports",
        f"- Low Risk: {risk.low} reports",
        "",
        "DEPARTMENT BREAKDOWN:",
    ]
    lines += [f"- {dept}: {stats.count} reports, avg wellness {stats.avg_wellness}/10" for dept, stats in departments]
    lines += ["", "RECENT TRENDS:"]
    lines += [
        f"- {t.date}: {t.report_count} reports, wellness {t.wellness}/10, stress {t.stress}/10"
        for t in analytics.daily_trends
    ]
    lines += [
        "",
        "KEY INSIGHTS:",
        f"- {wellness_note}",
        f"- {stress_note}",
        f"- {risk.high} reports need immediate attention" if risk.high else "- No high-risk reports identified",
        f"- Most active department: {departments[0][0] if departments else 'N/A'}",
    ]
    return _bounded("\n".join(lines))


# --- One employee ---

def extract_key_topics(report: models.WellnessReport) -> List[str]:
    topics = []
    if report.stress_level >= 7: topics.append("High Stress")
    if report.anxiety_level >= 7: topics.append("Anxiety")
    if report.work_satisfaction <= 4: topics.append("Work Dissatisfaction")
    if report.work_life_balance <= 4: topics.append("Work-Life Balance")
    if report.sleep_quality <= 4: topics.append("Sleep Issues")
    if report.energy_level <= 4: topics.append("Low Energy")
    if report.confidence_level <= 4: topics.append("Low Confidence")
    if report.mood_rating <= 4: topics.append("Low Mood")
    if report.overall_wellness >= 8: topics.append("Good Wellness")
    if report.mood_rating >= 8: topics.append("Positive Mood")
    if report.energy_level >= 8: topics.append("High Energy")
    return topics[:3]


def _progress(current: List[float], previous: List[float], invert: bool = False) -> ProgressTrend:
    cur = sum(current) / len(current) if current else 0.0
    prev = sum(previous) / len(previous) if previous else 0.0
    diff = (prev - cur) if invert else (cur - prev)
    if abs(diff) < PROGRESS_DEADBAND:
        trend = "stable"
    else:
        trend = "improving" if diff > 0 else "declining"
    return ProgressTrend(current=_round1(cur), previous=_round1(prev), trend=trend)


def calculate_progress_trends(reports: List[models.WellnessReport]) -> ProgressTrends:
    """Last 7 days against the 7 days before. Falling stress reads as improving."""
    if len(reports) < 2:
        return ProgressTrends()
    now = datetime.now(timezone.utc)
    week_ago, two_weeks_ago = now - timedelta(days=7), now - timedelta(days=14)
    recent = [r for r in reports if as_utc(r.created_at) >= week_ago]
    previous = [r for r in reports if two_weeks_ago <= as_utc(r.created_at) < week_ago]
    return ProgressTrends(
        wellness=_progress([r.overall_wellness for r in recent], [r.overall_wellness for r in previous]),
        stress=_progress([r.stress_level for r in recent], [r.stress_level for r in previous], invert=True),
        mood=_progress([r.mood_rating for r in recent], [r.mood_rating for r in previous]),
    )


def get_personal_history(db: Session, user_id: str, company_id: str, days: int = 30) -> PersonalHistory:
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    reports = _newest_first(
        db.query(models.WellnessReport)
        .filter(
            models.WellnessReport.employee_id == user_id,
            models.WellnessReport.company_id == company_id,
            models.WellnessReport.created_at >= cutoff,
        )
        .all()
    )
    sessions = [
        SessionSummary(
            date=as_utc(r.created_at).date().isoformat(),
            session_type=r.session_type,
            duration=r.session_duration,
            key_topics=extract_key_topics(r),
            mood=r.mood_rating,
            stress=r.stress_level,
        )
        for r in reports
    ]
    return PersonalHistory(
        recent_reports=[WellnessReport.model_validate(r) for r in reports],
        previous_sessions=sessions,
        progress_trends=calculate_progress_trends(reports),
    )


def format_personal_history_for_ai(history: PersonalHistory) -> str:
    if not history.recent_reports:
        return "This is the user's first wellness session. No previous history available."

    latest = history.recent_reports[0]
    sessions = history.previous_sessions
    trends = history.progress_trends
    count = len(sessions)

    wellness_pattern = {
        "improving": "User shows improving wellness trends",
        "declining": "User shows declining wellness - needs extra support",
    }.get(trends.wellness.trend, "User wellness is stable")
    stress_pattern = {
        "improving": "Stress management is improving",
        "declining": "Stress levels are increasing - focus on coping strategies",
    }.get(trends.stress.trend, "Stress levels are consistent")
    if count > 10:
        frequency = "Very engaged"
    elif count > 5:
        frequency = "Regularly engaged"
    else:
        frequency = "Occasional user"

    lines = [
        "PERSONAL WELLNESS HISTORY:",
        "",
        "RECENT ACTIVITY:",
        f"- Total sessions in last 30 days: {count}",
        f"- Last session: {sessions[0].date if sessions else 'N/A'}",
        f"- Session types: {', '.join(s.session_type for s in sessions)}",
        "",
        "CURRENT STATE (Latest Report):",
        f"- Overall Wellness: {latest.overall_wellness}/10",
        f"- Mood: {latest.mood_rating}/10",
        f"- Stress Level: {latest.stress_level}/10",
        f"- Energy: {latest.energy_level}/10",
        f"- Work Satisfaction: {latest.work_satisfaction}/10",
        f"- Sleep Quality: {latest.sleep_quality}/10",
        f"- Risk Level: {latest.risk_level}",
        "",
        "PROGRESS TRENDS (Last 7 days vs Previous 7 days):",
        f"- Wellness: {trends.wellness.current}/10 (was {trends.wellness.previous}/10) - {trends.wellness.trend}",
        f"- Stress: {trends.stress.current}/10 (was {trends.stress.previous}/10) - {trends.stress.trend}",
        f"- Mood: {trends.mood.current}/10 (was {trends.mood.previous}/10) - {trends.mood.trend}",
        "",
        "RECURRING THEMES:",
    ]
    lines += [f"- {s.date}: {', '.join(s.key_topics) or 'General wellness check'}" for s in sessions[:5]]
    if latest.ai_analysis:
        lines += ["", "PREVIOUS AI INSIGHTS:", latest.ai_analysis]
    lines += [
        "",
        "KEY PATTERNS TO CONSIDER:",
        f"- {wellness_pattern}",
        f"- {stress_pattern}",
        f"- Session frequency: {frequency}",
    ]
    return _bounded("\n".join(lines))


def get_employee_reports(db: Session, employee_id: str) -> List[models.WellnessReport]:
    return _newest_first(
        db.query(models.WellnessReport).filter(models.WellnessReport.employee_id == employee_id).all()
    )


def get_hierarchy_filtered_reports(db: Session, user_id: str, company_id: str,
                                   days: int = 7) -> List[models.WellnessReport]:
    """
    The team feed a user may browse: every active employee's reports for
    company-wide viewers, the user's own plus all subordinates' for team
    viewers, and only their own otherwise. Newest first.
    """
    user = db.get(models.User, user_id)
    if user is None or user.company_id != company_id:
        raise NotFoundError("User not found", {"userId": user_id})

    permissions = get_manager_permissions(user)
    index = OrgIndex.for_company(db, company_id)
    if permissions.has(Capability.VIEW_COMPANY_REPORTS):
        employee_ids = list(index.users)
    elif permissions.has(Capability.VIEW_TEAM_REPORTS):
        employee_ids = [user_id] + [u.id for u in index.subordinates(user_id)]
    else:
        employee_ids = [user_id]

    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    reports = (
        db.query(models.WellnessReport)
        .options(joinedload(models.WellnessReport.employee))
        .filter(
            models.WellnessReport.employee_id.in_(employee_ids),
            models.WellnessReport.company_id == company_id,
            models.WellnessReport.created_at >= cutoff,
        )
        .all()
    )
    return _newest_first(reports)


# --- CSV export ---

def _csv_row(report: models.WellnessReport) -> List:
    duration = round(report.session_duration / 60) if report.session_duration else "N/A"
    return [
        report.id,
        report.employee_id[-8:],
        as_utc(report.created_at).date().isoformat(),
        report.session_type,
        report.mood_rating,
        report.stress_level,
        report.energy_level,
        report.work_satisfaction,
        report.work_life_balance,
        report.anxiety_level,
        report.confidence_level,
        report.sleep_quality,
        report.overall_wellness,
        report.risk_level,
        duration,
        report.ai_analysis or "N/A",
    ]


def export_reports_csv(db: Session, company_id: str, time_range: str = "30d") -> str:
    """All reports of a tenant within time_range as CSV, newest first."""
    reports = get_recent_reports(db, company_id, TIME_RANGES.get(time_range, 90))
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for report in reports:
        writer.writerow(_csv_row(report))
    return buffer.getvalue()
