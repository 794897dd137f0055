# wellness_api/api/v1/endpoints/reports.py
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from wellness_api.db import models, session
from wellness_api.core import security
from wellness_api.schemas import report as report_schema
from wellness_api.services import reports
from wellness_api.services.permissions import can_access_employee_data

router = APIRouter()
logger = logging.getLogger(__name__)


def _same_company(user: models.User, company_id: str) -> None:
    if user.company_id != company_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot view another company's data")


# --- API Endpoints ---

@router.get("/recent", response_model=report_schema.RecentReportsResponse)
def read_recent_reports(
    companyId: str = Query(..., min_length=1),
    userId: Optional[str] = None,
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(session.get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """ Anonymous company digest for the last `days` days, plus one employee's own history when asked. """
    _same_company(current_user, companyId)

    company_reports = reports.get_recent_reports(db, companyId, days)
    analytics = reports.generate_reports_analytics(company_reports)
    ai_context = reports.format_reports_for_ai(company_reports, analytics, days)

    personal = None
    if userId:
        if not can_access_employee_data(db, current_user.id, userId):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot view this employee's history")
        history = reports.get_personal_history(db, userId, companyId, 30)
        personal = report_schema.PersonalData(
            history=history, aiContext=reports.format_personal_history_for_ai(history)
        )

    return {
        "success": True,
        "data": {
            "companyReports": {"count": len(company_reports), "analytics": analytics, "aiContext": ai_context},
            "personalHistory": personal,
        },
    }

@router.get("/me", response_model=List[report_schema.WellnessReport])
def read_my_reports(
    db: Session = Depends(session.get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    return reports.get_employee_reports(db, current_user.id)

@router.get("/team", response_model=List[report_schema.WellnessReport])
def read_team_reports(
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(session.get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """ Reports the caller may browse, scoped by their place in the hierarchy. """
    return reports.get_hierarchy_filtered_reports(db, current_user.id, current_user.company_id, days)

@router.get("/employee/{employee_id}", response_model=List[report_schema.WellnessReport])
def read_employee_reports(
    employee_id: str,
    db: Session = Depends(session.get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """ Drills down to one employee's report history, if the hierarchy allows it. """
    if not can_access_employee_data(db, current_user.id, employee_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only view reports for employees in your reporting line."
        )
    return reports.get_employee_reports(db, employee_id)

@router.post("/export")
def export_reports(
    request: report_schema.ExportRequest,
    db: Session = Depends(session.get_db),
    viewer: models.User = Depends(security.get_current_company_viewer)
):
    """ CSV export of the company's reports in the requested window, newest first. """
    _same_company(viewer, request.company_id)
    body = reports.export_reports_csv(db, request.company_id, request.time_range)
    filename = f"wellness-reports-{request.time_range}-{datetime.now(timezone.utc).date().isoformat()}.csv"
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
