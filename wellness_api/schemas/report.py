# wellness_api/schemas/report.py
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

RiskLevel = Literal["low", "medium", "high"]
SessionType = Literal["text", "voice"]
TrendDirection = Literal["up", "down", "stable"]


class WellnessReport(BaseModel):
    id: str
    employee_id: str
    company_id: str
    mood_rating: int
    stress_level: int
    anxiety_level: int
    work_satisfaction: int
    work_life_balance: int
    energy_level: int
    confidence_level: int
    sleep_quality: int
    overall_wellness: float
    risk_level: RiskLevel
    session_type: SessionType
    session_duration: Optional[int] = None
    ai_analysis: Optional[str] = None
    key_insights: List[str] = []
    recommendations: List[str] = []
    created_at: datetime

    class Config:
        from_attributes = True


class RiskDistribution(BaseModel):
    low: int = 0
    medium: int = 0
    high: int = 0


class DepartmentBreakdown(BaseModel):
    count: int = 0
    avg_wellness: float = 0.0


class DailyTrend(BaseModel):
    date: str
    wellness: float
    stress: float
    report_count: int


class ReportsAnalytics(BaseModel):
    count: int = 0
    avg_by_subscore: Dict[str, float] = {}
    avg_wellness: float = 0.0
    risk_distribution: RiskDistribution = RiskDistribution()
    trend_direction: TrendDirection = "stable"
    department_breakdown: Dict[str, DepartmentBreakdown] = {}
    daily_trends: List[DailyTrend] = []


class SessionSummary(BaseModel):
    date: str
    session_type: SessionType
    duration: Optional[int] = None
    key_topics: List[str] = []
    mood: int
    stress: int


class ProgressTrend(BaseModel):
    current: float = 0.0
    previous: float = 0.0
    trend: Literal["improving", "stable", "declining"] = "stable"


class ProgressTrends(BaseModel):
    wellness: ProgressTrend = ProgressTrend()
    stress: ProgressTrend = ProgressTrend()
    mood: ProgressTrend = ProgressTrend()


class PersonalHistory(BaseModel):
    recent_reports: List[WellnessReport] = []
    previous_sessions: List[SessionSummary] = []
    progress_trends: ProgressTrends = ProgressTrends()


class CompanyReports(BaseModel):
    count: int
    analytics: ReportsAnalytics
    aiContext: str


class PersonalData(BaseModel):
    history: Optional[PersonalHistory] = None
    aiContext: Optional[str] = None
    error: Optional[str] = None


class RecentReportsData(BaseModel):
    companyReports: CompanyReports
    personalHistory: Optional[PersonalData] = None


class RecentReportsResponse(BaseModel):
    success: bool = True
    data: RecentReportsData


class ExportRequest(BaseModel):
    company_id: str = Field(min_length=1)
    time_range: Literal["7d", "30d", "90d"] = "30d"
