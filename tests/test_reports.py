import csv
import io

import pytest

from wellness_api.core.errors import NotFoundError
from wellness_api.schemas.chat import StructuredReport
from wellness_api.services import reports


def _structured(**overrides):
    values = dict(
        mood=8, stress_score=4, anxious_level=4, work_satisfaction=6, work_life_balance=7,
        energy_level=7, confident_level=8, sleep_quality=6, complete_report="Steady week.",
        key_insights=["Sleeping better"], recommendations=["Keep walking at lunch"],
    )
    values.update(overrides)
    return StructuredReport(**values)


def test_overall_wellness_inverts_stress_and_anxiety():
    assert reports.calculate_overall_wellness(_structured()) == 7.0


def test_risk_level_thresholds():
    assert reports.calculate_risk_level(_structured()) == "low"
    assert reports.calculate_risk_level(_structured(stress_score=6, anxious_level=6, mood=5)) == "medium"
    assert reports.calculate_risk_level(_structured(stress_score=9, anxious_level=8, mood=2)) == "high"


def test_save_structured_report_maps_fields(db, org):
    stored = reports.save_structured_report(
        db, _structured(), user=org["e1"], session_type="voice", session_duration=420
    )
    assert stored.employee_id == "e1"
    assert stored.company_id == "acme"
    assert stored.stress_level == 4 and stored.confidence_level == 8
    assert stored.overall_wellness == 7.0
    assert stored.risk_level == "low"
    assert stored.key_insights == ["Sleeping better"]


def test_recent_reports_window_tenant_and_order(db, org, make_user, make_report):
    old = make_report(org["e1"], days_ago=10)
    middle = make_report(org["e2"], days_ago=3)
    newest = make_report(org["e3"], days_ago=1)
    make_report(make_user("rival", company_id="globex"), days_ago=1)

    found = reports.get_recent_reports(db, "acme", days_back=7)

    assert [r.id for r in found] == [newest.id, middle.id]
    assert old.id not in {r.id for r in found}


def test_analytics_of_empty_window_is_neutral():
    analytics = reports.generate_reports_analytics([])
    assert analytics.count == 0
    assert analytics.avg_wellness == 0.0
    assert set(analytics.avg_by_subscore) == set(reports.SUBSCORES)
    assert all(v == 0.0 for v in analytics.avg_by_subscore.values())
    assert analytics.trend_direction == "stable"
    assert analytics.risk_distribution.high == 0


def test_analytics_averages_risk_and_departments(db, org, make_report):
    make_report(org["e1"], overall=8.0, risk="low", stress_level=2)
    make_report(org["e2"], overall=4.0, risk="high", stress_level=8)

    analytics = reports.generate_reports_analytics(reports.get_recent_reports(db, "acme"))

    assert analytics.count == 2
    assert analytics.avg_wellness == 6.0
    assert analytics.avg_by_subscore["stress_level"] == 5.0
    assert analytics.risk_distribution.low == 1 and analytics.risk_distribution.high == 1
    assert analytics.department_breakdown["Sales"].avg_wellness == 8.0
    assert analytics.department_breakdown["Support"].count == 1
    assert sum(t.report_count for t in analytics.daily_trends) == 2


def test_trend_direction(db, org, make_report):
    make_report(org["e1"], days_ago=6, overall=4.0)
    make_report(org["e2"], days_ago=5, overall=4.0)
    make_report(org["e1"], days_ago=1, overall=8.0)
    make_report(org["e2"], days_ago=0, overall=8.0)
    assert reports.generate_reports_analytics(reports.get_recent_reports(db, "acme")).trend_direction == "up"


def test_trend_direction_down_and_stable(org, make_report):
    falling = [make_report(org["e1"], days_ago=4, overall=8.0), make_report(org["e1"], days_ago=1, overall=5.0)]
    assert reports.generate_reports_analytics(falling).trend_direction == "down"

    flat = [
        make_report(org["e2"], days_ago=4, overall=5.0),
        make_report(org["e2"], days_ago=3, overall=5.0),
        make_report(org["e2"], days_ago=1, overall=5.2),
    ]
    assert reports.generate_reports_analytics(flat).trend_direction == "stable"


def test_ai_digest_is_bounded_and_anonymous(db, org, make_report):
    for _ in range(40):
        make_report(org["e1"], risk="high", overall=3.0)
    found = reports.get_recent_reports(db, "acme")
    digest = reports.format_reports_for_ai(found, reports.generate_reports_analytics(found))

    assert digest.startswith("COMPANY WELLNESS SUMMARY (Last 7 Days):")
    assert "- Total Reports: 40" in digest
    assert "40 reports need immediate attention" in digest
    assert len(digest) <= reports.AI_CONTEXT_MAX_CHARS
    for user_id in ("e1", "mgr", "ceo"):
        assert f"{user_id}@" not in digest
    assert all(r.id not in digest for r in found)


def test_personal_history_first_session():
    history = reports.PersonalHistory(recent_reports=[], previous_sessions=[])
    assert "first wellness session" in reports.format_personal_history_for_ai(history)


def test_personal_history_progress_and_context(db, org, make_report):
    make_report(org["e1"], days_ago=10, overall=4.0, stress_level=8, mood_rating=4)
    make_report(org["e1"], days_ago=2, overall=7.0, stress_level=3, mood_rating=8, analysis="Much calmer now.")
    make_report(org["e1"], days_ago=45, overall=1.0)

    history = reports.get_personal_history(db, "e1", "acme", days=30)

    assert len(history.recent_reports) == 2
    assert history.previous_sessions[0].key_topics == ["Positive Mood"]
    assert history.progress_trends.wellness.trend == "improving"
    assert history.progress_trends.stress.trend == "improving"
    assert history.progress_trends.mood.trend == "improving"

    context = reports.format_personal_history_for_ai(history)
    assert context.startswith("PERSONAL WELLNESS HISTORY:")
    assert "- Total sessions in last 30 days: 2" in context
    assert "Much calmer now." in context


def test_key_topics_are_capped_at_three(org, make_report):
    report = make_report(
        org["e1"], stress_level=9, anxiety_level=9, work_satisfaction=2, sleep_quality=2, mood_rating=2
    )
    assert reports.extract_key_topics(report) == ["High Stress", "Anxiety", "Work Dissatisfaction"]


def test_csv_export_round_trips_scores(db, org, make_report):
    older = make_report(org["e1"], days_ago=3, risk="medium", stress_level=6, analysis='Said "busy, but ok"')
    newer = make_report(org["e2"], days_ago=1, risk="low", mood_rating=9, sleep_quality=8)
    make_report(org["e3"], days_ago=40)

    body = reports.export_reports_csv(db, "acme", "30d")
    rows = list(csv.DictReader(io.StringIO(body)))

    assert list(rows[0].keys()) == reports.CSV_HEADERS
    assert [r["Report ID"] for r in rows] == [newer.id, older.id]
    assert rows[1]["Risk Level"] == "medium"
    assert rows[1]["Stress Level"] == "6"
    assert rows[1]["AI Analysis Summary"] == 'Said "busy, but ok"'
    assert rows[1]["Session Duration (min)"] == "10"
    assert rows[0]["Mood Rating"] == "9"
    assert rows[0]["Sleep Quality"] == "8"
    assert rows[0]["Employee ID"] == "e2"
    for column in ("Mood Rating", "Stress Level", "Energy Level", "Work Satisfaction",
                   "Work Life Balance", "Anxiety Level", "Confidence Level", "Sleep Quality"):
        assert 1 <= int(rows[0][column]) <= 10


def test_csv_export_of_empty_company_has_only_headers(db):
    body = reports.export_reports_csv(db, "nobody", "7d")
    assert list(csv.reader(io.StringIO(body))) == [reports.CSV_HEADERS]


def _feed(db, user_id, days=7):
    return [r.employee_id for r in reports.get_hierarchy_filtered_reports(db, user_id, "acme", days)]


@pytest.fixture
def team_reports(org, make_user, make_report):
    make_report(org["ceo"], days_ago=6)
    make_report(org["vp"], days_ago=5)
    make_report(org["mgr"], days_ago=4)
    make_report(org["e1"], days_ago=3)
    make_report(org["e2"], days_ago=2)
    make_report(org["e3"], days_ago=1)
    make_report(org["e1"], days_ago=20)
    make_report(make_user("rival", company_id="globex"), days_ago=1)


def test_company_viewers_get_every_report_in_the_window(db, team_reports):
    assert _feed(db, "ceo") == ["e3", "e2", "e1", "mgr", "vp", "ceo"]
    assert _feed(db, "ceo", days=30).count("e1") == 2


def test_team_viewers_get_their_own_and_all_subordinates(db, team_reports):
    assert _feed(db, "vp") == ["e3", "e2", "e1", "mgr", "vp"]
    assert _feed(db, "mgr") == ["e3", "e2", "e1", "mgr"]


def test_everyone_else_gets_only_their_own(db, org, make_user, make_report, team_reports):
    assert _feed(db, "e1") == ["e1"]
    lead = make_user("lead", manager=org["mgr"], level=5)
    make_report(make_user("helper", manager=lead), days_ago=1)
    assert _feed(db, "lead") == []


def test_team_feed_skips_deactivated_employees(db, org, team_reports):
    org["e2"].is_active = False
    db.commit()
    assert "e2" not in _feed(db, "ceo")
    assert "e2" not in _feed(db, "mgr")


def test_team_feed_requires_a_user_of_the_company(db, org):
    with pytest.raises(NotFoundError):
        reports.get_hierarchy_filtered_reports(db, "nobody", "acme")
    with pytest.raises(NotFoundError):
        reports.get_hierarchy_filtered_reports(db, "e1", "globex")
