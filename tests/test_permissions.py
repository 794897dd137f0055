from unittest.mock import patch

import pytest

from wellness_api.core.errors import AccessDeniedError
from wellness_api.services.permissions import (
    Capability, can_access_employee_data, ensure_can_grant, get_manager_permissions,
)


def test_employee_has_no_capabilities(org):
    perms = get_manager_permissions(org["e1"])
    assert perms.capabilities == frozenset()
    assert perms.hierarchy_access_level == 0


def test_role_defaults(org, make_user):
    manager = get_manager_permissions(org["mgr"])
    assert manager.has(Capability.VIEW_TEAM_REPORTS)
    assert not manager.has(Capability.VIEW_COMPANY_REPORTS)
    assert manager.hierarchy_access_level == 1

    employer = get_manager_permissions(org["ceo"])
    assert employer.capabilities == frozenset(Capability)
    assert employer.hierarchy_access_level == 2

    hr = get_manager_permissions(make_user("hr", role="hr", level=2))
    assert hr.can_view_company_reports and not hr.can_manage_team_members


def test_flags_only_add_capabilities(make_user):
    lead = make_user("lead", can_view_team_reports=True, skip_level_access=True)
    perms = get_manager_permissions(lead)
    assert perms.can_view_team_reports and perms.can_view_subordinate_teams

    quiet_manager = make_user("quiet", role="manager", level=5, can_view_team_reports=False)
    assert get_manager_permissions(quiet_manager).can_view_team_reports


def test_analytics_depends_on_level(org):
    assert get_manager_permissions(org["mgr"]).can_access_analytics
    assert not get_manager_permissions(org["e1"]).can_access_analytics


def test_self_access_always_allowed(db, org):
    assert can_access_employee_data(db, "e1", "e1")
    assert can_access_employee_data(db, "ghost", "ghost")


def test_manager_sees_team_but_not_peers(db, org, make_user):
    other = make_user("other", role="manager", manager=org["vp"], level=3)
    stranger = make_user("stranger", manager=other, level=4)

    assert can_access_employee_data(db, "mgr", "e1")
    assert can_access_employee_data(db, "vp", "e3")
    assert not can_access_employee_data(db, "mgr", "stranger")
    assert not can_access_employee_data(db, "mgr", "vp")
    assert not can_access_employee_data(db, "e1", "e2")
    assert stranger.manager_id == "other"


def test_company_wide_roles_see_everyone_in_their_company(db, org, make_user):
    make_user("hr", role="hr", level=2)
    assert can_access_employee_data(db, "hr", "e2")
    assert can_access_employee_data(db, "ceo", "e2")


def test_cross_company_access_is_always_denied(db, org, make_user):
    make_user("boss", role="employer", company_id="globex")
    make_user("worker", company_id="globex")
    assert not can_access_employee_data(db, "ceo", "worker")
    assert not can_access_employee_data(db, "boss", "e1")


def test_skip_level_follows_manager_edges(db, make_user):
    top = make_user("top", role="manager", skip_level_access=True)
    lead = make_user("lead", role="manager", manager=top)
    make_user("ic", manager=lead, chain=["lead"])

    plain = make_user("plain", role="manager")
    lead2 = make_user("lead2", role="manager", manager=plain)
    make_user("ic2", manager=lead2, chain=["lead2"])

    assert top.skip_level_access
    assert can_access_employee_data(db, "top", "ic")
    assert not can_access_employee_data(db, "plain", "ic2")


def test_missing_or_inactive_users_are_denied(db, org):
    assert not can_access_employee_data(db, "nobody", "e1")
    assert not can_access_employee_data(db, "mgr", "nobody")

    org["mgr"].is_active = False
    db.commit()
    assert not can_access_employee_data(db, "mgr", "e1")


def test_lookup_failure_denies_instead_of_raising(db, org):
    with patch("wellness_api.services.permissions._check_access", side_effect=RuntimeError("db down")):
        assert can_access_employee_data(db, "ceo", "e1") is False


def test_reporting_chain_grants_access_without_team_capability(db, make_user, make_report):
    lead = make_user("lead")
    worker = make_user("worker", manager=lead)
    make_report(worker)

    assert get_manager_permissions(lead).capabilities == frozenset()
    assert worker.reporting_chain == ["lead"]
    assert can_access_employee_data(db, "lead", "worker")
    assert not can_access_employee_data(db, "worker", "lead")


def test_reporting_chain_reaches_above_the_direct_manager(db, make_user):
    top = make_user("top")
    mid = make_user("mid", manager=top)
    make_user("low", manager=mid)
    assert can_access_employee_data(db, "top", "low")


def test_team_flag_lifts_employee_role(db, make_user):
    lead = make_user("lead", can_view_team_reports=True)
    make_user("worker", manager=lead)

    perms = get_manager_permissions(lead)
    assert perms.can_view_team_reports and perms.can_view_direct_reports
    assert perms.hierarchy_access_level == 1
    assert can_access_employee_data(db, "lead", "worker")


def test_owner_can_grant_anything(org):
    ensure_can_grant(org["ceo"], "admin", {"skip_level_access": True, "can_manage_employees": True}, 1)


def test_managers_cannot_grant_privileged_roles(make_user):
    boss = make_user("boss", role="manager", level=2, can_manage_employees=True)
    for role in ("employer", "hr", "admin"):
        with pytest.raises(AccessDeniedError):
            ensure_can_grant(boss, role, {}, 3)
    ensure_can_grant(boss, "manager", {"can_manage_employees": True}, 3)
    ensure_can_grant(boss, "employee", {}, 3)


def test_grants_are_bounded_by_the_editors_capabilities(make_user):
    boss = make_user("boss", role="manager", level=5, can_manage_employees=True)
    with pytest.raises(AccessDeniedError):
        ensure_can_grant(boss, "employee", {"skip_level_access": True}, 6)
    with pytest.raises(AccessDeniedError):
        ensure_can_grant(boss, "employee", {"can_approve_leaves": True}, 6)

    hr = make_user("people", role="hr", level=2, can_manage_employees=True)
    with pytest.raises(AccessDeniedError):
        ensure_can_grant(hr, "hr", {}, 3)
