from caelex.services import supervision as supervision_service


def test_user_without_config_has_no_reports(db_session, create_user, ctx_for):
    user = create_user()

    rows, total = supervision_service.list_reports(db_session, ctx_for(user))

    assert rows == []
    assert total == 0
    assert supervision_service.get_report_summary(db_session, ctx_for(user))["total"] == 0


def test_list_reports_filters_by_type_and_status(db_session, create_user, create_report, ctx_for):
    user = create_user()
    create_report(user, status="generated")
    create_report(user, status="draft")
    create_report(user, status="generated", report_type="incident_initial")

    rows, total = supervision_service.list_reports(
        db_session,
        ctx_for(user),
        supervision_service.ReportFilters(report_type="annual_compliance", status="GENERATED"),
    )

    assert total == 1
    assert rows[0].status == "generated"
    assert rows[0].report_type == "annual_compliance"


def test_summary_counts_submittable_reports(db_session, create_user, create_report, ctx_for):
    user = create_user()
    create_report(user, status="generated")
    create_report(user, status="ready")
    create_report(user, status="submitted")

    summary = supervision_service.get_report_summary(db_session, ctx_for(user))

    assert summary["total"] == 3
    assert summary["by_status"] == {"generated": 1, "ready": 1, "submitted": 1}
    assert summary["pending_submission"] == 2


def test_reports_endpoint_scopes_to_caller(db_session, create_user, create_report, client_for):
    owner = create_user()
    other = create_user()
    create_report(owner)
    create_report(other)

    response = client_for(owner).get("/supervision/reports")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["reports"][0]["reportType"] == "annual_compliance"


def test_summary_endpoint(db_session, create_user, create_report, client_for):
    user = create_user()
    create_report(user, status="ready")

    response = client_for(user).get("/supervision/reports/summary")

    assert response.status_code == 200
    assert response.json()["pendingSubmission"] == 1


def test_history_endpoint_limits_to_callers_reports(db_session, create_user, create_report, client_for):
    owner = create_user()
    other = create_user()
    for _ in range(3):
        create_report(owner)
    create_report(other, report_type="incident_notification")

    response = client_for(owner).get("/supervision/reports/history", params={"limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert len(body) == 2
    assert {report["reportType"] for report in body} == {"annual_compliance"}


def test_history_endpoint_without_config(db_session, create_user, client_for):
    response = client_for(create_user()).get("/supervision/reports/history")

    assert response.status_code == 200
    assert response.json() == []
