import os
import sys
import unittest
from concurrent.futures import Executor, Future
from unittest.mock import MagicMock, patch

import requests  # type: ignore[import-untyped]

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from progress_reports import create_app  # noqa: E402
from progress_reports.report_client import (  # noqa: E402
    ReportRequestParams,
    RequestDescriptor,
    build_report_request,
    build_resource_request,
    send_request,
)
from progress_reports.reports import default_report_configs  # noqa: E402
from progress_reports.services.export import ExportCoordinator  # noqa: E402
from progress_reports.services.renderers import json_renderers  # noqa: E402
from progress_reports.services.report import ReportDataController  # noqa: E402
from progress_reports.services.source import resolve_report_url  # noqa: E402


class InlineExecutor(Executor):
    def submit(self, fn, *args, **kwargs):
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:  # pragma: no cover - surfaced via future
            future.set_exception(exc)
        return future


class DummyResponse:
    def __init__(self, status_code=200, json_data=None, headers=None):
        self.status_code = status_code
        self._json_data = json_data
        self.headers = headers or {"content-type": "application/json"}
        self.text = "" if json_data is None else "body"

    def raise_for_status(self):
        if self.status_code >= 400:
            error = requests.HTTPError(f"{self.status_code} error")
            error.response = self
            raise error

    def json(self):
        if self._json_data is None:
            raise ValueError("No JSON body")
        return self._json_data


ACTIVITY_PAYLOAD = {
    "activity_sessions": [
        {"activity_name": "Commas in Dates", "student_name": "Ada", "percentage": 0.9},
        {"activity_name": "Capitalization", "student_name": "Bo", "percentage": 0.5},
    ],
    "page_count": 3,
    "teacher": {"name": "Ms. Teacher", "email": "teacher@example.com"},
    "classrooms": [{"id": 5, "name": "Period 1"}],
    "students": [{"id": 10, "name": "Ada"}, {"id": 11, "name": "Bo"}],
    "units": [{"id": 3, "name": "Punctuation"}],
}


class BuildRequestTest(unittest.TestCase):
    def test_report_request_flattens_filters_page_and_sort(self):
        descriptor = build_report_request(
            ReportRequestParams(
                source_url="http://reports.test/activity_sessions",
                filters={"classroom_id": 5, "unit_id": "", "student_id": None},
                page=2,
                sort={"sort[field]": "completed_at", "sort[direction]": "desc"},
            )
        )

        self.assertEqual(descriptor.method, "GET")
        self.assertIsNone(descriptor.json)
        self.assertIsNone(descriptor.content_type)
        self.assertEqual(
            dict(descriptor.params),
            {
                "classroom_id": 5,
                "unit_id": "",
                "page": 2,
                "sort[field]": "completed_at",
                "sort[direction]": "desc",
            },
        )

    def test_report_request_without_pagination_has_no_page(self):
        descriptor = build_report_request(
            ReportRequestParams(source_url="/reports", filters={"classroom_id": 5})
        )

        self.assertEqual(dict(descriptor.params), {"classroom_id": 5})

    def test_resource_request_creates_or_updates(self):
        create = build_resource_request(
            "classrooms", {"classroom": {"name": "Period 1"}}, url_prefix="/teachers"
        )
        update = build_resource_request(
            "classrooms", {"classroom": {"name": "Period 2"}}, 7, "/teachers"
        )

        self.assertEqual((create.method, create.url), ("POST", "/teachers/classrooms"))
        self.assertEqual((update.method, update.url), ("PUT", "/teachers/classrooms/7"))
        self.assertEqual(update.json, {"classroom": {"name": "Period 2"}})
        self.assertEqual(update.content_type, "application/json")


class SendRequestTest(unittest.TestCase):
    def test_get_passes_params_and_returns_json(self):
        descriptor = RequestDescriptor(
            method="GET",
            url="http://reports.test/activity_sessions",
            params={"page": 1},
            timeout=5,
        )

        with patch(
            "progress_reports.report_client.requests.request",
            return_value=DummyResponse(json_data={"page_count": 1}),
        ) as mock_request:
            result = send_request(descriptor)

        self.assertEqual(result, {"page_count": 1})
        mock_request.assert_called_once_with(
            "GET",
            "http://reports.test/activity_sessions",
            headers={"Accept": "application/json"},
            params={"page": 1},
            json=None,
            timeout=5,
        )

    def test_http_error_includes_server_details(self):
        descriptor = RequestDescriptor(method="GET", url="http://reports.test/x")
        response = DummyResponse(
            status_code=422,
            json_data={"error": "Invalid classroom", "errors": {"unit_id": ["is unknown"]}},
        )

        with patch(
            "progress_reports.report_client.requests.request", return_value=response
        ):
            with self.assertRaises(requests.HTTPError) as ctx:
                send_request(descriptor)

        self.assertEqual(
            str(ctx.exception), "422 error - Invalid classroom; unit_id is unknown"
        )
        self.assertIs(ctx.exception.response, response)

    def test_post_without_json_body_returns_empty_mapping(self):
        descriptor = RequestDescriptor(method="POST", url="http://reports.test/x", json={})
        response = DummyResponse(headers={"content-type": "text/html"})

        with patch(
            "progress_reports.report_client.requests.request", return_value=response
        ) as mock_request:
            result = send_request(descriptor)

        self.assertEqual(result, {})
        headers = mock_request.call_args.kwargs["headers"]
        self.assertEqual(headers["Content-Type"], "application/json")


class ResolveReportUrlTest(unittest.TestCase):
    def test_relative_urls_use_explicit_base_first(self):
        with patch.dict(os.environ, {"REPORTS_BASE_URL": "http://env.test/"}):
            self.assertEqual(
                resolve_report_url("/reports", "http://given.test/"),
                "http://given.test/reports",
            )
            self.assertEqual(resolve_report_url("reports"), "http://env.test/reports")

    def test_absolute_and_unconfigured_urls_are_unchanged(self):
        with patch.dict(os.environ, {"REPORTS_BASE_URL": ""}):
            self.assertEqual(resolve_report_url("/reports"), "/reports")
            self.assertEqual(
                resolve_report_url("https://other.test/r", "http://given.test"),
                "https://other.test/r",
            )


class ReportsApiTest(unittest.TestCase):
    def setUp(self):
        self.sent = []
        self.export_fails = False
        self.confirmation = MagicMock()
        executor = InlineExecutor()
        configs = default_report_configs()
        self.activity = ReportDataController(
            configs["activity_sessions"],
            executor=executor,
            send=self.fake_send,
            renderers=json_renderers(),
            export_coordinator=ExportCoordinator(
                executor,
                send=self.fake_send,
                confirmation=self.confirmation,
                base_url="http://reports.test",
            ),
            base_url="http://reports.test",
        )
        configs["concept_mastery"].export_csv = None
        self.concepts = ReportDataController(
            configs["concept_mastery"],
            executor=executor,
            send=self.fake_send,
            renderers=json_renderers(),
            base_url="http://reports.test",
        )
        app = create_app(
            {"activity_sessions": self.activity, "concept_mastery": self.concepts}
        )
        self.client = app.test_client()

    def fake_send(self, descriptor):
        self.sent.append(descriptor)
        if descriptor.method == "POST":
            if self.export_fails:
                raise requests.ConnectionError("export service down")
            return {}
        if descriptor.url.endswith("/concepts/students"):
            return {
                "students": [{"name": "Bo", "percentage": 40}, {"name": "Ada", "percentage": 80}],
                "classrooms": [],
            }
        return ACTIVITY_PAYLOAD

    def test_lists_registered_reports(self):
        response = self.client.get("/api/reports")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.get_json(), {"reports": ["activity_sessions", "concept_mastery"]}
        )

    def test_unknown_report_returns_404(self):
        response = self.client.get("/api/reports/missing")

        self.assertEqual(response.status_code, 404)
        self.assertIn("Unknown report", response.get_json()["error"])

    def test_mount_renders_rows_filters_and_pagination(self):
        response = self.client.post("/api/reports/activity_sessions/mount")

        data = response.get_json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(data["status"], "idle")
        self.assertFalse(data["loading"])
        self.assertEqual(len(data["main"]["rows"]), 2)
        self.assertEqual(
            data["main"]["currentSort"], {"field": "completed_at", "direction": "asc"}
        )
        self.assertEqual(
            data["pagination"], {"currentPage": 1, "numberOfPages": 3, "pages": [1, 2, 3]}
        )
        student_filter = data["filters"][1]
        self.assertEqual(student_filter["field"], "student_id")
        self.assertEqual(
            student_filter["selected"], {"name": "All Students", "value": ""}
        )
        self.assertEqual(
            [option["name"] for option in student_filter["options"]],
            ["All Students", "Ada", "Bo"],
        )
        self.assertEqual(
            data["export"],
            {"exportType": "activity_sessions", "email": "teacher@example.com", "status": None},
        )
        self.assertEqual(
            self.sent[0].url, "http://reports.test/teachers/progress_reports/activity_sessions"
        )

    def test_filter_change_resets_page(self):
        self.client.post("/api/reports/activity_sessions/mount")
        self.client.post("/api/reports/activity_sessions/page", json={"page": 3})

        response = self.client.post(
            "/api/reports/activity_sessions/filters",
            json={"field": "classroom_id", "value": 5, "name": "Period 1"},
        )

        data = response.get_json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(data["activeFilters"], {"classroom_id": 5})
        self.assertEqual(data["pagination"]["currentPage"], 1)
        self.assertEqual(self.sent[-1].params["page"], 1)
        self.assertEqual(
            data["filters"][0]["selected"], {"name": "Period 1", "value": 5}
        )

    def test_filter_validation(self):
        self.client.post("/api/reports/activity_sessions/mount")

        missing = self.client.post("/api/reports/activity_sessions/filters", json={})
        unknown = self.client.post(
            "/api/reports/activity_sessions/filters",
            json={"field": "school_id", "value": 1},
        )

        self.assertEqual(missing.status_code, 400)
        self.assertEqual(unknown.status_code, 400)
        self.assertEqual(len(self.sent), 1)

    def test_client_side_sort_does_not_refetch(self):
        self.client.post("/api/reports/concept_mastery/mount")

        response = self.client.post(
            "/api/reports/concept_mastery/sort", json={"key": "percentage"}
        )
        again = self.client.post(
            "/api/reports/concept_mastery/sort", json={"key": "percentage"}
        )

        self.assertEqual(
            [row["name"] for row in response.get_json()["main"]["rows"]], ["Bo", "Ada"]
        )
        self.assertEqual(
            [row["name"] for row in again.get_json()["main"]["rows"]], ["Ada", "Bo"]
        )
        self.assertEqual(len(self.sent), 1)
        self.assertNotIn("pagination", again.get_json())

    def test_sort_and_page_validation(self):
        self.client.post("/api/reports/activity_sessions/mount")

        bad_sort = self.client.post(
            "/api/reports/activity_sessions/sort", json={"key": "nope"}
        )
        bad_page = self.client.post(
            "/api/reports/activity_sessions/page", json={"page": "zero"}
        )

        self.assertEqual(bad_sort.status_code, 400)
        self.assertEqual(bad_page.status_code, 400)
        self.assertEqual(len(self.sent), 1)

    def test_export_queues_with_current_filters(self):
        self.client.post("/api/reports/activity_sessions/mount")
        self.client.post(
            "/api/reports/activity_sessions/filters",
            json={"field": "unit_id", "value": 3},
        )

        response = self.client.post("/api/reports/activity_sessions/export")

        self.assertEqual(response.status_code, 202)
        self.assertEqual(
            response.get_json(),
            {"exportStatus": "queued", "email": "teacher@example.com"},
        )
        export_request = self.sent[-1]
        self.assertEqual(
            export_request.url, "http://reports.test/teachers/progress_reports/csv_exports"
        )
        self.assertEqual(
            export_request.json,
            {"csv_export": {"export_type": "activity_sessions", "filters": {"unit_id": 3}}},
        )
        self.confirmation.open.assert_called_once_with("teacher@example.com")

    def test_failed_export_is_not_confirmed(self):
        self.client.post("/api/reports/activity_sessions/mount")
        self.export_fails = True

        response = self.client.post("/api/reports/activity_sessions/export")

        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.get_json()["exportStatus"], "failed")
        view = self.client.get("/api/reports/activity_sessions").get_json()
        self.assertEqual(view["export"]["status"], "failed")
        self.confirmation.open.assert_not_called()

    def test_export_unsupported_report(self):
        response = self.client.post("/api/reports/concept_mastery/export")

        self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
