"""Built-in progress report definitions."""

from __future__ import annotations

from concurrent.futures import Executor
from typing import Any, Dict, List, Mapping, Optional

from .services.renderers import json_renderers
from .services.report import ReportConfig, ReportDataController
from .services.sorting import SortDefinition, field_sort_key


def activity_sessions_columns() -> List[Mapping[str, Any]]:
    return [
        {"name": "App", "field": "activity_classification_name", "sortByField": "activity_classification"},
        {"name": "Activity", "field": "activity_name", "sortByField": "activity_name"},
        {"name": "Date", "field": "display_completed_at", "sortByField": "completed_at"},
        {"name": "Time Spent", "field": "display_time_spent", "sortByField": "time_spent"},
        {"name": "Standard", "field": "standard", "sortByField": "standard"},
        {"name": "Score", "field": "display_score", "sortByField": "percentage"},
        {"name": "Student", "field": "student_name", "sortByField": "student_name"},
    ]


def activity_sessions_sorting() -> SortDefinition:
    # Tokens understood by the activity sessions endpoint.
    return SortDefinition(
        config={
            "activity_classification": "activity_classification_name",
            "activity_name": "activity_name",
            "completed_at": "completed_at",
            "time_spent": "time_spent",
            "standard": "standard",
            "percentage": "percentage",
            "student_name": "student_name",
        },
        default="completed_at",
    )


def concept_mastery_columns() -> List[Mapping[str, Any]]:
    return [
        {"name": "Student", "field": "name", "sortByField": "name"},
        {"name": "Questions", "field": "total_result_count", "sortByField": "total_result_count"},
        {"name": "Correct", "field": "correct_result_count", "sortByField": "correct_result_count"},
        {"name": "Incorrect", "field": "incorrect_result_count", "sortByField": "incorrect_result_count"},
        {"name": "Percentage", "field": "percentage", "sortByField": "percentage"},
    ]


def concept_mastery_sorting() -> SortDefinition:
    return SortDefinition(
        config={
            field: field_sort_key(field)
            for field in (
                "name",
                "total_result_count",
                "correct_result_count",
                "incorrect_result_count",
                "percentage",
            )
        },
        default="name",
    )


def default_report_configs() -> Dict[str, ReportConfig]:
    return {
        "activity_sessions": ReportConfig(
            source_url="/teachers/progress_reports/activity_sessions",
            results_key="activity_sessions",
            sort_definitions=activity_sessions_sorting,
            column_definitions=activity_sessions_columns,
            filter_types=("classroom", "student", "unit"),
            pagination=True,
            export_csv="activity_sessions",
        ),
        "concept_mastery": ReportConfig(
            source_url="/teachers/progress_reports/concepts/students",
            results_key="students",
            sort_definitions=concept_mastery_sorting,
            column_definitions=concept_mastery_columns,
            filter_types=("classroom",),
            pagination=False,
            export_csv="concept_mastery",
        ),
    }


def build_default_reports(
    executor: Optional[Executor] = None, base_url: Optional[str] = None
) -> Dict[str, ReportDataController]:
    return {
        name: ReportDataController(
            config,
            executor=executor,
            renderers=json_renderers(),
            base_url=base_url,
        )
        for name, config in default_report_configs().items()
    }
