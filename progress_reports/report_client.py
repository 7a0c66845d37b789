"""Request builders and HTTP transport for report endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

import requests  # type: ignore[import-untyped]

from .config import EXPORT_TIMEOUT, REPORT_TIMEOUT

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


def _default_headers() -> Dict[str, str]:
    return {"Accept": JSON_CONTENT_TYPE}


@dataclass(frozen=True)
class RequestDescriptor:
    """A fully formed HTTP request ready to hand to :func:`send_request`."""

    method: str
    url: str
    params: Mapping[str, Any] = field(default_factory=dict)
    json: Optional[Mapping[str, Any]] = None
    headers: Mapping[str, str] = field(default_factory=_default_headers)
    timeout: int = REPORT_TIMEOUT

    @property
    def content_type(self) -> Optional[str]:
        return JSON_CONTENT_TYPE if self.json is not None else None


@dataclass(frozen=True)
class ReportRequestParams:
    source_url: str
    filters: Mapping[str, Any] = field(default_factory=dict)
    page: Optional[int] = None
    sort: Mapping[str, str] = field(default_factory=dict)
    timeout: int = REPORT_TIMEOUT


def build_report_request(params: ReportRequestParams) -> RequestDescriptor:
    """Build the GET request for a report page.

    Query parameters are the active filters, then ``page`` when the report is
    paginated, then the flattened sort token.
    """
    query: Dict[str, Any] = {
        name: value for name, value in params.filters.items() if value is not None
    }
    if params.page is not None:
        query["page"] = params.page
    query.update(params.sort)
    return RequestDescriptor(
        method="GET",
        url=params.source_url,
        params=query,
        timeout=params.timeout,
    )


def build_export_request(
    url: str,
    export_type: str,
    filters: Mapping[str, Any],
    timeout: int = EXPORT_TIMEOUT,
) -> RequestDescriptor:
    body = {
        "csv_export": {
            "export_type": export_type,
            "filters": dict(filters),
        }
    }
    return RequestDescriptor(method="POST", url=url, json=body, timeout=timeout)


def build_resource_request(
    resource_plural: str,
    data: Mapping[str, Any],
    resource_id: Union[int, str, None] = None,
    url_prefix: str = "",
) -> RequestDescriptor:
    """Build a JSON create or update request for a REST resource.

    Existing resources (``resource_id`` given) are updated with ``PUT
    <prefix>/<resource>/<id>``; new ones are created with ``POST
    <prefix>/<resource>``.
    """
    url = f"{url_prefix}/{resource_plural}"
    if resource_id:
        url = f"{url}/{resource_id}"
    method = "PUT" if resource_id else "POST"
    return RequestDescriptor(method=method, url=url, json=dict(data))


def _extract_error_details(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return ""

    if not isinstance(payload, Mapping):
        return ""

    details = []
    seen = set()

    def add_detail(value: Any, prefix: str = "") -> None:
        if value is None:
            return
        text = str(value).strip()
        if not text:
            return
        detail = f"{prefix}{text}" if prefix else text
        if detail in seen:
            return
        seen.add(detail)
        details.append(detail)

    add_detail(payload.get("error") or payload.get("message"))

    errors = payload.get("errors")
    if isinstance(errors, Mapping):
        for name, messages in errors.items():
            if isinstance(messages, (list, tuple)):
                for message in messages:
                    add_detail(message, f"{name} ")
            else:
                add_detail(messages, f"{name} ")
    elif isinstance(errors, (list, tuple)):
        for message in errors:
            add_detail(message)
    elif errors:
        add_detail(errors)

    return "; ".join(details)


def format_http_error(error: requests.HTTPError) -> str:
    response = getattr(error, "response", None)
    base_message = str(error).strip()

    if response is None:
        return base_message or "HTTP request failed"

    details = _extract_error_details(response)
    if details:
        if base_message:
            return f"{base_message} - {details}"
        status_code = getattr(response, "status_code", "")
        reason = getattr(response, "reason", "") or ""
        url = getattr(response, "url", "") or ""
        status_message = f"HTTP {status_code}" if status_code else "HTTP request failed"
        if reason:
            status_message = f"{status_message} {reason}"
        if url:
            status_message = f"{status_message} for url: {url}"
        return f"{status_message} - {details}"

    return base_message or "HTTP request failed"


def _raise_for_status(response: requests.Response) -> None:
    try:
        response.raise_for_status()
    except requests.HTTPError as error:
        raise requests.HTTPError(
            format_http_error(error),
            response=error.response,
            request=getattr(error, "request", None),
        ) from error


def _parse_json_response(response: requests.Response) -> Dict[str, Any]:
    content_type = response.headers.get("content-type", "")
    if isinstance(content_type, str):
        normalized_content_type = content_type.lower()
    else:
        normalized_content_type = ""
    if response.text and normalized_content_type.startswith(JSON_CONTENT_TYPE):
        return response.json()
    return {}


def send_request(descriptor: RequestDescriptor) -> Any:
    """Execute ``descriptor`` and return the decoded JSON body.

    Reads must return JSON; a non-JSON body raises ``ValueError``. Writes may
    return an empty body, in which case an empty mapping is returned.
    """
    logger.debug(
        "%s %s params=%s json=%s",
        descriptor.method,
        descriptor.url,
        dict(descriptor.params),
        descriptor.json,
    )
    headers = dict(descriptor.headers)
    if descriptor.content_type:
        headers["Content-Type"] = descriptor.content_type
    response = requests.request(
        descriptor.method,
        descriptor.url,
        headers=headers,
        params=dict(descriptor.params),
        json=descriptor.json,
        timeout=descriptor.timeout,
    )
    _raise_for_status(response)
    if descriptor.method == "GET":
        return response.json()
    return _parse_json_response(response)
