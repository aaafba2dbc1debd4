import time
from typing import Any, Dict, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from talent_search.config import debug_enabled
from talent_search.models import (
    FeedbackAck,
    FeedbackRequest,
    HealthResponse,
    ProfessionalProfile,
    ProfileUploadResponse,
    RefineQueryRequest,
    SearchQueryRequest,
    SearchQueryResponse,
    TaskStatusResponse,
)


ModelT = TypeVar("ModelT", bound=BaseModel)


class BackendError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_detail(rsp: httpx.Response, fallback: str) -> str:
    try:
        body = rsp.json()
    except ValueError:
        return fallback
    if not isinstance(body, dict):
        return fallback
    detail = body.get("detail")
    if isinstance(detail, str) and detail.strip():
        return detail.strip()
    if isinstance(detail, dict):
        msg = str(detail.get("message", "") or detail.get("error_code", "")).strip()
        return msg or fallback
    if isinstance(detail, list) and detail:
        first = detail[0]
        if isinstance(first, dict) and first.get("msg"):
            return str(first["msg"])
    return fallback


class BackendClient:
    """Thin blocking client for the résumé-search backend."""

    def __init__(
        self,
        base_url: str,
        timeout_sec: float = 30.0,
        upload_timeout_sec: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = str(base_url or "").rstrip("/")
        self._upload_timeout_sec = float(upload_timeout_sec)
        self._debug = debug_enabled()
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=float(timeout_sec),
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def _request(
        self,
        method: str,
        path: str,
        error_prefix: str = "API error",
        **kwargs: Any,
    ) -> Any:
        t0 = time.perf_counter()
        try:
            rsp = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            print(f"[backend] {method} {path} failed: {exc}")
            raise BackendError(f"Could not connect to backend: {exc}") from exc
        if self._debug:
            elapsed_ms = (time.perf_counter() - t0) * 1000.0
            print(f"[backend] {method} {path} -> {rsp.status_code} in {elapsed_ms:.1f}ms")
        if rsp.is_error:
            fallback = f"{error_prefix}: {rsp.status_code}"
            raise BackendError(_error_detail(rsp, fallback), status_code=rsp.status_code)
        try:
            return rsp.json()
        except ValueError as exc:
            raise BackendError(f"Invalid JSON from {path}.", status_code=rsp.status_code) from exc

    def _parse(self, model: Type[ModelT], payload: Any, path: str) -> ModelT:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise BackendError(f"Invalid response from {path}: {exc.error_count()} errors") from exc

    def search(self, request: SearchQueryRequest) -> SearchQueryResponse:
        body = request.model_dump(exclude_none=True)
        return self._parse(SearchQueryResponse, self._request("POST", "/search", json=body), "/search")

    def refine(self, request: RefineQueryRequest) -> SearchQueryResponse:
        body = request.model_dump(exclude_none=True)
        return self._parse(SearchQueryResponse, self._request("POST", "/refine", json=body), "/refine")

    def send_feedback(self, feedback: FeedbackRequest) -> FeedbackAck:
        body = feedback.model_dump(exclude_none=True)
        return self._parse(FeedbackAck, self._request("POST", "/feedback", json=body), "/feedback")

    def get_profile(self, profile_id: str) -> ProfessionalProfile:
        path = f"/profiles/{quote(str(profile_id), safe='')}"
        return self._parse(ProfessionalProfile, self._request("GET", path), path)

    def upload_resume(
        self,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> ProfileUploadResponse:
        files: Dict[str, Any] = {"resume_file": (filename, content, content_type)}
        payload = self._request(
            "POST",
            "/profiles/upload",
            error_prefix="Upload failed",
            files=files,
            timeout=self._upload_timeout_sec,
        )
        return self._parse(ProfileUploadResponse, payload, "/profiles/upload")

    def check_task_status(self, task_id: str) -> TaskStatusResponse:
        path = f"/profiles/status/{quote(str(task_id), safe='')}"
        return self._parse(TaskStatusResponse, self._request("GET", path), path)

    def check_health(self) -> HealthResponse:
        return self._parse(HealthResponse, self._request("GET", "/health"), "/health")
