"""Client for the interview server's REST API."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from interview_voice.errors import InterviewApiError
from interview_voice.schemas.interviews import FeedbackReport, Interview, InterviewCreate

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class InterviewApiClient:
    """List, create, inspect and delete interviews and fetch their feedback."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._client = http_client

    @property
    def interviews_url(self) -> str:
        return f"{self._base_url}/api/interviews"

    @property
    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=10.0)
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "InterviewApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def list_interviews(self) -> list[Interview]:
        body = await self._request("GET", self.interviews_url)
        return [self._validate(Interview, item) for item in body.get("interviews") or []]

    async def create_interview(self, job_title: str, company: str, job_description: str) -> str:
        """Create an interview and return its id."""
        payload = InterviewCreate(
            job_title=job_title, company=company, job_description=job_description
        )
        body = await self._request(
            "POST",
            f"{self.interviews_url}/create",
            json=payload.model_dump(by_alias=True),
        )
        interview_id = body.get("interviewId")
        if not interview_id:
            raise InterviewApiError(httpx.codes.BAD_GATEWAY, "Response missing interviewId")
        logger.info(f"Created interview {interview_id}")
        return str(interview_id)

    async def get_interview(self, interview_id: str) -> Interview:
        body = await self._request("GET", f"{self.interviews_url}/{interview_id}")
        return self._validate(Interview, body.get("interview"))

    async def delete_interview(self, interview_id: str) -> None:
        await self._request("DELETE", f"{self.interviews_url}/{interview_id}")
        logger.info(f"Deleted interview {interview_id}")

    async def get_feedback(self, interview_id: str) -> FeedbackReport:
        body = await self._request("GET", f"{self.interviews_url}/{interview_id}/feedback")
        return self._validate(FeedbackReport, body)

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        client = self._get_http_client()
        try:
            response = await client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            raise InterviewApiError(httpx.codes.BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            detail = self._extract_error_detail(response.content)
            logger.warning(f"{method} {url} failed: {response.status_code} {detail}")
            raise InterviewApiError(response.status_code, detail)

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise InterviewApiError(httpx.codes.BAD_GATEWAY, f"Invalid JSON: {exc}") from exc
        if not isinstance(body, dict):
            raise InterviewApiError(httpx.codes.BAD_GATEWAY, "Unexpected response shape")
        return body

    @staticmethod
    def _validate(model: type[ModelT], data: Any) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first["loc"]) or "body"
            raise InterviewApiError(
                httpx.codes.BAD_GATEWAY,
                f"Unexpected {model.__name__} in response: {location}: {first['msg']}",
            ) from exc

    @staticmethod
    def _extract_error_detail(content: bytes) -> str:
        try:
            data = json.loads(content)
        except ValueError:
            text = content.decode("utf-8", errors="replace").strip()
            return text or "Request failed"
        if isinstance(data, dict):
            message = data.get("message") or data.get("error")
            if message:
                return str(message)
        return "Request failed"


__all__ = ["InterviewApiClient"]
