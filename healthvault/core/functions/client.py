from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from healthvault.core.metrics import edge_function_calls_total

PROCESS_MEDICAL_DOCUMENT = "process-medical-document"
EXTRACT_DOCUMENT_METADATA = "extract-document-metadata"


class EdgeFunctionError(Exception):
    """Raised when an edge function call fails (safe to map to 502).

    The message is a short, PHI-free description; processing uses it to decide
    whether a failure is worth retrying.
    """


@dataclass(frozen=True)
class EdgeFunctionConfig:
    base_url: str
    api_key: str | None
    timeout_seconds: float


class EdgeFunctionClient:
    """
    Invokes serverless functions (OCR, entity extraction, metadata extraction) over HTTP.

    Functions answer with a JSON object carrying a `success` flag; a false flag is
    raised as `EdgeFunctionError` with the function's own error string.
    """

    def __init__(self, *, config: EdgeFunctionConfig):
        self._config = config

    async def invoke(self, name: str, *, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._config.base_url.rstrip('/')}/{name}"
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"

        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                resp = await client.post(url, headers=headers, json=body)
        except httpx.TimeoutException as exc:
            edge_function_calls_total.labels(function=name, outcome="timeout").inc()
            raise EdgeFunctionError("Processing timeout - function took too long") from exc
        except httpx.HTTPError as exc:
            edge_function_calls_total.labels(function=name, outcome="network_error").inc()
            raise EdgeFunctionError("network error while calling function") from exc

        if resp.status_code >= 500:
            edge_function_calls_total.labels(function=name, outcome="server_error").inc()
            raise EdgeFunctionError(f"Function returned {resp.status_code}")
        if resp.status_code != 200:
            edge_function_calls_total.labels(function=name, outcome="client_error").inc()
            raise EdgeFunctionError(f"Function rejected request ({resp.status_code})")

        try:
            data = resp.json()
        except ValueError as exc:
            edge_function_calls_total.labels(function=name, outcome="invalid_response").inc()
            raise EdgeFunctionError("Function response was not valid JSON") from exc

        if not isinstance(data, dict):
            edge_function_calls_total.labels(function=name, outcome="invalid_response").inc()
            raise EdgeFunctionError("Function response JSON must be an object")

        if not data.get("success", False):
            edge_function_calls_total.labels(function=name, outcome="failed").inc()
            error = data.get("error")
            raise EdgeFunctionError(str(error) if error else "Function reported failure")

        edge_function_calls_total.labels(function=name, outcome="success").inc()
        return data
