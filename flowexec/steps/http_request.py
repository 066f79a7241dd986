"""
HTTP Request step.

Config: ``endpoint``, ``httpMethod`` (default POST) and optional JSON strings
``httpHeaders``, ``httpBody`` and ``httpQueryParams``. Transport failures and
non-2xx responses are reported as failed results, never raised.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..config import config
from ..workflow.values import stringify
from .handler import with_step_logging
from .registry import register_step

logger = logging.getLogger(__name__)


def _parse_json_object(text: Any) -> Dict[str, Any]:
    if isinstance(text, dict):
        return text
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def parse_headers(raw: Any) -> Dict[str, str]:
    return {str(k): stringify(v) for k, v in _parse_json_object(raw).items()}


def parse_query_params(raw: Any) -> Dict[str, str]:
    return {str(k): stringify(v) for k, v in _parse_json_object(raw).items() if v is not None}


def parse_body(method: str, raw: Any) -> Optional[str]:
    """ Request body, or ``None`` for GET and for empty bodies. """
    if method == "GET" or not raw:
        return None
    if not isinstance(raw, str):
        return json.dumps(raw) if raw else None
    try:
        parsed = json.loads(raw)
    except ValueError:
        trimmed = raw.strip()
        return raw if trimmed and trimmed != "{}" else None
    if isinstance(parsed, dict) and not parsed:
        return None
    return json.dumps(parsed)


def _response_data(response: httpx.Response) -> Any:
    if "application/json" in response.headers.get("content-type", ""):
        return response.json()
    return response.text


async def send_request(step_input: Dict[str, Any],
                       client: Optional[httpx.AsyncClient] = None) -> Dict[str, Any]:
    """
    Perform the request. ``client`` is used as-is when given (tests pass one
    built on ``httpx.MockTransport``); otherwise a client is created for this
    call.
    """
    endpoint = step_input.get("endpoint")
    if not endpoint:
        return {"success": False, "error": "HTTP request failed: URL is required"}

    method = str(step_input.get("httpMethod") or "POST").upper()
    headers = parse_headers(step_input.get("httpHeaders"))
    body = parse_body(method, step_input.get("httpBody"))
    if body is not None and not any(k.lower() == "content-type" for k in headers):
        headers["Content-Type"] = "application/json"

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=httpx.Timeout(config.http_timeout_seconds))
    try:
        response = await client.request(
            method,
            endpoint,
            params=parse_query_params(step_input.get("httpQueryParams")) or None,
            headers=headers,
            content=body,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("HTTP %s %s failed: %s", method, endpoint, e)
        return {"success": False, "error": f"HTTP request failed: {e}"}
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        return {
            "success": False,
            "error": f"HTTP request failed with status {response.status_code}: {response.text}",
            "status": response.status_code,
        }

    try:
        data = _response_data(response)
    except ValueError:
        data = response.text
    return {"success": True, "data": data, "status": response.status_code}


@register_step("HTTP Request")
async def http_request_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: send_request(step_input))
