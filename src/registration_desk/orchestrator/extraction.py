"""Vision extraction of registration forms through an OpenAI-compatible API."""

from __future__ import annotations

import base64
import binascii
import json
import re
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, OpenAIError

from ..domain.constants import CHECK_MANUALLY, REGISTRATION_FIELDS
from ..domain.models import RegistrationData
from ..domain.normalize import clean_field_value
from ..logging import get_logger

LOG = get_logger("extraction")

USER_FACING_FAILURE = "Failed to process form. Please check the image quality and try again."
DEFAULT_MIME = "image/jpeg"

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+\-]+/[\w.+\-]+)?(?:;[^,]*)?;base64,(?P<data>.*)$", re.DOTALL)


class ExtractionError(Exception):
    """Extraction failed; ``str(exc)`` is safe to show, ``detail`` is for logs."""

    def __init__(self, message: str = USER_FACING_FAILURE, *, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.detail = detail


def _prompt() -> str:
    return f"""
# ROLE
You are a high-precision document OCR specialist. Extract handwritten information
from "English House Academy Summer Camp" registration forms into a structured JSON object.

# CONTEXT
The user uploads photos of one specific paper registration form. Identify every field
even when the handwriting is messy.

# EXTRACTION RULES
1. DATA MAPPING: extract the following keys:
   - admission_id (top right of the form, format EHA-3HC-...)
   - name
   - gender
   - age
   - qualification
   - medium
   - contact_no
   - whatsapp_no
   - address
   - initial_payment
   - date (format DD/MM/YYYY)
   - utr (transaction ID of the payment)
   - received_ac (account the payment was received in)
   - discount
   - remaining_amount
2. BLANK FIELDS: if a field is empty on the form, return an empty string "".
3. UNCERTAINTY: if a field is filled in but completely illegible, return "{CHECK_MANUALLY}".
4. CLEANING: remove stray symbols such as ":" or "_" that belong to the printed form design.

# OUTPUT FORMAT
Return ONLY a valid JSON object matching the requested schema. Every value is a string.
"""


def _registration_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "additionalProperties": False,
        "required": list(REGISTRATION_FIELDS),
        "properties": {name: {"type": "string"} for name in REGISTRATION_FIELDS},
    }


def split_data_uri(data_uri: str) -> Tuple[str, str]:
    """Return (mime, base64 payload). Bare base64 is treated as JPEG."""
    s = (data_uri or "").strip()
    if not s:
        raise ExtractionError(detail="empty image payload")
    m = _DATA_URI.match(s)
    if m:
        mime, payload = (m.group("mime") or DEFAULT_MIME), m.group("data")
    elif s.startswith("data:"):
        raise ExtractionError(detail="data URI is not base64 encoded")
    else:
        mime, payload = DEFAULT_MIME, s
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ExtractionError(detail=f"image payload is not valid base64: {exc}") from exc
    return mime, payload


def _scavenge_json_block(s: str) -> Optional[Any]:
    if not s:
        return None

    candidates: List[str] = []
    fenced = re.search(r"```(?:json)?\s*(.*?)```", s, re.DOTALL)
    if fenced and fenced.group(1):
        candidates.append(fenced.group(1).strip())
    start_obj = s.find("{")
    end_obj = s.rfind("}")
    if start_obj != -1 and end_obj != -1 and end_obj > start_obj:
        candidates.append(s[start_obj : end_obj + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    return None


def parse_extraction_payload(payload: Any) -> RegistrationData:
    """Validate the model's JSON against the 15-field schema.

    Numbers are accepted as their string form and null as "" because some
    OpenAI-compatible backends loosen strict schemas; missing keys and
    nested values are violations.
    """
    if not isinstance(payload, dict):
        raise ExtractionError(detail="response is not a JSON object")
    missing = [name for name in REGISTRATION_FIELDS if name not in payload]
    if missing:
        raise ExtractionError(detail=f"response missing required fields: {', '.join(missing)}")
    values: Dict[str, str] = {}
    for name in REGISTRATION_FIELDS:
        v = payload[name]
        if v is None:
            values[name] = ""
        elif isinstance(v, bool) or isinstance(v, (dict, list)):
            raise ExtractionError(detail=f"field {name!r} is not a string")
        else:
            values[name] = clean_field_value(v)
    return RegistrationData.from_dict(values)


class ExtractionClient:
    """Sends a form image plus fixed instructions and schema; returns fields.

    One attempt per call: no retries, no client-side timeout.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str],
        base_url: Optional[str],
        model: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self._http_client = http_client
        self._client: Optional[AsyncOpenAI] = None

    def _openai(self) -> AsyncOpenAI:
        if not self.api_key:
            raise ExtractionError(
                "Extraction service is not configured (missing API key).",
                detail="EXTRACTION_API_KEY/GEMINI_API_KEY not set",
            )
        if self._client is None:
            http_client = self._http_client or httpx.AsyncClient(timeout=httpx.Timeout(None))
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                http_client=http_client,
                max_retries=0,
                timeout=None,
            )
        return self._client

    async def extract(self, data_uri: str) -> RegistrationData:
        mime, payload = split_data_uri(data_uri)
        client = self._openai()
        url = f"data:{mime};base64,{payload}"
        messages = [
            {"role": "system", "content": _prompt()},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Extract the information from this registration form as specified."},
                    {"type": "image_url", "image_url": {"url": url}},
                ],
            },
        ]
        approx_mb = round(len(payload) / (1024 * 1024), 2)
        LOG.info(f"Calling extraction model='{self.model}' (~{approx_mb} MiB {mime})")
        t0 = time.perf_counter()
        try:
            completion = await client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "registration_form",
                        "strict": True,
                        "schema": _registration_schema(),
                    },
                },
            )
        except (APIConnectionError, APITimeoutError) as e:
            LOG.error(f"Network error while calling extraction service: {e}")
            raise ExtractionError(detail=str(e)) from e
        except APIStatusError as e:
            body = getattr(getattr(e, "response", None), "text", None)
            LOG.error(f"Extraction service returned {e.status_code}. Body preview: {(body or '')[:300]!r}")
            raise ExtractionError(detail=f"HTTP {e.status_code}") from e
        except OpenAIError as e:
            LOG.error(f"Extraction request failed: {e}")
            raise ExtractionError(detail=str(e)) from e

        choices = getattr(completion, "choices", None) or []
        message = choices[0].message if choices else None
        text = getattr(message, "content", None) if message is not None else None
        dt = time.perf_counter() - t0
        LOG.info(f"Extraction finished in {dt:.2f}s id={getattr(completion, 'id', None)}")
        if not text:
            LOG.error("Extraction response carried no content")
            raise ExtractionError(detail="empty response content")

        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = _scavenge_json_block(text)
            if parsed is None:
                LOG.error(f"Extraction output not valid JSON; first 500 chars: {text[:500]!r}")
                raise ExtractionError(detail="response is not JSON")

        data = parse_extraction_payload(parsed)
        flagged = data.needs_review()
        if flagged:
            LOG.info(f"Fields flagged {CHECK_MANUALLY}: {', '.join(flagged)}")
        return data

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
