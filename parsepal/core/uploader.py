"""
ParsePal upload client: one multipart POST per call.
Retrying and progress reporting live in upload_queue.
"""

import gzip
import json
import logging

import requests

from parsepal.core.constants import (
    ErrorCode, API_BASE, UPLOAD_PATH, MAX_UNCOMPRESSED_BYTES,
    UPLOAD_FILENAME, UPLOAD_FILENAME_GZ, MIN_UPLOAD_TIMEOUT_SEC,
)
from parsepal.core.error_codes import RelayError, http_error
from parsepal.core.models import Fight

logger = logging.getLogger(__name__)


def build_payload(fight: Fight) -> tuple[bytes, str]:
    """
    Serialize the fight's raw lines. Payloads over 1 MiB are gzipped.
    Returns (body_bytes, filename).
    """
    data = '\n'.join(fight.lines).encode('utf-8')
    if len(data) > MAX_UNCOMPRESSED_BYTES:
        compressed = gzip.compress(data)
        logger.debug("Compressed payload %d -> %d bytes", len(data), len(compressed))
        return compressed, UPLOAD_FILENAME_GZ
    return data, UPLOAD_FILENAME


def build_metadata(fight: Fight) -> str:
    return json.dumps({
        "type": fight.kind,
        "encounterName": fight.encounter_name,
        "encounterID": fight.encounter_id,
        "duration": fight.duration,
        "success": fight.success,
        "keystoneLevel": fight.keystone_level,
        "playerCount": fight.player_count,
    })


def upload_url(api_base: str | None = None) -> str:
    return f"{(api_base or API_BASE).rstrip('/')}{UPLOAD_PATH}"


def _error_message(resp: requests.Response) -> str:
    """Best human-readable message for a failed response."""
    try:
        data = resp.json()
    except ValueError:
        body = resp.text[:200] if resp.text else "No response body"
        return f"HTTP {resp.status_code}: {body}"
    if isinstance(data, dict):
        for key in ("detail", "message"):
            if isinstance(data.get(key), str) and data[key]:
                return data[key]
    return f"HTTP {resp.status_code}"


def post_fight(payload: bytes, filename: str, metadata: str, token: str,
               api_base: str | None = None) -> dict:
    """
    POST one fight as multipart/form-data (file + metadata parts).
    Returns the decoded JSON body on a 2xx response, raises RelayError otherwise.
    """
    # Adaptive timeout: ~1 min per 10MB on top of the floor
    timeout_sec = MIN_UPLOAD_TIMEOUT_SEC + int(len(payload) / (10 * 1024 * 1024) * 60)

    files = {
        "file": (filename, payload, "application/octet-stream"),
        "metadata": (None, metadata, "application/json"),
    }
    headers = {"Authorization": f"Bearer {token}"}

    try:
        resp = requests.post(upload_url(api_base), headers=headers, files=files,
                             timeout=timeout_sec)
    except requests.exceptions.Timeout:
        raise RelayError(ErrorCode.NETWORK_TRANSIENT, "Upload request timed out")
    except requests.exceptions.ConnectionError:
        raise RelayError(ErrorCode.NETWORK_TRANSIENT, "Network error connecting to ParsePal")
    except requests.exceptions.RequestException as e:
        raise RelayError(ErrorCode.NETWORK_TRANSIENT, f"Upload request failed: {e}")

    if not 200 <= resp.status_code < 300:
        raise http_error(resp.status_code, _error_message(resp))

    try:
        result = resp.json()
    except ValueError:
        raise RelayError(ErrorCode.BAD_RESPONSE,
                         f"HTTP {resp.status_code}: unparseable response body")

    if not isinstance(result, dict):
        raise RelayError(ErrorCode.BAD_RESPONSE, "Unexpected response shape")

    return result
