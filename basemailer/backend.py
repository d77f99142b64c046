# basemailer/backend.py
"""
BaseMailer: Backend Index Client

HTTP client for a relay service's index API:

    POST /api/send-mail          relay a proven submission
    GET  /api/inbox/{email}      {"inbox": [...]}
    GET  /api/sentbox/{email}    {"sentbox": [...]}
    GET  /api/mail/{mailId}      {"mail": {...}, "package": {...}?}

Used as the fallback commitment -> handle source when the local
commitment map has no entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .config import BackendConfig
from .crypto.envelope import Envelope
from .errors import BackendError, EnvelopeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendMail:
    """Backend view of one mail: raw record, handle if known, envelope if attached."""
    record: Dict[str, Any]
    handle: Optional[str] = None
    envelope: Optional[Envelope] = None


def _record_handle(record: Dict[str, Any]) -> Optional[str]:
    """
    Handle stored for a backend record.

    Services store the commitment itself in place of the handle when they
    never learned it; that is treated as unknown.
    """
    handle = record.get("cid") or record.get("handle")
    commitment = record.get("contentHash") or record.get("contentCID")
    if not handle or (commitment and handle.lower() == str(commitment).lower()):
        return None
    return handle


class BackendClient:
    """Talk to the backend index API."""

    def __init__(self, config: BackendConfig, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json"}
        if self.config.api_key:
            headers["x-api-key"] = self.config.api_key
        return headers

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                json=payload,
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise BackendError(f"Backend request to {path} failed: {e}") from e

        if response.status_code >= 400:
            logger.error("Backend %s %s failed (%s): %s", method, path, response.status_code, response.text)
            raise BackendError(
                f"Backend request failed ({response.status_code}): {response.text}",
                status=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise BackendError(f"Backend returned non-JSON body for {path}") from e
        if not isinstance(body, dict):
            raise BackendError(f"Backend returned {type(body).__name__} instead of an object for {path}")
        return body

    # =========================================================================
    # API
    # =========================================================================

    def send_mail(self, proof: str, handle: str, sender: str, recipient: str) -> Dict[str, Any]:
        """Relay a proven submission; returns {success, mailId, txHash, timestamp}."""
        payload = {
            "proof": proof,
            "cid": handle,
            "senderEmail": sender,
            "recipientEmail": recipient,
        }
        return self._request("POST", "/api/send-mail", payload)

    def get_inbox(self, email: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/api/inbox/{quote(email, safe='')}").get("inbox", [])

    def get_sentbox(self, email: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/api/sentbox/{quote(email, safe='')}").get("sentbox", [])

    def get_mail(self, mail_id: int) -> BackendMail:
        body = self._request("GET", f"/api/mail/{int(mail_id)}")
        record = body.get("mail") or {}
        envelope = None
        if body.get("package"):
            try:
                envelope = Envelope.from_dict(body["package"])
            except EnvelopeError as e:
                logger.warning("Backend package for mail %s is malformed: %s", mail_id, e)
        return BackendMail(record=record, handle=_record_handle(record), envelope=envelope)

    def lookup_handle(self, mail_id: int) -> Optional[str]:
        """Handle for a mail id, or None when the backend does not know it."""
        try:
            return self.get_mail(mail_id).handle
        except BackendError as e:
            if e.status == 404:
                return None
            raise
