from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base error surfaced to callers as a structured JSON body."""

    status_code = 500
    code = "Failed to fetch webcam data"

    def __init__(self, details: str = "", code: Optional[str] = None):
        super().__init__(details or code or self.code)
        self.details = details
        if code is not None:
            self.code = code

    def to_body(self) -> dict:
        body = {"error": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ClientInputError(RelayError):
    """Required coordinates missing or unusable. Raised before any upstream call."""

    status_code = 400
    code = "Invalid query parameter"


class UpstreamError(RelayError):
    """Webcam directory returned an error status or a body that is not JSON."""

    status_code = 500
    code = "Failed to fetch webcam data"
