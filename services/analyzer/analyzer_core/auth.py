from __future__ import annotations

import json
import os
from typing import Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from libs.core.models import CallerIdentity

from .errors import AnalyzerError, AuthenticationError

_DEFAULT_IDENTITY_TIMEOUT_S = 10.0


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("missing_authorization_header")
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("malformed_authorization_header")
    return token.strip()


class IdentityVerifier:
    """Resolves a bearer token to a caller via the identity provider's user-info endpoint."""

    def __init__(
        self,
        userinfo_url: Optional[str],
        api_key: Optional[str] = None,
        timeout_s: float = _DEFAULT_IDENTITY_TIMEOUT_S,
    ) -> None:
        self.userinfo_url = userinfo_url
        self.api_key = api_key
        self.timeout_s = timeout_s

    def verify(self, token: str) -> CallerIdentity:
        if not self.userinfo_url:
            raise AnalyzerError("IDENTITY_USERINFO_URL is not configured")
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        request = Request(self.userinfo_url, headers=headers, method="GET")
        try:
            with urlopen(request, timeout=self.timeout_s) as response:
                body = response.read().decode("utf-8")
        except HTTPError as exc:
            if exc.code in {401, 403}:
                raise AuthenticationError(f"token_rejected:{exc.code}") from exc
            raise AnalyzerError(f"identity_provider_error:{exc.code}") from exc
        except (URLError, TimeoutError) as exc:
            raise AnalyzerError(f"identity_provider_unreachable:{exc}") from exc
        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise AnalyzerError("identity_provider_invalid_response") from exc
        if not isinstance(data, dict):
            raise AnalyzerError("identity_provider_invalid_response")
        subject = data.get("id") or data.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("token_without_subject")
        email = data.get("email")
        return CallerIdentity(subject=subject, email=email if isinstance(email, str) else None)


def create_verifier_from_env() -> IdentityVerifier:
    timeout_raw = os.getenv("IDENTITY_TIMEOUT_S")
    try:
        timeout_s = float(timeout_raw) if timeout_raw else _DEFAULT_IDENTITY_TIMEOUT_S
    except ValueError:
        timeout_s = _DEFAULT_IDENTITY_TIMEOUT_S
    return IdentityVerifier(
        userinfo_url=os.getenv("IDENTITY_USERINFO_URL"),
        api_key=os.getenv("IDENTITY_API_KEY"),
        timeout_s=timeout_s,
    )
