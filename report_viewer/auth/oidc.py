from __future__ import annotations

import base64
import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import urlencode

import jwt  # PyJWT
import requests

from report_viewer.config import AppConfig
from report_viewer.errors import AuthFlowError

logger = logging.getLogger(__name__)

_JWKS_TTL_SECONDS = 3600


@dataclass(frozen=True)
class SsoUnavailable:
    """SSO could not be set up at startup; `/login` reports this instead of crashing."""

    reason: str


@dataclass
class OidcClient:
    """
    Client descriptor for one identity provider, bound to a fixed redirect URI.

    Built once at startup from the provider's discovery document.
    """

    client_id: str
    client_secret: str
    redirect_uri: str
    discovery: Dict[str, Any]
    timeout: float = 10.0
    _jwks_cache: Tuple[float, Optional[Dict[str, Any]]] = field(default=(0.0, None), repr=False)

    @property
    def issuer(self) -> str:
        return str(self.discovery.get("issuer") or "")

    def build_authorize_url(self, *, state: str, nonce: str, code_challenge: str) -> str:
        """
        Build the authorization URL (PKCE, S256).
        """
        auth_endpoint = str(self.discovery.get("authorization_endpoint") or "")
        if not auth_endpoint:
            raise AuthFlowError("OIDC discovery missing authorization_endpoint")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "nonce": nonce,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        sep = "&" if "?" in auth_endpoint else "?"
        return f"{auth_endpoint}{sep}{urlencode(params)}"

    def exchange_code_for_tokens(self, *, code: str, code_verifier: str) -> Dict[str, Any]:
        """
        Exchange the authorization code for tokens, presenting the PKCE verifier.
        """
        token_endpoint = str(self.discovery.get("token_endpoint") or "")
        if not token_endpoint:
            raise AuthFlowError("OIDC discovery missing token_endpoint")
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
            "code_verifier": code_verifier,
        }
        try:
            r = requests.post(token_endpoint, data=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise AuthFlowError(f"Token endpoint unreachable: {type(e).__name__}") from e
        if r.status_code >= 400:
            # Avoid leaking sensitive info; include minimal context.
            raise AuthFlowError(f"Token exchange failed (status={r.status_code})")
        try:
            data = r.json()
        except ValueError as e:
            raise AuthFlowError("Invalid token response") from e
        if not isinstance(data, dict):
            raise AuthFlowError("Invalid token response")
        return data

    def _get_jwks(self) -> Dict[str, Any]:
        ts, cached = self._jwks_cache
        now = time.time()
        if cached is not None and now - ts < _JWKS_TTL_SECONDS:
            return cached
        jwks_uri = str(self.discovery.get("jwks_uri") or "")
        if not jwks_uri:
            raise AuthFlowError("OIDC discovery missing jwks_uri")
        r = requests.get(jwks_uri, timeout=self.timeout)
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, dict):
            raise AuthFlowError("Invalid JWKS")
        self._jwks_cache = (now, data)
        return data

    def validate_id_token(self, *, id_token: str, expected_nonce: str) -> Dict[str, Any]:
        """
        Validate the ID token: signature (JWKS), issuer, audience, nonce.
        """
        try:
            hdr = jwt.get_unverified_header(id_token)
        except jwt.PyJWTError as e:
            raise AuthFlowError("Malformed ID token") from e
        kid = str(hdr.get("kid") or "")
        if not kid:
            raise AuthFlowError("ID token missing kid")

        keys = self._get_jwks().get("keys")
        if not isinstance(keys, list):
            raise AuthFlowError("Invalid JWKS keys")
        jwk = None
        for k in keys:
            if isinstance(k, dict) and str(k.get("kid") or "") == kid:
                jwk = k
                break
        if jwk is None:
            raise AuthFlowError("Unknown signing key (kid)")

        key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))
        try:
            claims = jwt.decode(
                id_token,
                key=key,
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=self.issuer,
                options={"require": ["exp", "iat", "iss", "aud", "sub"]},
            )
        except jwt.PyJWTError as e:
            raise AuthFlowError(f"ID token rejected: {type(e).__name__}") from e

        nonce = str(claims.get("nonce") or "")
        if not nonce or nonce != expected_nonce:
            raise AuthFlowError("Nonce mismatch")
        return claims

    def fetch_userinfo(self, access_token: str) -> Dict[str, Any]:
        userinfo_endpoint = str(self.discovery.get("userinfo_endpoint") or "")
        if not userinfo_endpoint:
            raise AuthFlowError("No id_token returned and no userinfo_endpoint available")
        try:
            r = requests.get(
                userinfo_endpoint,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthFlowError(f"Userinfo endpoint unreachable: {type(e).__name__}") from e
        if r.status_code >= 400:
            raise AuthFlowError(f"Userinfo request failed (status={r.status_code})")
        data = r.json()
        if not isinstance(data, dict):
            raise AuthFlowError("Invalid userinfo response")
        return data

    def complete_login(self, *, code: str, code_verifier: str, nonce: str) -> Dict[str, Any]:
        """
        Run the callback half of the flow and return the identity claims.
        """
        tokens = self.exchange_code_for_tokens(code=code, code_verifier=code_verifier)
        id_token = str(tokens.get("id_token") or "").strip()
        if id_token:
            claims = self.validate_id_token(id_token=id_token, expected_nonce=nonce)
        else:
            access_token = str(tokens.get("access_token") or "").strip()
            if not access_token:
                raise AuthFlowError("Token response carried neither id_token nor access_token")
            claims = self.fetch_userinfo(access_token)
        if not str(claims.get("sub") or "").strip():
            raise AuthFlowError("Missing sub claim")
        return claims


Sso = Union[OidcClient, SsoUnavailable]


def discovery_url(issuer: str) -> str:
    issuer = issuer.rstrip("/")
    if issuer.endswith("/.well-known/openid-configuration"):
        return issuer
    return f"{issuer}/.well-known/openid-configuration"


def discover_sso(cfg: AppConfig) -> Sso:
    """
    Discover the identity provider and build the client, or explain why SSO is off.

    Never raises: a missing or unreachable provider leaves the server running.
    """
    if not cfg.oidc_configured:
        return SsoUnavailable("OIDC_ISSUER, OIDC_CLIENT_ID and OIDC_CLIENT_SECRET must all be set")
    url = discovery_url(cfg.oidc_issuer or "")
    try:
        r = requests.get(url, timeout=cfg.request_timeout_seconds)
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("OIDC discovery failed for %s: %s", url, str(e))
        return SsoUnavailable(f"OIDC discovery failed: {type(e).__name__}")
    if not isinstance(data, dict) or not data.get("authorization_endpoint") or not data.get("token_endpoint"):
        logger.warning("OIDC discovery document at %s is missing endpoints", url)
        return SsoUnavailable("OIDC discovery document is incomplete")

    logger.info("OIDC discovered issuer=%s", data.get("issuer"))
    return OidcClient(
        client_id=cfg.oidc_client_id or "",
        client_secret=cfg.oidc_client_secret or "",
        redirect_uri=cfg.redirect_uri,
        discovery=data,
        timeout=cfg.request_timeout_seconds,
    )


def pkce_challenge(verifier: str) -> str:
    """
    Generate PKCE challenge from verifier using SHA256.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
