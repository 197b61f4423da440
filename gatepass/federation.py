"""OpenID Connect client for federated login.

Authorization-code flow against a single provider:
- discovery document fetched lazily and cached for ``discovery_cache_ttl``
- code exchange + userinfo on callback
- refresh_token grant when a federated session's access token lapses

One FederationClient is built from a FederationConfig by
GatepassConfig.ready() and lives on the app config; nothing here is a
module-level singleton.

Thread-safety: the discovery cache is guarded by a threading.Lock since
Django serves requests from several threads.
"""

import logging
import threading
import time
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = "openid email profile offline_access"
DEFAULT_DISCOVERY_CACHE_TTL = 3600
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_ACCESS_TOKEN_TTL = 3600


class FederationError(Exception):
    """Provider unreachable or rejected the exchange."""


@dataclass(frozen=True)
class FederationConfig:
    issuer_url: str
    client_id: str
    client_secret: str = ""
    redirect_uri: str = ""
    scopes: str = DEFAULT_SCOPES
    discovery_cache_ttl: float = DEFAULT_DISCOVERY_CACHE_TTL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    login_redirect: str = "/role-selection"
    home_redirect: str = "/"

    @classmethod
    def from_settings(cls, conf):
        """Build from the GATEPASS["OIDC"] dict; None when federation is off."""
        if not conf or not conf.get("ISSUER_URL") or not conf.get("CLIENT_ID"):
            return None
        return cls(
            issuer_url=conf["ISSUER_URL"].rstrip("/"),
            client_id=conf["CLIENT_ID"],
            client_secret=conf.get("CLIENT_SECRET", ""),
            redirect_uri=conf.get("REDIRECT_URI", ""),
            scopes=conf.get("SCOPES", DEFAULT_SCOPES),
            discovery_cache_ttl=float(conf.get("DISCOVERY_CACHE_TTL", DEFAULT_DISCOVERY_CACHE_TTL)),
            http_timeout=float(conf.get("HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT)),
            login_redirect=conf.get("LOGIN_REDIRECT", "/role-selection"),
            home_redirect=conf.get("HOME_REDIRECT", "/"),
        )


@dataclass
class TokenSet:
    access_token: str
    refresh_token: str
    expires_at: int  # unix seconds

    @classmethod
    def from_response(cls, payload, previous_refresh_token=None):
        access_token = payload.get("access_token")
        if not access_token:
            raise FederationError("Token response carried no access_token")
        expires_in = int(payload.get("expires_in") or DEFAULT_ACCESS_TOKEN_TTL)
        return cls(
            access_token=access_token,
            # Providers may omit refresh_token on refresh; keep the old one.
            refresh_token=payload.get("refresh_token") or previous_refresh_token or "",
            expires_at=int(time.time()) + expires_in,
        )


class FederationClient:
    """Thin OIDC relying-party client over httpx."""

    def __init__(self, config, transport=None):
        self.config = config
        self._transport = transport
        self._discovery = None
        self._discovered_at = 0.0
        self._lock = threading.Lock()

    def _client(self):
        return httpx.Client(
            timeout=self.config.http_timeout,
            follow_redirects=False,
            transport=self._transport,
        )

    def discovery(self):
        with self._lock:
            age = time.monotonic() - self._discovered_at
            if self._discovery is not None and age < self.config.discovery_cache_ttl:
                return self._discovery
            url = f"{self.config.issuer_url}/.well-known/openid-configuration"
            try:
                with self._client() as client:
                    response = client.get(url)
                    response.raise_for_status()
                    document = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("OIDC discovery failed for %s: %s", url, exc)
                raise FederationError("Discovery failed") from exc
            self._discovery = document
            self._discovered_at = time.monotonic()
            return document

    def _endpoint(self, name):
        endpoint = self.discovery().get(name)
        if not endpoint:
            raise FederationError(f"Discovery document lacks {name}")
        return endpoint

    def authorization_url(self, state, nonce):
        endpoint = self._endpoint("authorization_endpoint")
        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "scope": self.config.scopes,
            "state": state,
            "nonce": nonce,
            "prompt": "login consent",
        }
        return f"{endpoint}?{urlencode(params)}"

    def _token_request(self, data):
        endpoint = self._endpoint("token_endpoint")
        data = {**data, "client_id": self.config.client_id}
        if self.config.client_secret:
            data["client_secret"] = self.config.client_secret
        try:
            with self._client() as client:
                response = client.post(endpoint, data=data, headers={"Accept": "application/json"})
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "OIDC token endpoint rejected %s: %s",
                data.get("grant_type"), exc.response.status_code,
            )
            raise FederationError("Token request rejected") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("OIDC token endpoint unreachable: %s", exc)
            raise FederationError("Token endpoint unreachable") from exc

    def exchange_code(self, code):
        payload = self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri,
        })
        return TokenSet.from_response(payload)

    def refresh(self, refresh_token):
        if not refresh_token:
            raise FederationError("No refresh token")
        payload = self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })
        return TokenSet.from_response(payload, previous_refresh_token=refresh_token)

    def userinfo(self, access_token):
        endpoint = self._endpoint("userinfo_endpoint")
        try:
            with self._client() as client:
                response = client.get(endpoint, headers={"Authorization": f"Bearer {access_token}"})
                response.raise_for_status()
                claims = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("OIDC userinfo failed: %s", exc)
            raise FederationError("Userinfo request failed") from exc
        if not isinstance(claims, dict) or not claims.get("sub"):
            raise FederationError("Userinfo carried no subject")
        return claims

    def end_session_url(self, post_logout_redirect_uri):
        try:
            endpoint = self.discovery().get("end_session_endpoint")
        except FederationError:
            return None
        if not endpoint:
            return None
        params = {
            "client_id": self.config.client_id,
            "post_logout_redirect_uri": post_logout_redirect_uri,
        }
        return f"{endpoint}?{urlencode(params)}"
