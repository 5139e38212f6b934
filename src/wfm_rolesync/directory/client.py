"""
wfm_rolesync.directory.client

HTTP client for the external identity directory (OAuth client credentials + Graph REST).

Responsibilities:
- Acquire and cache a service token.
- Resolve a user's directory identity from an email address.
- List, clear and assign app-role grants on our service principal.
- Follow `@odata.nextLink` continuation links until every page is read.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import quote

import httpx

from wfm_rolesync.directory.config import DirectoryConfig
from wfm_rolesync.directory.models import DirectoryIdentity, RoleGrant, Token
from wfm_rolesync.errors import AuthConfigError, DirectoryUnavailable, PrincipalNotFound
from wfm_rolesync.observability.logging import get_logger

log = get_logger(__name__)

_PAGE_SIZE = 100


class DirectoryClient:
    def __init__(self, *, config: DirectoryConfig, http: httpx.AsyncClient) -> None:
        self._config = config
        self._http = http
        self._token: Token | None = None

    async def acquire_service_token(self) -> Token:
        if self._token is not None and self._token.is_fresh():
            return self._token

        cfg = self._config
        if not cfg.tenant_id or not cfg.client_id or not cfg.client_secret:
            raise AuthConfigError(
                "Missing directory config: tenant id, client id or client secret"
            )

        try:
            r = await self._http.post(
                cfg.token_url,
                data={
                    "client_id": cfg.client_id,
                    "client_secret": cfg.client_secret,
                    "scope": cfg.token_scope,
                    "grant_type": "client_credentials",
                },
                timeout=cfg.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise DirectoryUnavailable(f"Failed to acquire directory token: {e}") from e
        if r.is_error:
            raise DirectoryUnavailable(
                f"Failed to acquire directory token: HTTP {r.status_code}",
                status_code=r.status_code,
            )

        body = _json_body(r)
        access_token = body.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise DirectoryUnavailable("Token response did not contain access_token")
        expires_in = int(body.get("expires_in") or 3600)
        self._token = Token(
            access_token=access_token,
            expires_at=datetime.now(tz=UTC) + timedelta(seconds=expires_in),
        )
        return self._token

    async def resolve_identity(self, email: str) -> DirectoryIdentity:
        select = "id,displayName,mail,userPrincipalName"
        r = await self._send(
            "GET",
            f"{self._graph}/users/{quote(email, safe='@')}",
            params={"$select": select},
            passthrough=(400, 404),
        )
        if r.is_success:
            return _identity(_json_body(r), fallback_email=email)

        # UPN lookup missed; the account may still carry this address as `mail`.
        escaped = email.replace("'", "''")
        r = await self._send(
            "GET",
            f"{self._graph}/users",
            params={"$filter": f"mail eq '{escaped}'", "$select": select},
        )
        matches = _json_body(r).get("value") or []
        if not matches:
            raise PrincipalNotFound(email)
        return _identity(matches[0], fallback_email=email)

    async def list_role_grants(self, directory_id: str) -> list[RoleGrant]:
        records = await self._collect_pages(
            f"{self._assignments_url}?$top={_PAGE_SIZE}",
        )
        # Filter client-side; OData filters on appRoleAssignedTo are unreliable.
        return [
            RoleGrant(
                id=str(rec["id"]),
                principal_id=str(rec.get("principalId") or ""),
                role_scope_id=str(rec.get("appRoleId") or ""),
            )
            for rec in records
            if rec.get("id") and rec.get("principalId") == directory_id
        ]

    async def clear_role_grants(self, directory_id: str) -> int:
        removed = 0
        for grant in await self.list_role_grants(directory_id):
            r = await self._send(
                "DELETE",
                f"{self._assignments_url}/{grant.id}",
                passthrough=(404,),
            )
            if r.is_success:
                removed += 1
        log.info("directory.grants_cleared", directory_id=directory_id, removed=removed)
        return removed

    async def assign_role_grant(self, directory_id: str, role_scope_id: str) -> None:
        r = await self._send(
            "POST",
            self._assignments_url,
            json={
                "principalId": directory_id,
                "resourceId": self._config.service_principal_id,
                "appRoleId": role_scope_id,
            },
            passthrough=(409,),
        )
        if r.status_code == 409:
            # Already assigned: the target state holds.
            log.info(
                "directory.grant_exists", directory_id=directory_id, role_scope_id=role_scope_id
            )

    @property
    def _graph(self) -> str:
        return self._config.graph_url.rstrip("/")

    @property
    def _assignments_url(self) -> str:
        sp = self._config.service_principal_id
        return f"{self._graph}/servicePrincipals/{sp}/appRoleAssignedTo"

    async def _collect_pages(self, url: str) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        next_url = url
        while next_url:
            payload = _json_body(await self._send("GET", next_url))
            page_items = payload.get("value")
            if isinstance(page_items, list):
                records.extend(item for item in page_items if isinstance(item, dict))
            next_link = payload.get("@odata.nextLink")
            next_url = next_link if isinstance(next_link, str) and next_link else ""
        return records

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        passthrough: tuple[int, ...] = (),
    ) -> httpx.Response:
        token = await self.acquire_service_token()
        try:
            r = await self._http.request(
                method,
                url,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token.access_token}"},
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            log.warning("directory.request_failed", method=method, url=url, error=str(e))
            raise DirectoryUnavailable(f"{method} {url} failed: {e}") from e

        if r.is_error and r.status_code not in passthrough:
            log.warning(
                "directory.request_failed", method=method, url=url, status_code=r.status_code
            )
            raise DirectoryUnavailable(
                f"{method} {url} returned HTTP {r.status_code}", status_code=r.status_code
            )
        return r


def _json_body(r: httpx.Response) -> dict[str, Any]:
    # A proxy or gateway can answer 2xx with an HTML page.
    try:
        body = r.json()
    except ValueError as e:
        raise DirectoryUnavailable(
            f"{r.request.method} {r.request.url} returned a non-JSON body",
            status_code=r.status_code,
        ) from e
    if not isinstance(body, dict):
        raise DirectoryUnavailable(
            f"{r.request.method} {r.request.url} returned an unexpected payload",
            status_code=r.status_code,
        )
    return body


def _identity(record: dict[str, Any], *, fallback_email: str) -> DirectoryIdentity:
    directory_id = str(record.get("id") or "").strip()
    if not directory_id:
        raise PrincipalNotFound(fallback_email)
    email = str(record.get("mail") or record.get("userPrincipalName") or fallback_email)
    return DirectoryIdentity(
        directory_id=directory_id,
        email=email.lower(),
        display_name=str(record.get("displayName") or ""),
    )


# --- Module Notes -----------------------------------------------------------
# Retries are the caller's job (see `sync.engine`); every call here is a single attempt.
