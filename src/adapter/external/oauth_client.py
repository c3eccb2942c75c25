"""OAuth 2.0 identity client (authorization-code grant with PKCE).

Implements OAuthClientPort for any ProviderDescriptor: trades the code for
tokens, reads the user-info endpoint and, for providers that expose one, the
e-mail list endpoint to find a primary verified address.
"""

import logging
from dataclasses import replace
from typing import Any

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from domain.model.errors import OAuthExchangeError
from domain.model.oauth import ExchangeResult, ExternalIdentity, ProviderDescriptor, ProviderTokens

logger = logging.getLogger(__name__)

API_TIMEOUT_SECONDS = 10.0


class HttpOAuthClient:
    def __init__(self, timeout: float = API_TIMEOUT_SECONDS, transport: httpx.AsyncBaseTransport | None = None):
        self._timeout = timeout
        self._transport = transport

    async def exchange(
        self,
        descriptor: ProviderDescriptor,
        client_id: str,
        client_secret: str,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> ExchangeResult:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                tokens = await self._request_tokens(
                    client, descriptor, client_id, client_secret, code, code_verifier, redirect_uri,
                )
                headers = {
                    "Authorization": f"Bearer {tokens.access_token}",
                    "Accept": descriptor.userinfo_accept,
                }
                userinfo = _json_object(await _get_with_retry(client, descriptor.userinfo_url, headers))
                identity = descriptor.to_identity(userinfo)
                if not identity.external_id:
                    raise OAuthExchangeError("user info has no account id")

                if descriptor.emails_url:
                    identity = await self._with_primary_email(client, descriptor, headers, identity)
        except httpx.HTTPStatusError as e:
            logger.error("OAuth provider returned an error status", extra={
                "provider": descriptor.name,
                "statusCode": e.response.status_code,
            })
            raise OAuthExchangeError(f"HTTP {e.response.status_code} from {e.request.url.host}")
        except httpx.HTTPError as e:
            logger.error("OAuth request failed", extra={"provider": descriptor.name, "error": str(e)})
            raise OAuthExchangeError(str(e))

        logger.info("OAuth exchange succeeded", extra={
            "provider": descriptor.name, "externalId": identity.external_id,
        })
        return ExchangeResult(identity=identity, tokens=tokens)

    async def _request_tokens(
        self,
        client: httpx.AsyncClient,
        descriptor: ProviderDescriptor,
        client_id: str,
        client_secret: str,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> ProviderTokens:
        data = {
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "code_verifier": code_verifier,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }
        result = _json_object(await _post_with_retry(client, descriptor.token_url, data))

        # GitHub reports a bad code as 200 with an error body
        if result.get("error"):
            detail = result.get("error_description") or result["error"]
            logger.warning("OAuth token endpoint rejected the code", extra={
                "provider": descriptor.name, "error": detail,
            })
            raise OAuthExchangeError(str(detail))

        access_token = result.get("access_token")
        if not access_token:
            raise OAuthExchangeError("token response has no access_token")

        expires_in = result.get("expires_in")
        return ProviderTokens(
            access_token=access_token,
            refresh_token=result.get("refresh_token"),
            expires_in=int(expires_in) if expires_in else None,
            scopes=_parse_scopes(result.get("scope")) or descriptor.scopes,
        )

    async def _with_primary_email(
        self,
        client: httpx.AsyncClient,
        descriptor: ProviderDescriptor,
        headers: dict[str, str],
        identity: ExternalIdentity,
    ) -> ExternalIdentity:
        """Prefer the primary verified address from the e-mail list endpoint."""
        try:
            response = await _get_with_retry(client, descriptor.emails_url, headers)
            emails = response.json()
        except (httpx.HTTPError, ValueError) as e:
            # Without the list the public profile e-mail stays, unverified
            logger.warning("Could not fetch provider e-mail list", extra={
                "provider": descriptor.name, "error": str(e),
            })
            return identity

        if not isinstance(emails, list):
            return identity
        primary = next(
            (e.get("email") for e in emails
             if isinstance(e, dict) and e.get("primary") and e.get("verified") and e.get("email")),
            None,
        )
        if not primary:
            return identity
        return replace(identity, email=primary.strip().lower(), email_verified=True)


# ── HTTP helpers ─────────────────────────────────────────────


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        raise OAuthExchangeError(f"non-JSON response from {response.request.url.host}")
    if not isinstance(payload, dict):
        raise OAuthExchangeError(f"unexpected response shape from {response.request.url.host}")
    return payload


def _parse_scopes(raw: Any) -> tuple[str, ...]:
    if not raw or not isinstance(raw, str):
        return ()
    # Google separates scopes with spaces, GitHub with commas
    return tuple(s for s in raw.replace(',', ' ').split() if s)


# Authorization codes are single-use: only retry when the request never left the host
@retry(
    retry=retry_if_exception_type(httpx.ConnectError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    reraise=True,
)
async def _post_with_retry(client: httpx.AsyncClient, url: str, data: dict[str, str]) -> httpx.Response:
    response = await client.post(url, data=data, headers={"Accept": "application/json"})
    response.raise_for_status()
    return response


@retry(
    retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    reraise=True,
)
async def _get_with_retry(client: httpx.AsyncClient, url: str, headers: dict[str, str]) -> httpx.Response:
    response = await client.get(url, headers=headers)
    response.raise_for_status()
    return response
