"""
Platform OAuth primitives consumed by the Token Vault.

YouTube refreshes with the standard refresh_token grant. Instagram (via the
Facebook Graph API) has no refresh token: a still-valid long-lived token is
exchanged for a fresh one with the fb_exchange_token grant, giving another
~60 days.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from . import config
from .errors import OAuthError
from .http import request_with_backoff
from .models import ConnectedAccount, Platform

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
YOUTUBE_CHANNELS_URL = "https://www.googleapis.com/youtube/v3/channels"

GRAPH_API_BASE = "https://graph.facebook.com/v18.0"
LONG_LIVED_TOKEN_SECONDS = 60 * 24 * 3600


@dataclass
class TokenGrant:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[str] = None
    platform_user_id: str = ""
    platform_username: str = ""


def _expires_at(expires_in) -> Optional[str]:
    if not expires_in:
        return None
    return (datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))).isoformat()


class PlatformOAuth:
    platform: Platform

    def __init__(self, http: httpx.AsyncClient, client_id: str, client_secret: str, redirect_uri: str):
        self._http = http
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri

    def _fail(self, response: httpx.Response, action: str):
        # Gateway trouble is not a verdict on the credential
        if response.status_code == 429 or response.status_code >= 500:
            response.raise_for_status()
        raise OAuthError(self.platform.value, f"{action} failed ({response.status_code}): {response.text[:200]}")

    async def exchange_code(self, code: str) -> TokenGrant:
        raise NotImplementedError

    async def refresh(self, account: ConnectedAccount) -> TokenGrant:
        raise NotImplementedError


class YouTubeOAuth(PlatformOAuth):
    platform = Platform.YOUTUBE

    async def exchange_code(self, code: str) -> TokenGrant:
        response = await request_with_backoff(
            self._http, "POST", GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "redirect_uri": self._redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        if not response.is_success:
            self._fail(response, "code exchange")
        tokens = response.json()

        channel_resp = await request_with_backoff(
            self._http, "GET", YOUTUBE_CHANNELS_URL,
            params={"part": "snippet", "mine": "true"},
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
        )
        if not channel_resp.is_success:
            self._fail(channel_resp, "channel lookup")
        items = channel_resp.json().get("items") or []
        channel = items[0] if items else {}

        return TokenGrant(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token"),
            expires_at=_expires_at(tokens.get("expires_in")),
            platform_user_id=channel.get("id", ""),
            platform_username=channel.get("snippet", {}).get("title", ""),
        )

    async def refresh(self, account: ConnectedAccount) -> TokenGrant:
        if not account.refresh_token:
            raise OAuthError(self.platform.value, "no refresh token stored")

        response = await request_with_backoff(
            self._http, "POST", GOOGLE_TOKEN_URL,
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": account.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if not response.is_success:
            self._fail(response, "token refresh")
        tokens = response.json()

        # Google only rotates the refresh token occasionally
        return TokenGrant(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token") or account.refresh_token,
            expires_at=_expires_at(tokens.get("expires_in")),
            platform_user_id=account.platform_user_id,
            platform_username=account.platform_username,
        )


class InstagramOAuth(PlatformOAuth):
    platform = Platform.INSTAGRAM

    async def _long_lived(self, token: str) -> dict:
        response = await request_with_backoff(
            self._http, "GET", f"{GRAPH_API_BASE}/oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "fb_exchange_token": token,
            },
        )
        if not response.is_success:
            self._fail(response, "long-lived token exchange")
        return response.json()

    async def _business_account(self, token: str) -> dict:
        """Find the Instagram business account linked to the user's first page that has one."""
        response = await request_with_backoff(
            self._http, "GET", f"{GRAPH_API_BASE}/me/accounts",
            params={
                "fields": "instagram_business_account{id,username}",
                "access_token": token,
            },
        )
        if not response.is_success:
            self._fail(response, "page lookup")
        for page in response.json().get("data", []):
            account = page.get("instagram_business_account")
            if account:
                return account
        raise OAuthError(self.platform.value, "No Instagram business account linked to your Facebook pages")

    async def exchange_code(self, code: str) -> TokenGrant:
        response = await request_with_backoff(
            self._http, "GET", f"{GRAPH_API_BASE}/oauth/access_token",
            params={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "redirect_uri": self._redirect_uri,
                "code": code,
            },
        )
        if not response.is_success:
            self._fail(response, "code exchange")

        long_lived = await self._long_lived(response.json()["access_token"])
        ig_account = await self._business_account(long_lived["access_token"])

        return TokenGrant(
            access_token=long_lived["access_token"],
            expires_at=_expires_at(long_lived.get("expires_in") or LONG_LIVED_TOKEN_SECONDS),
            platform_user_id=ig_account.get("id", ""),
            platform_username=ig_account.get("username", ""),
        )

    async def refresh(self, account: ConnectedAccount) -> TokenGrant:
        long_lived = await self._long_lived(account.access_token)
        logger.info(f"Re-derived Instagram long-lived token for user {account.user_id}")
        return TokenGrant(
            access_token=long_lived["access_token"],
            expires_at=_expires_at(long_lived.get("expires_in") or LONG_LIVED_TOKEN_SECONDS),
            platform_user_id=account.platform_user_id,
            platform_username=account.platform_username,
        )


def build_oauth_clients(http: httpx.AsyncClient) -> dict[Platform, PlatformOAuth]:
    return {
        Platform.YOUTUBE: YouTubeOAuth(
            http, config.YOUTUBE_CLIENT_ID, config.YOUTUBE_CLIENT_SECRET, config.YOUTUBE_REDIRECT_URI
        ),
        Platform.INSTAGRAM: InstagramOAuth(
            http, config.INSTAGRAM_APP_ID, config.INSTAGRAM_APP_SECRET, config.INSTAGRAM_REDIRECT_URI
        ),
    }
