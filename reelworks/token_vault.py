"""
Token Vault: per-user, per-platform OAuth credentials.

Rows in `connected_accounts` are keyed by (user_id, platform). Reconnecting
reactivates the existing row; disconnecting only clears `is_active` so the
history is preserved. No remote token revocation is attempted.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from supabase import Client

from . import config
from .db import execute, now_iso, parse_ts
from .errors import NotFoundError, OAuthError
from .models import AccountInfo, ConnectedAccount, Platform
from .oauth import PlatformOAuth, TokenGrant

logger = logging.getLogger(__name__)

TABLE = "connected_accounts"


class AccountStore:
    def __init__(self, client: Client):
        self._client = client

    def _table(self):
        return self._client.table(TABLE)

    def get(self, user_id: str, platform: Platform) -> Optional[ConnectedAccount]:
        rows = execute(
            self._table()
            .select("*")
            .eq("user_id", user_id)
            .eq("platform", platform.value)
            .limit(1),
            "account read",
        )
        return ConnectedAccount.model_validate(rows[0]) if rows else None

    def list_for_user(self, user_id: str) -> list[ConnectedAccount]:
        rows = execute(self._table().select("*").eq("user_id", user_id), "account list")
        return [ConnectedAccount.model_validate(row) for row in rows]

    def upsert(self, user_id: str, platform: Platform, grant: TokenGrant) -> ConnectedAccount:
        now = now_iso()
        row = {
            "user_id": user_id,
            "platform": platform.value,
            "platform_user_id": grant.platform_user_id,
            "platform_username": grant.platform_username,
            "access_token": grant.access_token,
            "refresh_token": grant.refresh_token,
            "token_expires_at": grant.expires_at,
            "is_active": True,
            "updated_at": now,
        }
        rows = execute(
            self._table().upsert(row, on_conflict="user_id,platform"),
            "account upsert",
        )
        return ConnectedAccount.model_validate(rows[0] if rows else row)

    def update_tokens(self, user_id: str, platform: Platform, grant: TokenGrant) -> Optional[ConnectedAccount]:
        """Write a refreshed token and expiry in one statement, only while still active."""
        update = {
            "access_token": grant.access_token,
            "token_expires_at": grant.expires_at,
            "updated_at": now_iso(),
        }
        if grant.refresh_token:
            update["refresh_token"] = grant.refresh_token
        rows = execute(
            self._table()
            .update(update)
            .eq("user_id", user_id)
            .eq("platform", platform.value)
            .eq("is_active", True),
            "account token update",
        )
        return ConnectedAccount.model_validate(rows[0]) if rows else None

    def deactivate(self, user_id: str, platform: Platform) -> bool:
        rows = execute(
            self._table()
            .update({"is_active": False, "updated_at": now_iso()})
            .eq("user_id", user_id)
            .eq("platform", platform.value),
            "account deactivate",
        )
        return bool(rows)


class TokenVault:
    def __init__(
        self,
        accounts: AccountStore,
        oauth_clients: dict[Platform, PlatformOAuth],
        refresh_margin: int = config.TOKEN_REFRESH_MARGIN_SECONDS,
    ):
        self.accounts = accounts
        self._oauth = oauth_clients
        self._refresh_margin = timedelta(seconds=refresh_margin)

    def _needs_refresh(self, account: ConnectedAccount) -> bool:
        if not account.token_expires_at:
            return False
        expires_at = parse_ts(account.token_expires_at)
        return expires_at - self._refresh_margin <= datetime.now(timezone.utc)

    async def get_valid_account(self, user_id: str, platform: Platform) -> Optional[ConnectedAccount]:
        """
        Return the active account with a usable access token, refreshing it if
        it is expired or about to expire. Returns None when the account is
        missing, inactive, or its refresh was rejected (the account is then
        deactivated so the user is asked to reconnect).
        """
        account = self.accounts.get(user_id, platform)
        if account is None or not account.is_active:
            return None
        if not self._needs_refresh(account):
            return account

        logger.info(f"Refreshing {platform.value} token for user {user_id}")
        try:
            grant = await self._oauth[platform].refresh(account)
        except OAuthError as e:
            logger.warning(f"{platform.value} refresh rejected for user {user_id}, deactivating: {e.message}")
            self.accounts.deactivate(user_id, platform)
            return None
        except httpx.HTTPError as e:
            logger.warning(f"{platform.value} refresh unreachable for user {user_id}, keeping account: {e}")
            return None

        return self.accounts.update_tokens(user_id, platform, grant)

    async def get_valid_access_token(self, user_id: str, platform: Platform) -> Optional[str]:
        account = await self.get_valid_account(user_id, platform)
        return account.access_token if account else None

    def store_account(self, user_id: str, platform: Platform, grant: TokenGrant) -> ConnectedAccount:
        account = self.accounts.upsert(user_id, platform, grant)
        logger.info(f"Stored {platform.value} account @{grant.platform_username} for user {user_id}")
        return account

    async def connect_account(self, user_id: str, platform: Platform, code: str) -> ConnectedAccount:
        grant = await self._oauth[platform].exchange_code(code)
        return self.store_account(user_id, platform, grant)

    def disconnect(self, user_id: str, platform: Platform):
        if not self.accounts.deactivate(user_id, platform):
            raise NotFoundError(f"No {platform.value} account connected")
        logger.info(f"Disconnected {platform.value} for user {user_id}")

    def list_accounts(self, user_id: str) -> list[AccountInfo]:
        by_platform = {a.platform: a for a in self.accounts.list_for_user(user_id)}
        infos = []
        for platform in Platform:
            account = by_platform.get(platform)
            connected = bool(account and account.is_active)
            infos.append(AccountInfo(
                platform=platform,
                is_connected=connected,
                username=account.platform_username if connected else None,
            ))
        return infos
