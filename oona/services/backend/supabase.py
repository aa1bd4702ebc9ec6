"""
Supabase Backend Service Implementation

Production implementation using the official Supabase Python SDK
(PostgREST tables, Storage, Realtime and GoTrue auth).
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - SUPABASE_URL and SUPABASE_KEY must be set in environment
    - Realtime must be enabled for the ``orders`` table

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import inspect
import logging
from typing import Any, Optional, Sequence

import httpx
from supabase import AsyncClient, AuthError, StorageException, acreate_client
from supabase import PostgrestAPIError as APIError

from oona.core.config import get_settings
from oona.models import ChangeEventType
from oona.services.backend.base import (
    AuthResult,
    AuthSession,
    BackendResult,
    BaseBackendService,
    BUCKET_NOT_FOUND,
    ChangeCallback,
    ChangeEvent,
    Filter,
    StorageResult,
    Subscription,
)

logger = logging.getLogger(__name__)


def _apply_filters(query: Any, filters: Sequence[Filter]) -> Any:
    for flt in filters:
        if flt.op == "in":
            query = query.in_(flt.column, list(flt.value))
        else:
            query = getattr(query, flt.op)(flt.column, flt.wire_value)
    return query


def parse_change_payload(table: str, payload: dict) -> Optional[ChangeEvent]:
    """
    Convert a Realtime ``postgres_changes`` payload into a ChangeEvent.

    Returns None when the payload carries no INSERT/UPDATE/DELETE type.
    """
    data = payload.get("data", payload)
    raw_type = data.get("type") or data.get("eventType")
    try:
        event_type = ChangeEventType(str(raw_type).upper())
    except ValueError:
        return None
    return ChangeEvent(
        event_type=event_type,
        table=table,
        new=data.get("record") or data.get("new") or {},
        old=data.get("old_record") or data.get("old") or {},
    )


def _log_callback_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Supabase: Change callback failed: {error!r}", exc_info=error)


def _storage_error(e: Exception) -> StorageResult:
    message = str(e)
    details = e.args[0] if e.args and isinstance(e.args[0], dict) else {}
    message = details.get("message", message)
    code = None
    if "bucket not found" in message.lower():
        code = BUCKET_NOT_FOUND
    elif details.get("error"):
        code = str(details["error"]).lower().replace(" ", "_")
    return StorageResult(success=False, error_message=message, error_code=code)


class SupabaseSubscription(Subscription):
    """Wraps a realtime channel."""

    def __init__(self, client: AsyncClient, channel: Any, name: str):
        self._client = client
        self._channel = channel
        self._name = name
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        try:
            await self._client.remove_channel(self._channel)
            logger.info(f"Supabase: Channel '{self._name}' removed")
        except Exception as e:
            logger.error(f"Supabase: Failed to remove channel '{self._name}': {e}")


class SupabaseBackendService(BaseBackendService):
    """
    Production Supabase backend implementation.

    Configuration:
        Requires SUPABASE_URL and SUPABASE_KEY environment variables.

    Example:
        >>> backend = SupabaseBackendService()
        >>> result = await backend.count(
        ...     "orders", [Filter("status", "eq", "pending")]
        ... )
        >>> print(result.count)
    """

    def __init__(self):
        """
        Prepare the client configuration.

        Raises:
            ValueError: If SUPABASE_URL or SUPABASE_KEY is not configured
        """
        settings = get_settings()

        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_KEY are required for production mode. "
                "Set them in your .env file or environment variables."
            )

        self._url = settings.supabase_url
        self._key = settings.supabase_key
        self._client: Optional[AsyncClient] = None
        self._client_lock = asyncio.Lock()
        self._callback_tasks: set[asyncio.Task] = set()

        logger.info("SupabaseBackendService initialized")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "supabase"

    async def _get_client(self) -> AsyncClient:
        """Create the async client on first use."""
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    self._client = await acreate_client(self._url, self._key)
        return self._client

    # =========================================================================
    # TABLES
    # =========================================================================

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        ascending: bool = True,
    ) -> BackendResult:
        try:
            client = await self._get_client()
            query = _apply_filters(client.table(table).select(columns), filters)
            if order_by:
                query = query.order(order_by, desc=not ascending)
            response = await query.execute()
            return BackendResult(success=True, data=list(response.data or []))
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"Supabase: select on {table} failed: {e}")
            return BackendResult.failure(str(e), getattr(e, "code", None))

    async def count(
        self,
        table: str,
        filters: Sequence[Filter] = (),
    ) -> BackendResult:
        try:
            client = await self._get_client()
            query = _apply_filters(client.table(table).select("*", count="exact", head=True), filters)
            response = await query.execute()
            return BackendResult(success=True, count=response.count or 0)
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"Supabase: count on {table} failed: {e}")
            return BackendResult.failure(str(e), getattr(e, "code", None))

    async def insert(
        self,
        table: str,
        rows: list[dict],
    ) -> BackendResult:
        try:
            client = await self._get_client()
            response = await client.table(table).insert(rows).execute()
            return BackendResult(success=True, data=list(response.data or []))
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"Supabase: insert into {table} failed: {e}")
            return BackendResult.failure(str(e), getattr(e, "code", None))

    async def update(
        self,
        table: str,
        values: dict,
        filters: Sequence[Filter],
    ) -> BackendResult:
        try:
            client = await self._get_client()
            query = _apply_filters(client.table(table).update(values), filters)
            response = await query.execute()
            return BackendResult(success=True, data=list(response.data or []))
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"Supabase: update on {table} failed: {e}")
            return BackendResult.failure(str(e), getattr(e, "code", None))

    async def delete(
        self,
        table: str,
        filters: Sequence[Filter],
    ) -> BackendResult:
        try:
            client = await self._get_client()
            query = _apply_filters(client.table(table).delete(), filters)
            response = await query.execute()
            return BackendResult(success=True, data=list(response.data or []))
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"Supabase: delete on {table} failed: {e}")
            return BackendResult.failure(str(e), getattr(e, "code", None))

    # =========================================================================
    # REALTIME
    # =========================================================================

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        channel_name: Optional[str] = None,
    ) -> Subscription:
        client = await self._get_client()
        name = channel_name or f"{table}-changes"
        loop = asyncio.get_running_loop()

        def on_change(payload: dict) -> None:
            event = parse_change_payload(table, payload)
            if event is None:
                logger.warning(f"Supabase: Ignoring change on '{name}' without an event type")
                return
            try:
                outcome = callback(event)
            except Exception as e:
                logger.exception(f"Supabase: Change callback on '{name}' failed: {e}")
                return
            if inspect.isawaitable(outcome):
                task = loop.create_task(outcome)
                self._callback_tasks.add(task)
                task.add_done_callback(self._callback_tasks.discard)
                task.add_done_callback(_log_callback_failure)

        def on_status(status: Any, error: Optional[Exception] = None) -> None:
            if error:
                logger.error(f"Supabase: Channel '{name}' error: {error}")
            else:
                logger.info(f"Supabase: Channel '{name}' status: {status}")

        channel = client.channel(name)
        channel.on_postgres_changes("*", schema="public", table=table, callback=on_change)
        await channel.subscribe(on_status)
        return SupabaseSubscription(client, channel, name)

    # =========================================================================
    # STORAGE
    # =========================================================================

    async def create_bucket(
        self,
        name: str,
        public: bool,
        allowed_mime_types: Sequence[str],
        file_size_limit: int,
    ) -> StorageResult:
        try:
            client = await self._get_client()
            await client.storage.create_bucket(
                name,
                options={
                    "public": public,
                    "allowed_mime_types": list(allowed_mime_types),
                    "file_size_limit": file_size_limit,
                },
            )
            logger.info(f"Supabase: Created bucket '{name}'")
            return StorageResult(success=True)
        except (StorageException, httpx.HTTPError) as e:
            logger.error(f"Supabase: create_bucket '{name}' failed: {e}")
            return _storage_error(e)

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
    ) -> StorageResult:
        try:
            client = await self._get_client()
            await client.storage.from_(bucket).upload(
                path,
                data,
                {"content-type": content_type},
            )
            return StorageResult(success=True, path=path)
        except (StorageException, httpx.HTTPError) as e:
            logger.error(f"Supabase: upload to {bucket}/{path} failed: {e}")
            return _storage_error(e)

    async def download(
        self,
        bucket: str,
        path: str,
    ) -> StorageResult:
        try:
            client = await self._get_client()
            content = await client.storage.from_(bucket).download(path)
            return StorageResult(success=True, path=path, content=content)
        except (StorageException, httpx.HTTPError) as e:
            logger.error(f"Supabase: download of {bucket}/{path} failed: {e}")
            return _storage_error(e)

    async def get_public_url(
        self,
        bucket: str,
        path: str,
    ) -> str:
        client = await self._get_client()
        return await client.storage.from_(bucket).get_public_url(path)

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    async def sign_in(
        self,
        email: str,
        password: str,
    ) -> AuthResult:
        try:
            client = await self._get_client()
            response = await client.auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as e:
            logger.info(f"Supabase: Sign-in rejected for {email}: {e}")
            return AuthResult(success=False, error_message=str(e))

        if response.session is None or response.user is None:
            return AuthResult(success=False, error_message="Invalid login credentials")

        session = AuthSession(
            access_token=response.session.access_token,
            user_id=response.user.id,
            email=response.user.email,
            expires_at=response.session.expires_at,
        )
        return AuthResult(success=True, session=session, user_id=response.user.id, email=response.user.email)

    async def sign_out(
        self,
        access_token: str,
    ) -> AuthResult:
        try:
            client = await self._get_client()
            await client.auth.admin.sign_out(access_token)
            return AuthResult(success=True)
        except AuthError as e:
            logger.error(f"Supabase: Sign-out failed: {e}")
            return AuthResult(success=False, error_message=str(e))

    async def get_user(
        self,
        access_token: str,
    ) -> AuthResult:
        try:
            client = await self._get_client()
            response = await client.auth.get_user(access_token)
        except AuthError as e:
            return AuthResult(success=False, error_message=str(e))

        if response is None or response.user is None:
            return AuthResult(success=False, error_message="Invalid or expired session")
        return AuthResult(success=True, user_id=response.user.id, email=response.user.email)

    async def health_check(self) -> bool:
        """Check that the REST endpoint answers."""
        try:
            client = await self._get_client()
            await client.table("menu_items").select("id").limit(1).execute()
            return True
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"Supabase health check failed: {e}")
            return False
