"""
Mock Backend Service Implementation

Simulates the hosted backend without any network calls.
Used in development mode (ENV_MODE=development) and by the test suite.

Behavior:
    - Tables are kept in memory as lists of row dicts
    - Every insert/update/delete emits realtime change notifications,
      delivered asynchronously on the running event loop
    - Storage buckets enforce their public flag, MIME patterns and size limit
    - Password auth accepts the admin credentials from settings
    - Optional simulated latency and random failure rate

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import copy
import fnmatch
import inspect
import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from oona.core.config import get_settings
from oona.models import ChangeEventType, MENU_ITEMS_TABLE
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


SAMPLE_MENU = [
    {"name": "Paneer Tikka", "description": "Char-grilled cottage cheese with peppers and onions", "category": "Starters", "price": 220},
    {"name": "Veg Spring Rolls", "description": "Crispy rolls stuffed with seasoned vegetables", "category": "Starters", "price": 160},
    {"name": "Butter Chicken", "description": "Tandoori chicken simmered in a creamy tomato gravy", "category": "Main Course", "price": 340},
    {"name": "Dal Makhani", "description": "Black lentils slow-cooked overnight with butter", "category": "Main Course", "price": 260},
    {"name": "Classic Burger", "description": "Grilled patty, cheddar, lettuce and house sauce", "category": "Main Course", "price": 150},
    {"name": "Garlic Naan", "description": "Tandoor-baked bread brushed with garlic butter", "category": "Breads", "price": 60},
    {"name": "Gulab Jamun", "description": "Warm milk dumplings in rose syrup", "category": "Desserts", "price": 90},
    {"name": "Mango Lassi", "description": "Chilled yoghurt drink with Alphonso mango", "category": "Beverages", "price": 110},
    {"name": "Masala Chai", "description": "Spiced milk tea", "category": "Beverages", "price": 40},
]


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _comparable(row_value: Any, filter_value: Any) -> tuple[Any, Any]:
    """Coerce a stored value and a filter value to comparable types."""
    if isinstance(filter_value, datetime) and isinstance(row_value, str):
        row_value = datetime.fromisoformat(row_value)
        if row_value.tzinfo is None:
            row_value = row_value.replace(tzinfo=timezone.utc)
        if filter_value.tzinfo is None:
            filter_value = filter_value.astimezone()
    elif isinstance(row_value, (int, float, Decimal)) and isinstance(filter_value, (int, float, Decimal)):
        row_value, filter_value = Decimal(str(row_value)), Decimal(str(filter_value))
    elif isinstance(filter_value, str) and not isinstance(row_value, str) and row_value is not None:
        row_value = str(row_value)
    return row_value, filter_value


def _matches(row: dict, flt: Filter) -> bool:
    value = row.get(flt.column)
    if flt.op == "in":
        return any(_matches(row, Filter(flt.column, "eq", v)) for v in flt.value)
    if value is None:
        # SQL semantics: NULL never satisfies a comparison
        return False
    left, right = _comparable(value, flt.value)
    if flt.op == "eq":
        return left == right
    if flt.op == "neq":
        return left != right
    if flt.op == "gt":
        return left > right
    if flt.op == "gte":
        return left >= right
    if flt.op == "lt":
        return left < right
    return left <= right


def _project(row: dict, columns: str) -> dict:
    if columns.strip() == "*":
        return copy.deepcopy(row)
    wanted = [c.strip() for c in columns.split(",") if c.strip()]
    return {c: copy.deepcopy(row.get(c)) for c in wanted}


def _jsonable(value: Any) -> Any:
    """Store values the way a JSON API would hand them back."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class MockSubscription(Subscription):
    """Subscription handle for the in-memory channel."""

    def __init__(self, service: "MockBackendService", table: str, callback: ChangeCallback, channel_name: str):
        self._service = service
        self.table = table
        self.callback = callback
        self.channel_name = channel_name
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._service._remove_subscription(self)
        logger.debug(f"Mock: Channel '{self.channel_name}' unsubscribed")


@dataclass
class _Bucket:
    public: bool
    allowed_mime_types: list[str]
    file_size_limit: int
    objects: dict[str, tuple[bytes, str]] = field(default_factory=dict)


class MockBackendService(BaseBackendService):
    """
    In-memory implementation of the backend service.

    Attributes:
        failure_rate: Probability of simulated failure per call (0.0-1.0)
        min_latency: Minimum response time in seconds
        max_latency: Maximum response time in seconds
        public_base_url: Prefix for public storage URLs

    Example:
        >>> backend = MockBackendService(failure_rate=0.0)
        >>> await backend.insert("orders", [{"table_number": 5, "total": 300}])
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        public_base_url: Optional[str] = None,
        admin_email: Optional[str] = None,
        admin_password: Optional[str] = None,
    ):
        settings = get_settings()

        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max(min_latency, max_latency)
        self.public_base_url = (public_base_url or settings.app_base_url).rstrip("/")

        self._tables: dict[str, list[dict]] = {}
        self._subscriptions: dict[str, list[MockSubscription]] = {}
        self._deliveries: set[asyncio.Task] = set()
        self._buckets: dict[str, _Bucket] = {}
        self._users: dict[str, tuple[str, str]] = {
            (admin_email or settings.admin_email).lower(): (
                str(uuid.uuid4()),
                admin_password or settings.admin_password,
            ),
        }
        self._sessions: dict[str, tuple[str, str]] = {}

        logger.info(
            f"MockBackendService initialized "
            f"(failure_rate={failure_rate:.0%}, latency={min_latency}-{self.max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency."""
        if self.max_latency <= 0:
            return
        await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        """Determine if this request should simulate a failure."""
        return random.random() < self.failure_rate

    def _rows(self, table: str) -> list[dict]:
        return self._tables.setdefault(table, [])

    # =========================================================================
    # SEEDING
    # =========================================================================

    def seed_menu(self, items: Sequence[dict] = SAMPLE_MENU) -> list[dict]:
        """
        Load menu items directly, without notifications or latency.

        Returns:
            The stored rows
        """
        stored = []
        for item in items:
            now = _utcnow_iso()
            row = {
                "id": str(uuid.uuid4()),
                "image_url": None,
                "available": True,
                "created_at": now,
                "updated_at": now,
                **_jsonable(dict(item)),
            }
            self._rows(MENU_ITEMS_TABLE).append(row)
            stored.append(copy.deepcopy(row))
        logger.info(f"Mock: Seeded {len(stored)} menu items")
        return stored

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
        await self._simulate_latency()
        if self._should_fail():
            logger.debug(f"Mock: Simulated select failure on {table}")
            return BackendResult.failure("Simulated backend failure", "service_unavailable")

        rows = [r for r in self._rows(table) if all(_matches(r, f) for f in filters)]
        if order_by:
            present = [r for r in rows if r.get(order_by) is not None]
            missing = [r for r in rows if r.get(order_by) is None]
            present.sort(key=lambda r: r[order_by], reverse=not ascending)
            rows = present + missing

        return BackendResult(success=True, data=[_project(r, columns) for r in rows])

    async def count(
        self,
        table: str,
        filters: Sequence[Filter] = (),
    ) -> BackendResult:
        await self._simulate_latency()
        if self._should_fail():
            return BackendResult.failure("Simulated backend failure", "service_unavailable")

        total = sum(1 for r in self._rows(table) if all(_matches(r, f) for f in filters))
        return BackendResult(success=True, count=total)

    async def insert(
        self,
        table: str,
        rows: list[dict],
    ) -> BackendResult:
        await self._simulate_latency()
        if self._should_fail():
            logger.debug(f"Mock: Simulated insert failure on {table}")
            return BackendResult.failure("Simulated backend failure", "service_unavailable")

        stored = []
        for row in rows:
            now = _utcnow_iso()
            record = {"id": str(uuid.uuid4()), "created_at": now, "updated_at": now}
            record.update(_jsonable(dict(row)))
            self._rows(table).append(record)
            stored.append(copy.deepcopy(record))
            self._notify(table, ChangeEvent(ChangeEventType.INSERT, table, new=copy.deepcopy(record)))

        logger.debug(f"Mock: Inserted {len(stored)} row(s) into {table}")
        return BackendResult(success=True, data=stored)

    async def update(
        self,
        table: str,
        values: dict,
        filters: Sequence[Filter],
    ) -> BackendResult:
        await self._simulate_latency()
        if self._should_fail():
            logger.debug(f"Mock: Simulated update failure on {table}")
            return BackendResult.failure("Simulated backend failure", "service_unavailable")

        updated = []
        for row in self._rows(table):
            if all(_matches(row, f) for f in filters):
                old = copy.deepcopy(row)
                row.update(_jsonable(dict(values)))
                row["updated_at"] = _utcnow_iso()
                updated.append(copy.deepcopy(row))
                self._notify(table, ChangeEvent(ChangeEventType.UPDATE, table, new=copy.deepcopy(row), old=old))

        logger.debug(f"Mock: Updated {len(updated)} row(s) in {table}")
        return BackendResult(success=True, data=updated)

    async def delete(
        self,
        table: str,
        filters: Sequence[Filter],
    ) -> BackendResult:
        await self._simulate_latency()
        if self._should_fail():
            logger.debug(f"Mock: Simulated delete failure on {table}")
            return BackendResult.failure("Simulated backend failure", "service_unavailable")

        kept, deleted = [], []
        for row in self._rows(table):
            (deleted if all(_matches(row, f) for f in filters) else kept).append(row)
        self._tables[table] = kept

        for row in deleted:
            self._notify(table, ChangeEvent(ChangeEventType.DELETE, table, old=copy.deepcopy(row)))

        logger.debug(f"Mock: Deleted {len(deleted)} row(s) from {table}")
        return BackendResult(success=True, data=deleted)

    # =========================================================================
    # REALTIME
    # =========================================================================

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        channel_name: Optional[str] = None,
    ) -> Subscription:
        subscription = MockSubscription(self, table, callback, channel_name or f"{table}-changes")
        self._subscriptions.setdefault(table, []).append(subscription)
        logger.debug(f"Mock: Channel '{subscription.channel_name}' subscribed to {table}")
        return subscription

    def _remove_subscription(self, subscription: MockSubscription) -> None:
        subscribers = self._subscriptions.get(subscription.table, [])
        if subscription in subscribers:
            subscribers.remove(subscription)

    def subscriber_count(self, table: str) -> int:
        """Number of live subscriptions on a table."""
        return len(self._subscriptions.get(table, []))

    def _notify(self, table: str, event: ChangeEvent) -> None:
        subscribers = list(self._subscriptions.get(table, []))
        if not subscribers:
            return
        loop = asyncio.get_running_loop()
        for subscription in subscribers:
            task = loop.create_task(self._deliver(subscription, event))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, subscription: MockSubscription, event: ChangeEvent) -> None:
        # Yield first so the notification never runs inside the mutating call
        await asyncio.sleep(0)
        if not subscription.active:
            return
        try:
            outcome = subscription.callback(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.exception(f"Mock: Change callback on '{subscription.channel_name}' failed: {e}")

    async def wait_for_deliveries(self) -> None:
        """Wait until every queued notification has been delivered."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

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
        await self._simulate_latency()
        if self._should_fail():
            return StorageResult(success=False, error_message="Simulated storage failure", error_code="service_unavailable")

        if name in self._buckets:
            return StorageResult(success=False, error_message="The resource already exists", error_code="duplicate")

        self._buckets[name] = _Bucket(
            public=public,
            allowed_mime_types=list(allowed_mime_types),
            file_size_limit=file_size_limit,
        )
        logger.info(f"Mock: Created bucket '{name}' (public={public})")
        return StorageResult(success=True)

    def has_bucket(self, name: str) -> bool:
        return name in self._buckets

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
    ) -> StorageResult:
        await self._simulate_latency()
        if self._should_fail():
            return StorageResult(success=False, error_message="Simulated storage failure", error_code="service_unavailable")

        target = self._buckets.get(bucket)
        if target is None:
            return StorageResult(success=False, error_message="Bucket not found", error_code=BUCKET_NOT_FOUND)

        if target.allowed_mime_types and not any(
            fnmatch.fnmatch(content_type, pattern) for pattern in target.allowed_mime_types
        ):
            return StorageResult(
                success=False,
                error_message=f"mime type {content_type} is not supported",
                error_code="invalid_mime_type",
            )

        if len(data) > target.file_size_limit:
            return StorageResult(
                success=False,
                error_message="The object exceeded the maximum allowed size",
                error_code="payload_too_large",
            )

        if path in target.objects:
            return StorageResult(success=False, error_message="The resource already exists", error_code="duplicate")

        target.objects[path] = (bytes(data), content_type)
        logger.info(f"Mock: Uploaded {len(data)} bytes to {bucket}/{path}")
        return StorageResult(success=True, path=path)

    async def download(
        self,
        bucket: str,
        path: str,
    ) -> StorageResult:
        target = self._buckets.get(bucket)
        if target is None:
            return StorageResult(success=False, error_message="Bucket not found", error_code=BUCKET_NOT_FOUND)
        if not target.public:
            return StorageResult(success=False, error_message="Bucket is not public", error_code="not_public")
        if path not in target.objects:
            return StorageResult(success=False, error_message="Object not found", error_code="not_found")

        content, content_type = target.objects[path]
        return StorageResult(success=True, path=path, content=content, content_type=content_type)

    async def get_public_url(
        self,
        bucket: str,
        path: str,
    ) -> str:
        return f"{self.public_base_url}/mock-storage/{bucket}/{path}"

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    async def sign_in(
        self,
        email: str,
        password: str,
    ) -> AuthResult:
        await self._simulate_latency()

        key = (email or "").strip().lower()
        user = self._users.get(key)
        if user is None or user[1] != password:
            logger.info(f"Mock: Rejected sign-in for {email}")
            return AuthResult(success=False, error_message="Invalid login credentials")

        token = uuid.uuid4().hex
        self._sessions[token] = (user[0], key)
        session = AuthSession(access_token=token, user_id=user[0], email=key)
        logger.info(f"Mock: Signed in {key}")
        return AuthResult(success=True, session=session, user_id=user[0], email=key)

    async def sign_out(
        self,
        access_token: str,
    ) -> AuthResult:
        self._sessions.pop(access_token, None)
        return AuthResult(success=True)

    async def get_user(
        self,
        access_token: str,
    ) -> AuthResult:
        user = self._sessions.get(access_token)
        if user is None:
            return AuthResult(success=False, error_message="Invalid or expired session")
        return AuthResult(success=True, user_id=user[0], email=user[1])

    async def health_check(self) -> bool:
        """Mock health check always returns True."""
        return True
