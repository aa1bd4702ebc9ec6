"""
Backend Service Abstract Base Class

Defines the interface contract for the hosted backend-as-a-service:
relational tables, realtime change notifications, file storage and
password authentication. Both MockBackendService and
SupabaseBackendService must implement these methods, so pages behave
identically regardless of which client is active.

Design Pattern: Strategy Pattern
    - Runtime switching between the in-memory mock and Supabase
    - Every call returns a result object instead of raising, so call
      sites branch on ``result.success`` and log/surface the error

Author: Khalil Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from oona.models import ChangeEventType


FILTER_OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "in")

BUCKET_NOT_FOUND = "bucket_not_found"


@dataclass(frozen=True)
class Filter:
    """
    A single column predicate.

    Attributes:
        column: Column name
        op: One of FILTER_OPERATORS
        value: Comparison value (a sequence for ``in``)
    """
    column: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    @property
    def wire_value(self) -> Any:
        """Value as sent over the wire (datetimes become ISO-8601)."""
        if isinstance(self.value, datetime):
            return self.value.isoformat()
        return self.value


@dataclass
class BackendResult:
    """
    Standardized result from any backend call.

    Attributes:
        success: Whether the call succeeded
        data: Rows returned (selected, inserted, updated or deleted)
        count: Exact row count for count queries
        error_message: Error description if the call failed
        error_code: Machine-readable error code
    """
    success: bool
    data: list[dict] = field(default_factory=list)
    count: Optional[int] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def failure(cls, message: str, code: Optional[str] = None) -> "BackendResult":
        return cls(success=False, error_message=message, error_code=code)


@dataclass
class StorageResult:
    """
    Result from a storage call.

    Attributes:
        success: Whether the call succeeded
        path: Object path inside the bucket
        public_url: Public URL of the object, when resolved
        content: Object bytes, for downloads
        content_type: MIME type, for downloads
        error_message: Error description if the call failed
        error_code: Machine-readable error code (e.g. ``bucket_not_found``)
    """
    success: bool
    path: Optional[str] = None
    public_url: Optional[str] = None
    content: Optional[bytes] = None
    content_type: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class AuthSession:
    """An authenticated staff session."""
    access_token: str
    user_id: str
    email: Optional[str] = None
    expires_at: Optional[int] = None


@dataclass
class AuthResult:
    """Result from an authentication call."""
    success: bool
    session: Optional[AuthSession] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class ChangeEvent:
    """
    A realtime change notification.

    Attributes:
        event_type: INSERT, UPDATE or DELETE
        table: Table the change happened on
        new: Row after the change (empty for deletes)
        old: Row before the change (may be partial)
    """
    event_type: ChangeEventType
    table: str
    new: dict = field(default_factory=dict)
    old: dict = field(default_factory=dict)


ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class Subscription(ABC):
    """Handle for an active realtime subscription."""

    @property
    @abstractmethod
    def active(self) -> bool:
        """Whether notifications are still being delivered."""
        pass

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Release the channel. Safe to call more than once."""
        pass


class BaseBackendService(ABC):
    """
    Abstract base class for backend clients.

    Example:
        >>> backend = get_backend_service()  # Mock or Supabase
        >>> result = await backend.select(
        ...     "orders",
        ...     filters=[Filter("status", "neq", "completed")],
        ...     order_by="created_at",
        ...     ascending=False,
        ... )
        >>> if result.success:
        ...     print(len(result.data))
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the backend provider.

        Returns:
            str: Provider name (e.g., "mock", "supabase")
        """
        pass

    # =========================================================================
    # TABLES
    # =========================================================================

    @abstractmethod
    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        ascending: bool = True,
    ) -> BackendResult:
        """
        Read rows matching every filter.

        Args:
            table: Table name
            columns: Comma-separated column list or ``*``
            filters: Predicates combined with AND
            order_by: Column to sort by
            ascending: Sort direction

        Returns:
            BackendResult: Rows in ``data``
        """
        pass

    @abstractmethod
    async def count(
        self,
        table: str,
        filters: Sequence[Filter] = (),
    ) -> BackendResult:
        """Exact number of rows matching every filter, in ``count``."""
        pass

    @abstractmethod
    async def insert(
        self,
        table: str,
        rows: list[dict],
    ) -> BackendResult:
        """Insert rows; the stored rows (with ids and timestamps) come back in ``data``."""
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        values: dict,
        filters: Sequence[Filter],
    ) -> BackendResult:
        """Partially update matching rows; updated rows come back in ``data``."""
        pass

    @abstractmethod
    async def delete(
        self,
        table: str,
        filters: Sequence[Filter],
    ) -> BackendResult:
        """Delete matching rows; deleted rows come back in ``data``."""
        pass

    # =========================================================================
    # REALTIME
    # =========================================================================

    @abstractmethod
    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        channel_name: Optional[str] = None,
    ) -> Subscription:
        """
        Subscribe to insert/update/delete notifications on a table.

        Notifications arrive asynchronously and independently of any
        in-flight request. Coroutine callbacks are scheduled as tasks.
        """
        pass

    # =========================================================================
    # STORAGE
    # =========================================================================

    @abstractmethod
    async def create_bucket(
        self,
        name: str,
        public: bool,
        allowed_mime_types: Sequence[str],
        file_size_limit: int,
    ) -> StorageResult:
        """Create a storage bucket with a public-read flag and upload policy."""
        pass

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
    ) -> StorageResult:
        """
        Upload an object.

        A missing bucket is reported with ``error_code == BUCKET_NOT_FOUND``.
        """
        pass

    @abstractmethod
    async def download(
        self,
        bucket: str,
        path: str,
    ) -> StorageResult:
        """Fetch an object's bytes."""
        pass

    @abstractmethod
    async def get_public_url(
        self,
        bucket: str,
        path: str,
    ) -> str:
        """Resolve the public URL for an uploaded object."""
        pass

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    @abstractmethod
    async def sign_in(
        self,
        email: str,
        password: str,
    ) -> AuthResult:
        """Authenticate a staff member with email and password."""
        pass

    @abstractmethod
    async def sign_out(
        self,
        access_token: str,
    ) -> AuthResult:
        """Revoke a session."""
        pass

    @abstractmethod
    async def get_user(
        self,
        access_token: str,
    ) -> AuthResult:
        """Validate an access token and return its user."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify connectivity to the backend.

        Returns:
            bool: True if the backend is reachable
        """
        pass
