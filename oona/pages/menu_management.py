"""
Menu Management

Create, edit, delete and toggle menu items, and upload item images to
file storage. Create and edit share one form; edit targets an update of
the selected item instead of an insert.

Image upload:
    1. Reject non-image MIME types and files over the size ceiling
       without contacting storage
    2. Upload under a timestamp + random name, keeping the extension
    3. If the bucket does not exist, create it (public, image/*, same
       ceiling) and retry the upload once
    4. Resolve the public URL for the form's image field

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import PurePosixPath
from typing import Optional

from oona.core.config import get_settings
from oona.models import MENU_ITEMS_TABLE
from oona.schemas import MenuItem, quantize_money
from oona.services.backend import BUCKET_NOT_FOUND, BaseBackendService, Filter

logger = logging.getLogger(__name__)

IMAGE_MIME_PATTERN = "image/*"


class FormValidationError(ValueError):
    """Raised when a menu item form has missing or invalid fields."""

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))


@dataclass
class ActionResult:
    success: bool
    message: Optional[str] = None
    item: Optional[MenuItem] = None


@dataclass
class ImageUploadResult:
    success: bool
    image_url: Optional[str] = None
    path: Optional[str] = None
    error_message: Optional[str] = None
    rejected: bool = False  # refused before storage was contacted


def parse_price(raw) -> Decimal:
    """
    Coerce a price to a non-negative two-place Decimal.

    Raises:
        ValueError: If the value is blank, not a number, negative or too large
    """
    text = str(raw if raw is not None else "").strip()
    if not text:
        raise ValueError("Price is required")
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ValueError("Price must be a number")
    if not value.is_finite():
        raise ValueError("Price must be a number")
    if value < 0:
        raise ValueError("Price cannot be negative")
    try:
        return quantize_money(value)
    except InvalidOperation:
        raise ValueError("Price is too large")


@dataclass
class MenuItemForm:
    """Raw form fields as entered by staff."""
    name: str = ""
    description: str = ""
    category: str = ""
    price: str = ""
    available: bool = True
    image_url: str = ""
    errors: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_item(cls, item: MenuItem) -> "MenuItemForm":
        return cls(
            name=item.name,
            description=item.description,
            category=item.category,
            price=str(item.price),
            available=item.available,
            image_url=item.image_url or "",
        )

    def clean(self) -> dict:
        """
        Validate the form and return the row values to write.

        Raises:
            FormValidationError: With one message per bad field
        """
        errors: dict[str, str] = {}
        for name in ("name", "description", "category"):
            if not getattr(self, name).strip():
                errors[name] = f"{name.capitalize()} is required"

        price = None
        try:
            price = parse_price(self.price)
        except ValueError as e:
            errors["price"] = str(e)

        self.errors = errors
        if errors:
            raise FormValidationError(errors)

        return {
            "name": self.name.strip(),
            "description": self.description.strip(),
            "category": self.category.strip(),
            "price": float(price),
            "available": bool(self.available),
            "image_url": self.image_url.strip() or None,
        }


def validate_image(content_type: Optional[str], size: int, max_bytes: Optional[int] = None) -> Optional[str]:
    """Return an error message for an unacceptable image, or None."""
    limit = max_bytes if max_bytes is not None else get_settings().max_image_bytes
    if not content_type or not content_type.startswith("image/"):
        return "Please select an image file"
    if size > limit:
        return f"Image size should be less than {limit // (1024 * 1024)}MB"
    return None


def generate_image_path(filename: str, folder: Optional[str] = None) -> str:
    """Collision-resistant object path: ``<folder>/<ms>-<random>.<ext>``."""
    folder = folder if folder is not None else get_settings().storage_folder
    suffix = PurePosixPath(filename or "").suffix.lower()
    name = f"{int(time.time() * 1000)}-{secrets.token_hex(6)}{suffix}"
    return f"{folder}/{name}" if folder else name


class MenuManager:
    """State behind the admin menu management page."""

    def __init__(self, backend: BaseBackendService):
        self._backend = backend
        self.items: list[MenuItem] = []
        self.error: Optional[str] = None

    async def load(self) -> bool:
        result = await self._backend.select(MENU_ITEMS_TABLE, order_by="category", ascending=True)
        if not result.success:
            logger.error(f"Error fetching menu items: {result.error_message}")
            self.error = "Failed to load menu items"
            return False
        self.items = [MenuItem.model_validate(row) for row in result.data]
        self.error = None
        return True

    def get_item(self, item_id: str) -> Optional[MenuItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def edit_form(self, item_id: str) -> Optional[MenuItemForm]:
        """Pre-filled form for an existing item."""
        item = self.get_item(item_id)
        return MenuItemForm.from_item(item) if item else None

    async def save(self, form: MenuItemForm, item_id: Optional[str] = None) -> ActionResult:
        """
        Insert a new item, or update ``item_id`` when editing.

        Raises:
            FormValidationError: If the form is invalid (nothing is written)
        """
        values = form.clean()

        if item_id:
            result = await self._backend.update(MENU_ITEMS_TABLE, values, [Filter("id", "eq", item_id)])
            action = "update"
        else:
            result = await self._backend.insert(MENU_ITEMS_TABLE, [values])
            action = "create"

        if not result.success:
            logger.error(f"Error saving menu item ({action}): {result.error_message}")
            return ActionResult(success=False, message="Failed to save menu item")
        if not result.data:
            return ActionResult(success=False, message="Menu item no longer exists")

        saved = MenuItem.model_validate(result.data[0])
        logger.info(f"Menu item {action}d: {saved.name}")
        await self.load()
        return ActionResult(success=True, message=f"Saved {saved.name}", item=saved)

    async def delete(self, item_id: str, confirmed: bool) -> ActionResult:
        """Delete immediately. Irreversible; requires ``confirmed``."""
        if not confirmed:
            return ActionResult(success=False, message="Deletion must be confirmed")

        result = await self._backend.delete(MENU_ITEMS_TABLE, [Filter("id", "eq", item_id)])
        if not result.success:
            logger.error(f"Error deleting menu item {item_id}: {result.error_message}")
            return ActionResult(success=False, message="Failed to delete menu item")

        logger.info(f"Menu item deleted: {item_id}")
        await self.load()
        return ActionResult(success=True, message="Menu item deleted")

    async def toggle_availability(self, item_id: str) -> ActionResult:
        """Flip the availability flag without touching other fields."""
        item = self.get_item(item_id)
        if item is None:
            return ActionResult(success=False, message="Menu item not found")

        result = await self._backend.update(
            MENU_ITEMS_TABLE, {"available": not item.available}, [Filter("id", "eq", item_id)]
        )
        if not result.success:
            logger.error(f"Error updating availability for {item_id}: {result.error_message}")
            return ActionResult(success=False, message="Failed to update availability")

        await self.load()
        return ActionResult(success=True, item=self.get_item(item_id))

    async def upload_image(self, filename: str, content_type: Optional[str], data: bytes) -> ImageUploadResult:
        settings = get_settings()

        error = validate_image(content_type, len(data), settings.max_image_bytes)
        if error:
            return ImageUploadResult(success=False, error_message=error, rejected=True)

        bucket = settings.storage_bucket
        path = generate_image_path(filename, settings.storage_folder)

        result = await self._backend.upload(bucket, path, data, content_type)
        if not result.success and result.error_code == BUCKET_NOT_FOUND:
            logger.info(f"Storage bucket '{bucket}' missing, creating it")
            created = await self._backend.create_bucket(
                bucket,
                public=True,
                allowed_mime_types=[IMAGE_MIME_PATTERN],
                file_size_limit=settings.max_image_bytes,
            )
            if not created.success:
                logger.error(f"Error creating bucket '{bucket}': {created.error_message}")
                return ImageUploadResult(success=False, error_message="Failed to upload image. Please try again.")
            result = await self._backend.upload(bucket, path, data, content_type)

        if not result.success:
            logger.error(f"Error uploading image {filename}: {result.error_message}")
            return ImageUploadResult(success=False, error_message="Failed to upload image. Please try again.")

        public_url = await self._backend.get_public_url(bucket, path)
        logger.info(f"Image uploaded: {bucket}/{path}")
        return ImageUploadResult(success=True, image_url=public_url, path=path)
