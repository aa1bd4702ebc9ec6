"""Tests for menu item forms, CRUD actions and image upload."""

import re
from decimal import Decimal

import pytest

from oona.models import MENU_ITEMS_TABLE
from oona.pages.menu_management import (
    FormValidationError,
    MenuItemForm,
    MenuManager,
    generate_image_path,
    parse_price,
    validate_image,
)
from oona.services.backend import Filter, StorageResult

MIB = 1024 * 1024


@pytest.fixture
async def manager(backend, menu):
    manager = MenuManager(backend)
    await manager.load()
    return manager


def valid_form(**overrides) -> MenuItemForm:
    fields = dict(name="Masala Dosa", description="Crisp rice crepe", category="Main Course", price="180")
    fields.update(overrides)
    return MenuItemForm(**fields)


# =============================================================================
# FORM VALIDATION
# =============================================================================

def test_clean_returns_row_values():
    values = valid_form(price="180.456", image_url=" ").clean()

    assert values["price"] == 180.46
    assert values["available"] is True
    assert values["image_url"] is None


def test_clean_reports_every_missing_field():
    form = MenuItemForm()
    with pytest.raises(FormValidationError) as exc:
        form.clean()

    assert set(exc.value.errors) == {"name", "description", "category", "price"}
    assert form.errors == exc.value.errors


@pytest.mark.parametrize("price, message", [
    ("-5", "Price cannot be negative"),
    ("abc", "Price must be a number"),
    ("NaN", "Price must be a number"),
    ("", "Price is required"),
    ("1e30", "Price is too large"),
    ("1" + "0" * 28, "Price is too large"),
])
def test_bad_prices_are_rejected(price, message):
    with pytest.raises(FormValidationError) as exc:
        valid_form(price=price).clean()
    assert exc.value.errors == {"price": message}


def test_parse_price_quantizes_to_cents():
    assert parse_price("0") == Decimal("0.00")
    assert parse_price(" 12.5 ") == Decimal("12.50")


def test_form_from_item_prefills_fields(menu):
    burger = menu["Classic Burger"]
    form = MenuItemForm.from_item(burger)

    assert form.name == "Classic Burger"
    assert form.price == "150.00"
    assert form.available is True


# =============================================================================
# CRUD
# =============================================================================

async def test_create_item(manager, backend):
    result = await manager.save(valid_form())

    assert result.success
    assert result.item.name == "Masala Dosa"
    assert result.item.price == Decimal("180.00")
    assert manager.get_item(result.item.id) is not None


async def test_invalid_form_writes_nothing(manager, backend):
    before = (await backend.count(MENU_ITEMS_TABLE)).count
    with pytest.raises(FormValidationError):
        await manager.save(valid_form(price="-1"))
    assert (await backend.count(MENU_ITEMS_TABLE)).count == before


async def test_edit_updates_selected_item(manager, menu, backend):
    burger = menu["Classic Burger"]
    form = manager.edit_form(burger.id)
    form.price = "175"

    result = await manager.save(form, item_id=burger.id)

    assert result.success
    stored = await backend.select(MENU_ITEMS_TABLE, filters=[Filter("id", "eq", burger.id)])
    assert stored.data[0]["price"] == 175.0
    assert (await backend.count(MENU_ITEMS_TABLE)).count == len(menu)


async def test_edit_of_deleted_item_reports_failure(manager):
    result = await manager.save(valid_form(), item_id="gone")
    assert not result.success


async def test_delete_requires_confirmation(manager, menu, backend):
    naan = menu["Garlic Naan"]

    refused = await manager.delete(naan.id, confirmed=False)
    assert not refused.success
    assert manager.get_item(naan.id) is not None

    deleted = await manager.delete(naan.id, confirmed=True)
    assert deleted.success
    assert manager.get_item(naan.id) is None


async def test_toggle_availability_flips_flag_only(manager, menu):
    chai = menu["Masala Chai"]

    result = await manager.toggle_availability(chai.id)
    assert result.success
    assert result.item.available is False
    assert result.item.price == chai.price

    result = await manager.toggle_availability(chai.id)
    assert result.item.available is True


# =============================================================================
# IMAGES
# =============================================================================

@pytest.mark.parametrize("content_type, size, expected", [
    ("image/png", 1024, None),
    ("image/jpeg", 5 * MIB, None),
    ("image/jpeg", 6 * MIB, "Image size should be less than 5MB"),
    ("application/pdf", 10, "Please select an image file"),
    (None, 10, "Please select an image file"),
])
def test_validate_image(content_type, size, expected):
    assert validate_image(content_type, size, max_bytes=5 * MIB) == expected


def test_generate_image_path_keeps_extension():
    path = generate_image_path("Paneer Tikka.JPG", folder="menu-items")
    assert re.fullmatch(r"menu-items/\d{13}-[0-9a-f]{12}\.jpg", path)
    assert generate_image_path("a.png") != generate_image_path("a.png")


async def test_oversized_image_never_reaches_storage(manager, backend, monkeypatch):
    calls = []

    async def recording_upload(*args, **kwargs):
        calls.append(args)
        return StorageResult(success=True)

    monkeypatch.setattr(backend, "upload", recording_upload)
    result = await manager.upload_image("big.png", "image/png", b"x" * (6 * MIB))

    assert not result.success
    assert result.rejected
    assert result.error_message == "Image size should be less than 5MB"
    assert calls == []


async def test_non_image_is_rejected(manager, settings, backend):
    result = await manager.upload_image("menu.pdf", "application/pdf", b"%PDF")

    assert not result.success
    assert result.rejected
    assert not backend.has_bucket(settings.storage_bucket)


async def test_first_upload_creates_bucket_and_retries(manager, backend, settings):
    assert not backend.has_bucket(settings.storage_bucket)

    result = await manager.upload_image("dosa.png", "image/png", b"\x89PNG data")

    assert result.success
    assert backend.has_bucket(settings.storage_bucket)
    assert result.image_url == f"http://testserver/mock-storage/{settings.storage_bucket}/{result.path}"
    stored = await backend.download(settings.storage_bucket, result.path)
    assert stored.content == b"\x89PNG data"


async def test_bucket_creation_failure_is_reported(manager, backend, monkeypatch):
    async def failing_create_bucket(*args, **kwargs):
        return StorageResult(success=False, error_message="forbidden")

    monkeypatch.setattr(backend, "create_bucket", failing_create_bucket)
    result = await manager.upload_image("dosa.png", "image/png", b"data")

    assert not result.success
    assert not result.rejected
    assert result.error_message == "Failed to upload image. Please try again."


async def test_upload_is_retried_only_once(manager, backend, monkeypatch):
    attempts = []

    async def missing_bucket_upload(bucket, path, data, content_type):
        attempts.append(path)
        return StorageResult(success=False, error_message="Bucket not found", error_code="bucket_not_found")

    monkeypatch.setattr(backend, "upload", missing_bucket_upload)
    result = await manager.upload_image("dosa.png", "image/png", b"data")

    assert not result.success
    assert len(attempts) == 2
