"""
Payment QR Endpoints

Admins upload a QR image per canteen that customers scan to pay directly.
Only one QR per canteen is active; activating one deactivates the others.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.config import get_settings
from canteen.core.errors import APIError, BadRequestError, NotFoundError
from canteen.database import get_db
from canteen.deps import ensure_canteen_access, get_current_user, require_admin, scope_to_canteens
from canteen.models import PaymentQR, User
from canteen.schemas import PaymentQROut, envelope, serialize
from canteen.services.canteens import resolve_canteen
from canteen.services.storage import BaseImageStorage, StorageError, get_image_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment", tags=["Payment QR"])


async def _read_image(upload: UploadFile) -> bytes:
    if not (upload.content_type or "").startswith("image/"):
        raise BadRequestError("Only image files are allowed!")

    limit = get_settings().qr_max_upload_bytes
    content = await upload.read(limit + 1)
    if len(content) > limit:
        raise BadRequestError(f"Image too large (max {limit // (1024 * 1024)} MB)")
    if not content:
        raise BadRequestError("Image file is empty")
    return content


async def _store(storage: BaseImageStorage, upload: UploadFile):
    content = await _read_image(upload)
    try:
        return await storage.upload(content, upload.filename or "qr.png")
    except StorageError as e:
        raise APIError(f"Failed to upload QR image: {e}", status_code=502)


async def _deactivate_others(db: AsyncSession, canteen_id: str, keep_id: Optional[str] = None) -> None:
    query = update(PaymentQR).where(
        PaymentQR.canteen_id == canteen_id,
        PaymentQR.is_active.is_(True),
    )
    if keep_id:
        query = query.where(PaymentQR.id != keep_id)
    await db.execute(query.values(is_active=False))


async def _get_qr(db: AsyncSession, qr_id: str, admin: User) -> PaymentQR:
    qr = await db.get(PaymentQR, qr_id)
    if qr is None:
        raise NotFoundError("Payment QR not found")
    ensure_canteen_access(admin, qr.canteen_id)
    return qr


async def _reload(db: AsyncSession, qr_id: str) -> PaymentQR:
    result = await db.execute(
        select(PaymentQR)
        .where(PaymentQR.id == qr_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


@router.get("/canteen/{canteen_ref}", summary="Active payment QR of a canteen")
async def canteen_qr(
    canteen_ref: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    canteen = await resolve_canteen(db, canteen_ref)
    result = await db.execute(
        select(PaymentQR)
        .where(PaymentQR.canteen_id == canteen.id, PaymentQR.is_active.is_(True))
        .order_by(PaymentQR.created_at.desc())
        .limit(1)
    )
    qr = result.scalar_one_or_none()
    if qr is None:
        raise NotFoundError("Payment QR not found for this canteen")
    return envelope(payment_qr=serialize(PaymentQROut, qr))


@router.get("", summary="List payment QRs (admin)")
async def list_qrs(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict:
    query = scope_to_canteens(select(PaymentQR), PaymentQR.canteen_id, admin)
    result = await db.execute(query.order_by(PaymentQR.created_at.desc()))
    return envelope(payment_qrs=[serialize(PaymentQROut, qr) for qr in result.scalars().all()])


@router.post("/upload", status_code=201, summary="Upload a payment QR (admin)")
async def upload_qr(
    canteen_id: str = Form(...),
    qr_image: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    storage: BaseImageStorage = Depends(get_image_storage),
) -> dict:
    canteen = await resolve_canteen(db, canteen_id)
    ensure_canteen_access(admin, canteen.id)

    stored = await _store(storage, qr_image)
    await _deactivate_others(db, canteen.id)
    qr = PaymentQR(
        admin_id=admin.id,
        canteen_id=canteen.id,
        qr_code_url=stored.url,
        public_id=stored.public_id,
        is_active=True,
    )
    db.add(qr)
    await db.commit()

    logger.info(f"{admin.username} uploaded payment QR for {canteen.name}")
    qr = await _reload(db, qr.id)
    return envelope("Payment QR uploaded successfully", payment_qr=serialize(PaymentQROut, qr))


@router.put("/{qr_id}", summary="Replace image or set active flag (admin)")
async def update_qr(
    qr_id: str,
    qr_image: Optional[UploadFile] = File(None),
    is_active: Optional[bool] = Form(None),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    storage: BaseImageStorage = Depends(get_image_storage),
) -> dict:
    qr = await _get_qr(db, qr_id, admin)

    if qr_image is not None and qr_image.filename:
        stored = await _store(storage, qr_image)
        old_public_id = qr.public_id
        qr.qr_code_url = stored.url
        qr.public_id = stored.public_id
        try:
            await storage.delete(old_public_id)
        except StorageError as e:
            # the new image is already in place; the old one is only orphaned
            logger.warning(f"Could not delete replaced QR image {old_public_id}: {e}")

    if is_active is not None:
        if is_active:
            await _deactivate_others(db, qr.canteen_id, keep_id=qr.id)
        qr.is_active = is_active

    await db.commit()
    qr = await _reload(db, qr.id)
    return envelope("Payment QR updated successfully", payment_qr=serialize(PaymentQROut, qr))


@router.patch("/{qr_id}/toggle", summary="Toggle active flag (admin)")
async def toggle_qr(
    qr_id: str,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict:
    qr = await _get_qr(db, qr_id, admin)
    if not qr.is_active:
        await _deactivate_others(db, qr.canteen_id, keep_id=qr.id)
    qr.is_active = not qr.is_active
    await db.commit()

    state = "activated" if qr.is_active else "deactivated"
    qr = await _reload(db, qr.id)
    return envelope(f"Payment QR {state} successfully", payment_qr=serialize(PaymentQROut, qr))


@router.delete("/{qr_id}", summary="Delete payment QR (admin)")
async def delete_qr(
    qr_id: str,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    storage: BaseImageStorage = Depends(get_image_storage),
) -> dict:
    qr = await _get_qr(db, qr_id, admin)
    try:
        await storage.delete(qr.public_id)
    except StorageError as e:
        raise APIError(f"Failed to delete QR image: {e}", status_code=502)

    await db.delete(qr)
    await db.commit()
    logger.info(f"{admin.username} deleted payment QR {qr_id}")
    return envelope("Payment QR deleted successfully")
