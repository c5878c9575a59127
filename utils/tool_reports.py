"""Stolen tool report lifecycle: records, images, primary image bookkeeping.

``ToolReportManager`` owns every write to ``report_tools`` and
``report_tool_images``. It is constructed once by the application factory with
the database session and object storage it should use.

No compensating transactions are attempted. An object uploaded for an image
whose record insert fails stays in storage, and a report whose record delete
fails after storage cleanup keeps image records that point at removed objects.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from models import CASE_STATUSES, REPORT_STATUSES, TOGGLEABLE_STATUSES, ToolImage, ToolReport, generate_uuid
from utils.errors import AuthorizationError, NotFoundError, PersistenceError, StorageError, ToolIndexError, ValidationError
from utils.form_state import TOOL_REPORT_FIELDS
from utils.image_utils import DEFAULT_MAX_IMAGE_BYTES, ImageUpload, build_object_name, size_limit_label
from utils.object_storage import ObjectStorage
from utils.validators import canonical_field, validate_form

OPTIONAL_FIELDS: tuple[str, ...] = ("police_file", "description")
EDITABLE_FIELDS: tuple[str, ...] = TOOL_REPORT_FIELDS + OPTIONAL_FIELDS + ("status", "case_status")

REPORT_FIELD_ALIASES: dict[str, str] = {
    "policeFileNumber": "police_file",
    "police_file_number": "police_file",
    "caseStatus": "case_status",
}


@dataclass
class AttachFailure:
    filename: str
    error: ToolIndexError

    def payload(self) -> dict:
        return {"filename": self.filename, "type": type(self.error).__name__, "error": str(self.error)}


@dataclass
class AttachResult:
    attached: List[ToolImage] = field(default_factory=list)
    failures: List[AttachFailure] = field(default_factory=list)
    primary_image_url: Optional[str] = None

    @property
    def partial(self) -> bool:
        return bool(self.failures)


@dataclass
class ImageRemoval:
    image_id: str
    file_name: str
    was_primary: bool
    storage_error: Optional[StorageError] = None


def normalize_report_fields(fields: Mapping[str, object]) -> dict:
    """Map client field names onto column names and strip text values."""
    normalized: dict = {}
    for key, value in (fields or {}).items():
        name = REPORT_FIELD_ALIASES.get(key) or canonical_field(key)
        if name not in EDITABLE_FIELDS:
            continue
        normalized[name] = value.strip() if isinstance(value, str) else value
    return normalized


class ToolReportManager:
    def __init__(
        self,
        session,
        storage: ObjectStorage,
        bucket: str = "tools",
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
        clock: Callable[[], datetime] = datetime.utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.session = session
        self.storage = storage
        self.bucket = bucket
        self.max_image_bytes = max_image_bytes
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    # Reads

    def get_report(self, report_id) -> Optional[ToolReport]:
        if not report_id:
            return None
        return self.session.get(ToolReport, str(report_id))

    def list_images(self, report_id) -> List[ToolImage]:
        return (
            self.session.query(ToolImage)
            .filter(ToolImage.report_tool_id == str(report_id))
            .order_by(ToolImage.position, ToolImage.id)
            .all()
        )

    # Helpers

    def _owned_report(self, report_id, caller_account_id) -> ToolReport:
        report = self.get_report(report_id)
        if report is None:
            raise NotFoundError("Tool report not found")
        if not caller_account_id or report.user_id != str(caller_account_id):
            self.logger.warning(
                "Tool report ownership check failed",
                extra={"report_id": report.id, "caller_id": caller_account_id},
            )
            raise AuthorizationError("You do not have permission to modify this tool")
        return report

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            self.logger.exception("Database error while trying to %s", action)
            raise PersistenceError(f"Could not {action}") from exc

    # Writes

    def create_report(self, fields: Mapping[str, object], caller_account_id, caller_email: str) -> str:
        values = normalize_report_fields(fields)
        errors = validate_form(TOOL_REPORT_FIELDS, values)
        if errors:
            raise ValidationError(errors)
        if not caller_account_id or not caller_email:
            raise AuthorizationError("Sign in to report a tool")

        now = self.clock()
        report = ToolReport(
            id=generate_uuid(),
            user_id=str(caller_account_id),
            make=values["make"],
            model=values["model"],
            serial_number=values["serial_number"],
            police_file=values.get("police_file") or None,
            description=values.get("description") or None,
            owner_name=values["owner_name"],
            owner_phone=values["owner_phone"],
            email=caller_email.strip().lower(),
            status=None,
            created_at=now,
            updated_at=now,
        )
        self.session.add(report)
        self._commit("save tool report")
        self.logger.info("Tool report created", extra={"report_id": report.id, "user_id": report.user_id})
        return report.id

    def check_image_sizes(self, uploads: Iterable[ImageUpload]) -> None:
        """Reject the whole batch when any file is over the size limit."""
        oversized = [upload.filename for upload in uploads if upload.size > self.max_image_bytes]
        if oversized:
            raise ValidationError(
                {"images": f"Image size must be less than {size_limit_label(self.max_image_bytes)}: {', '.join(oversized)}"}
            )

    def attach_images(self, report_id, files: Iterable[ImageUpload], caller_account_id) -> AttachResult:
        report = self._owned_report(report_id, caller_account_id)
        uploads = list(files)
        self.check_image_sizes(uploads)

        existing = self.list_images(report.id)
        has_primary = any(img.is_primary for img in existing)
        next_position = max((img.position for img in existing), default=-1) + 1
        result = AttachResult()

        for upload in uploads:
            object_name = build_object_name(report.id, upload.filename, self.clock())
            try:
                image_url = self.storage.put(self.bucket, object_name, upload.data)
            except StorageError as exc:
                self.logger.warning(
                    "Image upload failed",
                    extra={"report_id": report.id, "upload_name": upload.filename, "error": str(exc)},
                )
                result.failures.append(AttachFailure(upload.filename, exc))
                continue

            image = ToolImage(
                id=generate_uuid(),
                report_tool_id=report.id,
                file_name=object_name,
                image_url=image_url,
                is_primary=not has_primary,
                position=next_position,
                created_at=self.clock(),
            )
            self.session.add(image)
            try:
                self._commit("save image record")
            except PersistenceError as exc:
                # The stored object is left behind; there is no rollback of storage.
                result.failures.append(AttachFailure(upload.filename, exc))
                continue

            next_position += 1
            result.attached.append(image)
            if image.is_primary:
                has_primary = True
                result.primary_image_url = image_url

        if result.primary_image_url:
            report.img_url = result.primary_image_url
            report.updated_at = self.clock()
            self._commit("update primary image")

        self.logger.info(
            "Images attached",
            extra={"report_id": report.id, "attached": len(result.attached), "failed": len(result.failures)},
        )
        return result

    def set_primary_image(self, report_id, image_id, caller_account_id) -> ToolImage:
        report = self._owned_report(report_id, caller_account_id)
        images = self.list_images(report.id)
        target = next((img for img in images if img.id == str(image_id)), None)
        if target is None:
            raise NotFoundError("Image not found for this tool")

        for img in images:
            img.is_primary = img.id == target.id
        report.img_url = target.image_url
        report.updated_at = self.clock()
        self._commit("set primary image")
        return target

    def remove_image(self, report_id, image_id, caller_account_id) -> ImageRemoval:
        report = self._owned_report(report_id, caller_account_id)
        image = (
            self.session.query(ToolImage)
            .filter(ToolImage.id == str(image_id), ToolImage.report_tool_id == report.id)
            .first()
        )
        if image is None:
            raise NotFoundError("Image not found for this tool")

        removal = ImageRemoval(image_id=image.id, file_name=image.file_name, was_primary=bool(image.is_primary))
        try:
            self.storage.delete(self.bucket, [image.file_name])
        except StorageError as exc:
            self.logger.warning(
                "Storage delete failed; removing image record anyway",
                extra={"report_id": report.id, "object": image.file_name},
            )
            removal.storage_error = exc

        # No automatic reassignment of the primary image.
        if removal.was_primary and report.img_url == image.image_url:
            report.img_url = None
        self.session.delete(image)
        report.updated_at = self.clock()
        self._commit("delete image record")
        return removal

    def update_report(self, report_id, fields: Mapping[str, object], caller_account_id) -> ToolReport:
        report = self._owned_report(report_id, caller_account_id)
        values = normalize_report_fields(fields)

        merged = {name: values.get(name, getattr(report, name)) for name in TOOL_REPORT_FIELDS}
        errors = validate_form(TOOL_REPORT_FIELDS, merged)
        status = values.get("status") or None
        if "status" in values and status is not None and status not in REPORT_STATUSES:
            errors["status"] = "Invalid status"
        case_status = values.get("case_status") or None
        if "case_status" in values and case_status is not None and case_status not in CASE_STATUSES:
            errors["case_status"] = "Invalid case status"
        if errors:
            raise ValidationError(errors)

        for name in TOOL_REPORT_FIELDS:
            setattr(report, name, merged[name])
        for name in OPTIONAL_FIELDS:
            if name in values:
                setattr(report, name, values[name] or None)
        if "status" in values:
            report.status = status
        if "case_status" in values:
            report.case_status = case_status
        report.updated_at = self.clock()
        self._commit("update tool report")
        return report

    def delete_report(self, report_id, caller_account_id) -> int:
        """Delete a report and its images. Returns the number of images removed."""
        report = self._owned_report(report_id, caller_account_id)
        images = self.list_images(report.id)
        names = [img.file_name for img in images]

        if names:
            try:
                self.storage.delete(self.bucket, names)
            except StorageError:
                self.logger.error(
                    "Storage cleanup failed; tool report kept so the delete can be retried",
                    extra={"report_id": report.id, "objects": len(names)},
                )
                raise

        try:
            self.session.query(ToolImage).filter(ToolImage.report_tool_id == report.id).delete()
            self.session.query(ToolReport).filter(ToolReport.id == report.id).delete()
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            self.logger.exception("Database error while deleting tool report", extra={"report_id": report.id})
            raise PersistenceError("Could not delete tool report") from exc

        self.logger.info("Tool report deleted", extra={"report_id": report.id, "images": len(names)})
        return len(names)

    def set_stolen_status(self, report_id, stolen: bool, caller_email: str) -> ToolReport:
        report = self.get_report(report_id)
        if report is None:
            raise NotFoundError("Tool report not found")
        if not caller_email or (report.email or "").lower() != caller_email.strip().lower():
            raise AuthorizationError("Only the owner can change the stolen status of this tool")
        if report.status not in TOGGLEABLE_STATUSES:
            raise ValidationError({"status": f"A {report.status} report cannot be toggled between stolen and unset"})

        new_status = "stolen" if stolen else None
        if report.status != new_status:
            report.status = new_status
            report.updated_at = self.clock()
            self._commit("update stolen status")
        return report
