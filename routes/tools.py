"""Stolen tool report endpoints: create, browse, edit, images and theft flag."""
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, MultipleFileField

from utils.access_policy import ORDERINGS, STATUS_FILTERS, AccessPolicy
from utils.errors import NotFoundError, ValidationError
from utils.image_utils import ALLOWED_IMAGE_EXTENSIONS, ImageUpload, read_image_uploads
from utils.tool_reports import AttachResult, ToolReportManager
from .auth import commit_audit, form_errors, request_payload

tools_bp = Blueprint("tools", __name__, url_prefix="/tools")


class ToolImagesForm(FlaskForm):
    images = MultipleFileField(
        "Photos (jpg, png, webp, gif)",
        validators=[FileAllowed(sorted(ALLOWED_IMAGE_EXTENSIONS), "Images only")],
    )


def _manager() -> ToolReportManager:
    return current_app.extensions["tool_reports"]


def _policy() -> AccessPolicy:
    return current_app.extensions["access_policy"]


def _uploaded_images() -> list[ImageUpload]:
    if not request.files:
        return []
    form = ToolImagesForm()
    if not form.validate():
        raise ValidationError(form_errors(form))
    return read_image_uploads(form.images.data or [])


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _attach_payload(result: AttachResult) -> dict:
    return {
        "attached": [img.payload() for img in result.attached],
        "failures": [failure.payload() for failure in result.failures],
        "primary_image_url": result.primary_image_url,
        "partial": result.partial,
    }


def _report_or_404(report_id: str):
    report = _manager().get_report(report_id)
    if report is None:
        raise NotFoundError("Tool report not found")
    return report


@tools_bp.route("", methods=["GET"])
@login_required
def list_tools():
    order = request.args.get("order", "newest")
    status_filter = request.args.get("status", "all")
    if order not in ORDERINGS:
        order = "newest"
    if status_filter not in STATUS_FILTERS:
        status_filter = "all"

    policy = _policy()
    reports = policy.visible_reports(current_user, order=order, search=request.args.get("q"), status_filter=status_filter)
    return jsonify(
        {
            "tools": [policy.serialize(report, current_user) for report in reports],
            "count": len(reports),
            "order": order,
            "status": status_filter,
        }
    )


@tools_bp.route("", methods=["POST"])
@login_required
def create_tool():
    manager = _manager()
    uploads = _uploaded_images()
    # Size problems reject the request before anything is written.
    manager.check_image_sizes(uploads)

    report_id = manager.create_report(request_payload(), current_user.id, current_user.email)
    commit_audit("TOOL_REPORTED", current_user, context=f"report:{report_id}")

    body = {"id": report_id}
    if uploads:
        result = manager.attach_images(report_id, uploads, current_user.id)
        commit_audit("TOOL_IMAGES_ATTACHED", current_user, context=f"report:{report_id}")
        body["images"] = _attach_payload(result)
        if result.partial:
            current_app.logger.warning(
                "Tool report saved with image failures",
                extra={"report_id": report_id, "failed": len(result.failures)},
            )

    report = manager.get_report(report_id)
    body["tool"] = _policy().serialize(report, current_user, images=manager.list_images(report_id))
    return jsonify(body), 201


@tools_bp.route("/<string:report_id>", methods=["GET"])
@login_required
def view_tool(report_id):
    report = _report_or_404(report_id)
    images = _manager().list_images(report.id)
    return jsonify({"tool": _policy().serialize(report, current_user, images=images)})


@tools_bp.route("/<string:report_id>", methods=["PUT"])
@login_required
def update_tool(report_id):
    manager = _manager()
    report = manager.update_report(report_id, request_payload(), current_user.id)
    commit_audit("TOOL_UPDATED", current_user, context=f"report:{report.id}")
    return jsonify({"tool": _policy().serialize(report, current_user, images=manager.list_images(report.id))})


@tools_bp.route("/<string:report_id>", methods=["DELETE"])
@login_required
def delete_tool(report_id):
    removed = _manager().delete_report(report_id, current_user.id)
    commit_audit("TOOL_DELETED", current_user, context=f"report:{report_id}")
    return jsonify({"deleted": report_id, "images_removed": removed})


@tools_bp.route("/<string:report_id>/stolen", methods=["POST"])
@login_required
def toggle_stolen(report_id):
    payload = request_payload()
    if "stolen" in payload:
        stolen = _as_bool(payload.get("stolen"))
    else:
        stolen = not _report_or_404(report_id).is_stolen

    report = _manager().set_stolen_status(report_id, stolen, current_user.email)
    commit_audit("TOOL_STATUS_CHANGED", current_user, context=f"report:{report.id}")
    message = "Tool marked as stolen" if report.is_stolen else "Tool unmarked as stolen"
    return jsonify({"message": message, "tool": _policy().serialize(report, current_user)})


@tools_bp.route("/<string:report_id>/images", methods=["POST"])
@login_required
def attach_tool_images(report_id):
    uploads = _uploaded_images()
    if not uploads:
        raise ValidationError({"images": "Select at least one image"})

    result = _manager().attach_images(report_id, uploads, current_user.id)
    commit_audit("TOOL_IMAGES_ATTACHED", current_user, context=f"report:{report_id}")
    # Every file failed: nothing was attached, report the storage side as the cause.
    status_code = 201 if result.attached else 502
    return jsonify(_attach_payload(result)), status_code


@tools_bp.route("/<string:report_id>/images/<string:image_id>/primary", methods=["POST"])
@login_required
def set_primary_image(report_id, image_id):
    image = _manager().set_primary_image(report_id, image_id, current_user.id)
    commit_audit("TOOL_PRIMARY_IMAGE_SET", current_user, context=f"report:{report_id}")
    return jsonify({"image": image.payload(), "img_url": image.image_url})


@tools_bp.route("/<string:report_id>/images/<string:image_id>", methods=["DELETE"])
@login_required
def remove_tool_image(report_id, image_id):
    removal = _manager().remove_image(report_id, image_id, current_user.id)
    commit_audit("TOOL_IMAGE_REMOVED", current_user, context=f"report:{report_id}")
    return jsonify(
        {
            "removed": removal.image_id,
            "was_primary": removal.was_primary,
            "storage_error": str(removal.storage_error) if removal.storage_error else None,
        }
    )
