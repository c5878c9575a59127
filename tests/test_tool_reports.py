import pytest

import utils.tool_reports as tool_reports
from conftest import MemoryStorage, image_bytes, png_upload
from models import ToolImage, ToolReport
from utils.errors import AuthorizationError, NotFoundError, PersistenceError, StorageError, ValidationError
from utils.image_utils import ImageUpload
from utils.tool_reports import ToolReportManager


@pytest.fixture
def owner(make_user):
    return make_user("u1@example.com")


@pytest.fixture
def stranger(make_user):
    return make_user("u2@example.com")


@pytest.fixture
def report_id(manager, owner, report_fields):
    return manager.create_report(report_fields, owner.id, owner.email)


def _images(session, report_id):
    return session.query(ToolImage).filter_by(report_tool_id=report_id).order_by(ToolImage.position).all()


def test_create_report_persists_unset_status(manager, session, owner, report_fields):
    report_id = manager.create_report(report_fields, owner.id, "U1@Example.com")

    report = session.get(ToolReport, report_id)
    assert report.status is None
    assert report.created_at is not None
    assert report.updated_at == report.created_at
    assert report.email == "u1@example.com"
    assert report.serial_number == "SN123"
    assert report.owner_name == "U One"


@pytest.mark.parametrize("missing", ["make", "model", "serialNumber", "ownerName", "ownerPhone"])
def test_create_report_requires_every_field(manager, session, owner, report_fields, missing):
    report_fields[missing] = "  "
    with pytest.raises(ValidationError) as excinfo:
        manager.create_report(report_fields, owner.id, owner.email)

    assert len(excinfo.value.errors) == 1
    assert session.query(ToolReport).count() == 0


def test_create_report_keeps_optional_fields(manager, session, owner, report_fields):
    report_fields.update({"policeFileNumber": "CPS-22-1", "description": "Yellow case"})
    report = session.get(ToolReport, manager.create_report(report_fields, owner.id, owner.email))
    assert report.police_file == "CPS-22-1"
    assert report.description == "Yellow case"


def test_first_attached_image_becomes_primary(manager, session, owner, report_id):
    result = manager.attach_images(report_id, [png_upload("a.png"), png_upload("b.png")], owner.id)

    assert [img.is_primary for img in result.attached] == [True, False]
    assert not result.partial
    report = session.get(ToolReport, report_id)
    assert report.img_url == result.attached[0].image_url
    assert [img.position for img in _images(session, report_id)] == [0, 1]


def test_later_batches_keep_existing_primary(manager, session, owner, report_id):
    first = manager.attach_images(report_id, [png_upload("a.png")], owner.id)
    second = manager.attach_images(report_id, [png_upload("b.png")], owner.id)

    assert second.attached[0].is_primary is False
    assert second.primary_image_url is None
    assert session.get(ToolReport, report_id).img_url == first.attached[0].image_url


def test_attach_reports_partial_failure(session, owner, report_fields, clock):
    storage = MemoryStorage(fail_on=("broken",))
    manager = ToolReportManager(session, storage, clock=clock)
    report_id = manager.create_report(report_fields, owner.id, owner.email)

    result = manager.attach_images(
        report_id, [png_upload("broken.png"), png_upload("good.png"), png_upload("other.png")], owner.id
    )

    assert result.partial
    assert [f.filename for f in result.failures] == ["broken.png"]
    assert isinstance(result.failures[0].error, StorageError)
    assert result.failures[0].payload()["type"] == "StorageError"
    # first successful upload is the primary one
    assert [img.is_primary for img in result.attached] == [True, False]
    assert len(_images(session, report_id)) == 2


def test_failed_record_insert_leaves_orphaned_object(manager, session, storage, owner, report_fields, monkeypatch):
    other_id = manager.create_report(report_fields, owner.id, owner.email)
    manager.attach_images(other_id, [png_upload("x.png")], owner.id)
    taken = _images(session, other_id)[0].file_name

    report_id = manager.create_report(report_fields, owner.id, owner.email)
    names = iter(["fresh.png", taken])
    monkeypatch.setattr(tool_reports, "build_object_name", lambda *args: next(names))

    result = manager.attach_images(report_id, [png_upload("one.png"), png_upload("two.png", color="green")], owner.id)

    assert [img.file_name for img in result.attached] == ["fresh.png"]
    assert isinstance(result.failures[0].error, PersistenceError)
    assert [img.file_name for img in _images(session, report_id)] == ["fresh.png"]
    assert ("tools", "fresh.png") in storage.objects
    # the second upload replaced the stored bytes even though its record was never written
    assert storage.objects[("tools", taken)] == image_bytes(color="green")


def test_oversized_image_rejects_whole_batch(session, storage, owner, report_fields, clock):
    manager = ToolReportManager(session, storage, max_image_bytes=1024, clock=clock)
    report_id = manager.create_report(report_fields, owner.id, owner.email)
    big = ImageUpload(filename="big.png", data=b"x" * 2048, content_type="image/png")

    with pytest.raises(ValidationError) as excinfo:
        manager.attach_images(report_id, [png_upload("ok.png"), big], owner.id)

    assert "big.png" in excinfo.value.errors["images"]
    assert storage.objects == {}
    assert _images(session, report_id) == []


def test_attach_requires_ownership(manager, owner, stranger, report_id, storage):
    with pytest.raises(AuthorizationError):
        manager.attach_images(report_id, [png_upload()], stranger.id)
    assert storage.objects == {}


def test_attach_to_missing_report(manager, owner):
    with pytest.raises(NotFoundError):
        manager.attach_images("no-such-report", [png_upload()], owner.id)


def test_set_primary_image_leaves_exactly_one(manager, session, owner, report_id):
    result = manager.attach_images(report_id, [png_upload("a.png"), png_upload("b.png")], owner.id)
    img_b = result.attached[1]

    manager.set_primary_image(report_id, img_b.id, owner.id)

    primaries = [img for img in _images(session, report_id) if img.is_primary]
    assert [img.id for img in primaries] == [img_b.id]
    assert session.get(ToolReport, report_id).img_url == img_b.image_url


def test_set_primary_image_checks_owner_and_image(manager, owner, stranger, report_id):
    result = manager.attach_images(report_id, [png_upload()], owner.id)
    with pytest.raises(AuthorizationError):
        manager.set_primary_image(report_id, result.attached[0].id, stranger.id)
    with pytest.raises(NotFoundError):
        manager.set_primary_image(report_id, "missing", owner.id)


def test_remove_primary_image_does_not_reassign(manager, session, storage, owner, report_id):
    result = manager.attach_images(report_id, [png_upload("a.png"), png_upload("b.png")], owner.id)
    primary = result.attached[0]

    removal = manager.remove_image(report_id, primary.id, owner.id)

    assert removal.was_primary
    assert removal.storage_error is None
    remaining = _images(session, report_id)
    assert [img.is_primary for img in remaining] == [False]
    assert session.get(ToolReport, report_id).img_url is None
    assert ("tools", removal.file_name) not in storage.objects


def test_remove_image_survives_storage_failure(manager, session, storage, owner, report_id):
    image = manager.attach_images(report_id, [png_upload()], owner.id).attached[0]
    storage.fail_delete = True

    removal = manager.remove_image(report_id, image.id, owner.id)

    assert isinstance(removal.storage_error, StorageError)
    assert _images(session, report_id) == []


def test_update_report_merges_and_revalidates(manager, session, owner, report_id, clock):
    before = session.get(ToolReport, report_id)
    created_at = before.created_at

    report = manager.update_report(report_id, {"model": "DCD1000", "caseStatus": "investigating"}, owner.id)

    assert report.model == "DCD1000"
    assert report.make == "DeWalt"
    assert report.case_status == "investigating"
    assert report.created_at == created_at
    assert report.updated_at > created_at

    with pytest.raises(ValidationError) as excinfo:
        manager.update_report(report_id, {"make": "", "status": "lost"}, owner.id)
    assert excinfo.value.errors == {"make": "Make is required", "status": "Invalid status"}


def test_update_report_cannot_move_ownership(manager, session, owner, stranger, report_id):
    manager.update_report(report_id, {"user_id": stranger.id, "email": stranger.email}, owner.id)
    report = session.get(ToolReport, report_id)
    assert report.user_id == owner.id
    assert report.email == owner.email


def test_update_report_by_non_owner(manager, stranger, report_id):
    with pytest.raises(AuthorizationError):
        manager.update_report(report_id, {"model": "X"}, stranger.id)


def test_delete_report_removes_records_and_objects(manager, session, storage, owner, report_id):
    manager.attach_images(report_id, [png_upload("a.png"), png_upload("b.png")], owner.id)
    names = [img.file_name for img in _images(session, report_id)]

    assert manager.delete_report(report_id, owner.id) == 2

    assert storage.delete_calls == [names]
    assert storage.objects == {}
    assert session.query(ToolImage).filter_by(report_tool_id=report_id).count() == 0
    assert session.get(ToolReport, report_id) is None


def test_delete_report_keeps_records_when_storage_fails(manager, session, storage, owner, report_id):
    manager.attach_images(report_id, [png_upload()], owner.id)
    storage.fail_delete = True

    with pytest.raises(StorageError):
        manager.delete_report(report_id, owner.id)

    assert session.get(ToolReport, report_id) is not None
    assert len(_images(session, report_id)) == 1


def test_delete_report_without_images(manager, session, storage, owner, report_id):
    assert manager.delete_report(report_id, owner.id) == 0
    assert storage.delete_calls == []
    assert session.get(ToolReport, report_id) is None


def test_set_stolen_status_toggles_for_owner_email(manager, owner, report_id):
    report = manager.set_stolen_status(report_id, True, "U1@EXAMPLE.COM")
    assert report.status == "stolen"

    report = manager.set_stolen_status(report_id, False, owner.email)
    assert report.status is None


def test_set_stolen_status_rejects_other_callers(manager, stranger, report_id):
    with pytest.raises(AuthorizationError):
        manager.set_stolen_status(report_id, True, stranger.email)


def test_set_stolen_status_leaves_case_statuses_alone(manager, session, owner, report_id):
    manager.update_report(report_id, {"status": "recovered"}, owner.id)
    with pytest.raises(ValidationError):
        manager.set_stolen_status(report_id, True, owner.email)
    assert session.get(ToolReport, report_id).status == "recovered"
