"""Which tool reports, and which of their fields, a caller may see.

Government accounts see every report with full owner contact. Everyone else
sees the reports whose denormalized owner email matches their own; contact
fields are redacted for any other viewer.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, or_

from models import ToolImage, ToolReport, User
from utils.errors import AuthorizationError

ORDERINGS: tuple[str, ...] = ("newest", "oldest", "make")
STATUS_FILTERS: tuple[str, ...] = ("all", "stolen", "reported")


def _email(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class AccessPolicy:
    def __init__(self, session) -> None:
        self.session = session

    @staticmethod
    def is_government(caller) -> bool:
        return bool(caller is not None and getattr(caller, "account_type", None) == "government")

    @staticmethod
    def is_owner(caller, report: ToolReport) -> bool:
        if caller is None or report is None:
            return False
        return bool(_email(getattr(caller, "email", None)) and _email(caller.email) == _email(report.email))

    def can_view_contact(self, caller, report: ToolReport) -> bool:
        return self.is_government(caller) or self.is_owner(caller, report)

    def _scoped_query(self, caller):
        query = self.session.query(ToolReport)
        if self.is_government(caller):
            return query
        email = _email(getattr(caller, "email", None))
        if not email:
            return query.filter(ToolReport.id.is_(None))
        return query.filter(func.lower(ToolReport.email) == email)

    def visible_reports(
        self,
        caller,
        order: str = "newest",
        search: Optional[str] = None,
        status_filter: str = "all",
    ) -> List[ToolReport]:
        query = self._scoped_query(caller)

        term = (search or "").strip().lower()
        if term:
            query = query.filter(
                or_(
                    func.lower(ToolReport.make).contains(term, autoescape=True),
                    func.lower(ToolReport.model).contains(term, autoescape=True),
                    func.lower(ToolReport.serial_number).contains(term, autoescape=True),
                    func.lower(ToolReport.police_file).contains(term, autoescape=True),
                )
            )

        if status_filter == "stolen":
            query = query.filter(ToolReport.status == "stolen")
        elif status_filter == "reported":
            query = query.filter(ToolReport.status.is_(None))

        if order == "oldest":
            query = query.order_by(ToolReport.created_at.asc(), ToolReport.id.asc())
        elif order == "make":
            query = query.order_by(func.lower(ToolReport.make).asc(), ToolReport.id.asc())
        else:
            query = query.order_by(ToolReport.created_at.desc(), ToolReport.id.desc())
        return query.all()

    def serialize(self, report: ToolReport, caller, images: Optional[Iterable[ToolImage]] = None) -> dict:
        payload = {
            "id": report.id,
            "user_id": report.user_id,
            "make": report.make,
            "model": report.model,
            "serial_number": report.serial_number,
            "police_file": report.police_file,
            "description": report.description,
            "status": report.status,
            "case_status": report.case_status,
            "img_url": report.img_url,
            "created_at": _isoformat(report.created_at),
            "updated_at": _isoformat(report.updated_at),
        }
        if self.can_view_contact(caller, report):
            payload.update(report.contact_payload())
        else:
            payload.update({"owner_name": None, "owner_phone": None, "owner_email": None})
        payload["is_owner"] = self.is_owner(caller, report)

        if images is not None:
            image_list = list(images)
            payload["images"] = [img.payload() for img in image_list]
            primary = next((img for img in image_list if img.is_primary), None) or (image_list[0] if image_list else None)
            payload["primary_image_url"] = primary.image_url if primary else None
        return payload

    def dashboard_stats(self, caller, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        reports = self._scoped_query(caller).all()
        return {
            "total_tools": len(reports),
            "stolen_tools": sum(1 for r in reports if r.status == "stolen"),
            "reported_this_month": sum(
                1 for r in reports if r.created_at and r.created_at.year == now.year and r.created_at.month == now.month
            ),
            "recovered_tools": sum(1 for r in reports if "recovered" in (r.status, r.case_status)),
        }

    def admin_overview(self, caller, recent_limit: int = 10) -> dict:
        if not self.is_government(caller):
            raise AuthorizationError("This section is only accessible to government agency accounts.")

        recent_reports = (
            self.session.query(ToolReport)
            .order_by(ToolReport.created_at.desc(), ToolReport.id.desc())
            .limit(recent_limit)
            .all()
        )
        recent_users = (
            self.session.query(User)
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(recent_limit)
            .all()
        )
        return {
            "total_users": self.session.query(func.count(User.id)).scalar() or 0,
            "government_users": self.session.query(func.count(User.id)).filter(User.account_type == "government").scalar() or 0,
            "total_tools": self.session.query(func.count(ToolReport.id)).scalar() or 0,
            "stolen_tools": self.session.query(func.count(ToolReport.id)).filter(ToolReport.status == "stolen").scalar() or 0,
            "recent_tools": [self.serialize(r, caller, images=r.images) for r in recent_reports],
            "recent_users": [u.profile_payload() for u in recent_users],
        }
