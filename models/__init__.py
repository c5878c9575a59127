"""Data models for accounts, audit trails, and stolen tool reports."""
import uuid
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


ACCOUNT_TYPES: tuple[str, ...] = (
	"owner",
	"business",
	"government",
)

# Theft flag. NULL means newly reported with no theft flag set.
REPORT_STATUSES: tuple[str, ...] = (
	"stolen",
	"investigating",
	"recovered",
	"closed",
)

TOGGLEABLE_STATUSES: tuple[str | None, ...] = (None, "stolen")

# Case vocabulary used by the edit form, kept beside the theft flag.
CASE_STATUSES: tuple[str, ...] = (
	"reported",
	"investigating",
	"recovered",
	"closed",
)


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	password_hash = db.Column(db.String(255), nullable=False)
	full_name = db.Column(db.String(150), nullable=False)
	phone = db.Column(db.String(20), nullable=False)
	address = db.Column(db.String(255), nullable=False)
	city = db.Column(db.String(120), nullable=False)
	province = db.Column(db.String(120), nullable=False)
	postal_code = db.Column(db.String(10), nullable=False)
	account_type = db.Column(db.String(20), nullable=False, default="owner", index=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	last_login_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint("account_type IN ('owner','business','government')", name="ck_users_account_type"),
	)

	audit_logs = db.relationship("AuditLog", back_populates="user", lazy="dynamic")
	reset_tokens = db.relationship("PasswordResetToken", back_populates="user", lazy="dynamic")
	tool_reports = db.relationship("ToolReport", back_populates="user", lazy="dynamic")

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def is_government(self) -> bool:
		return self.account_type == "government"

	@property
	def active(self) -> bool:  # Flask-Login compatibility alias
		return self.is_active

	def profile_payload(self) -> dict:
		return {
			"id": self.id,
			"email": self.email,
			"full_name": self.full_name,
			"phone": self.phone,
			"address": self.address,
			"city": self.city,
			"province": self.province,
			"postal_code": self.postal_code,
			"account_type": self.account_type,
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}


class AuditLog(db.Model):
	__tablename__ = "audit_logs"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	action_type = db.Column(db.String(50), nullable=False)
	ip_address = db.Column(db.String(64), nullable=True)
	user_agent = db.Column(db.String(255), nullable=True)
	context_entity = db.Column(db.String(120), nullable=True)
	timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="audit_logs")


class PasswordResetToken(db.Model):
	__tablename__ = "password_reset_tokens"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
	token_hash = db.Column(db.String(128), nullable=False, unique=True, index=True)
	expires_at = db.Column(db.DateTime, nullable=False)
	consumed_at = db.Column(db.DateTime, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	user = db.relationship("User", back_populates="reset_tokens")

	@property
	def is_expired(self) -> bool:
		return datetime.utcnow() > self.expires_at

	@property
	def is_used(self) -> bool:
		return self.consumed_at is not None


class ToolReport(db.Model):
	__tablename__ = "report_tools"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	make = db.Column(db.String(120), nullable=False, index=True)
	model = db.Column(db.String(120), nullable=False)
	serial_number = db.Column(db.String(120), nullable=False, index=True)
	police_file = db.Column(db.String(120), nullable=True)
	description = db.Column(db.Text, nullable=True)
	# Owner contact is a snapshot taken at creation, not a join to users.
	owner_name = db.Column(db.String(150), nullable=False)
	owner_phone = db.Column(db.String(20), nullable=False)
	email = db.Column(db.String(255), nullable=False, index=True)
	status = db.Column(db.String(20), nullable=True, index=True)
	case_status = db.Column(db.String(20), nullable=True)
	img_url = db.Column(db.String(1024), nullable=True)
	created_at = db.Column(db.DateTime, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, nullable=False)

	__table_args__ = (
		db.CheckConstraint(
			"status IS NULL OR status IN ('stolen','investigating','recovered','closed')",
			name="ck_report_tools_status",
		),
		db.CheckConstraint(
			"case_status IS NULL OR case_status IN ('reported','investigating','recovered','closed')",
			name="ck_report_tools_case_status",
		),
	)

	user = db.relationship("User", back_populates="tool_reports")
	images = db.relationship(
		"ToolImage",
		back_populates="report",
		order_by="ToolImage.position",
		lazy="select",
		passive_deletes=True,
	)

	@property
	def owner_email(self) -> str:
		return self.email

	@property
	def is_stolen(self) -> bool:
		return self.status == "stolen"

	def contact_payload(self) -> dict:
		return {
			"owner_name": self.owner_name,
			"owner_phone": self.owner_phone,
			"owner_email": self.email,
		}


class ToolImage(db.Model):
	__tablename__ = "report_tool_images"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	report_tool_id = db.Column(db.String(36), db.ForeignKey("report_tools.id"), nullable=False, index=True)
	file_name = db.Column(db.String(512), nullable=False, unique=True)
	image_url = db.Column(db.String(1024), nullable=False)
	is_primary = db.Column(db.Boolean, default=False, nullable=False)
	position = db.Column(db.Integer, nullable=False, default=0)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	report = db.relationship("ToolReport", back_populates="images")

	def payload(self) -> dict:
		return {
			"id": self.id,
			"report_tool_id": self.report_tool_id,
			"file_name": self.file_name,
			"image_url": self.image_url,
			"is_primary": bool(self.is_primary),
			"position": self.position,
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}
