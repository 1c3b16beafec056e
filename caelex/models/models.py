import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base
from ..constants import DEFAULT_REMINDER_DAYS
from ..utils.dates import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Local mirror of an identity issued by the external auth provider."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    role = Column(String, default="user", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    deadlines = orm_relationship("Deadline", back_populates="user")
    memberships = orm_relationship("OrganizationMember", back_populates="user")
    notifications = orm_relationship("Notification", back_populates="user")
    audit_logs = orm_relationship("AuditLog", back_populates="user")


class Deadline(Base):
    __tablename__ = "deadlines"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=False, index=True)
    category = Column(String, nullable=False, default="REGULATORY")
    priority = Column(String, nullable=False, default="MEDIUM")
    status = Column(String, nullable=False, default="UPCOMING", index=True)
    module_source = Column(String, nullable=True)
    regulatory_ref = Column(String, nullable=True)
    reminder_days = Column(JSON, nullable=False, default=lambda: list(DEFAULT_REMINDER_DAYS))
    original_due_date = Column(DateTime(timezone=True), nullable=True)
    extension_reason = Column(Text, nullable=True)
    extension_approved_by = Column(String, nullable=True)
    extended_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = orm_relationship("User", back_populates="deadlines")


class SupervisionConfig(Base):
    __tablename__ = "supervision_configs"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    primary_nca = Column(String, nullable=True)
    designated_contact_name = Column(String, nullable=True)
    designated_contact_email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    reports = orm_relationship("SupervisionReport", back_populates="supervision", cascade="all, delete-orphan")


class SupervisionReport(Base):
    __tablename__ = "supervision_reports"

    id = Column(String, primary_key=True, default=new_id)
    supervision_id = Column(String, ForeignKey("supervision_configs.id", ondelete="CASCADE"), nullable=False, index=True)
    incident_id = Column(String, nullable=True)
    report_type = Column(String, nullable=False)
    title = Column(String, nullable=True)
    status = Column(String, nullable=False, default="draft")
    generated_at = Column(DateTime(timezone=True), nullable=True)
    generated_by = Column(String, nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    nca_reference_number = Column(String, nullable=True)
    file_key = Column(String, nullable=True)
    report_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    supervision = orm_relationship("SupervisionConfig", back_populates="reports")
    submissions = orm_relationship("NCASubmission", back_populates="report")


class NCASubmission(Base):
    __tablename__ = "nca_submissions"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    report_id = Column(String, ForeignKey("supervision_reports.id"), nullable=False, index=True)
    nca_authority = Column(String, nullable=False)
    nca_authority_name = Column(String, nullable=True)
    nca_portal_url = Column(String, nullable=True)
    submission_method = Column(String, nullable=False)
    status = Column(String, nullable=False, default="DRAFT", index=True)
    priority = Column(String, nullable=False, default="NORMAL")
    submitted_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    submitted_by = Column(String, nullable=True)
    cover_letter = Column(Text, nullable=True)
    # Encoded JSON, decoded on read
    attachments = Column(Text, nullable=True)
    status_history = Column(Text, nullable=True)
    nca_reference = Column(String, nullable=True)
    response_notes = Column(Text, nullable=True)
    follow_up_required = Column(Boolean, default=False, nullable=False)
    follow_up_deadline = Column(DateTime(timezone=True), nullable=True)
    follow_up_notes = Column(Text, nullable=True)
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    acknowledged_by = Column(String, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    sla_deadline = Column(DateTime(timezone=True), nullable=True)
    original_submission_id = Column(String, ForeignKey("nca_submissions.id"), nullable=True)
    resend_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    report = orm_relationship("SupervisionReport", back_populates="submissions")
    correspondence = orm_relationship(
        "NCACorrespondence",
        back_populates="submission",
        order_by="NCACorrespondence.created_at",
    )


class NCACorrespondence(Base):
    __tablename__ = "nca_correspondence"

    id = Column(String, primary_key=True, default=new_id)
    submission_id = Column(String, ForeignKey("nca_submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    direction = Column(String, nullable=False)
    message_type = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    sent_by = Column(String, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    requires_response = Column(Boolean, default=False, nullable=False)
    response_deadline = Column(DateTime(timezone=True), nullable=True)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    submission = orm_relationship("NCASubmission", back_populates="correspondence")


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    plan = Column(String, nullable=False, default="FREE")
    max_users = Column(Integer, nullable=False, default=3)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    members = orm_relationship("OrganizationMember", back_populates="organization", cascade="all, delete-orphan")
    invitations = orm_relationship(
        "OrganizationInvitation",
        back_populates="organization",
        cascade="all, delete-orphan",
    )


class OrganizationMember(Base):
    __tablename__ = "organization_members"
    __table_args__ = (UniqueConstraint("organization_id", "user_id", name="uq_org_member"),)

    id = Column(String, primary_key=True, default=new_id)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False, default="MEMBER")
    permissions = Column(JSON, nullable=False, default=list)
    invited_by = Column(String, nullable=True)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    organization = orm_relationship("Organization", back_populates="members")
    user = orm_relationship("User", back_populates="memberships")


class OrganizationInvitation(Base):
    __tablename__ = "organization_invitations"

    id = Column(String, primary_key=True, default=new_id)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False, default="MEMBER")
    token = Column(String, unique=True, nullable=False, index=True)
    invited_by = Column(String, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    organization = orm_relationship("Organization", back_populates="invitations")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    action_url = Column(String, nullable=True)
    entity_type = Column(String, nullable=True)
    entity_id = Column(String, nullable=True)
    severity = Column(String, nullable=False, default="INFO")
    read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    dismissed = Column(Boolean, default=False, nullable=False)
    email_sent = Column(Boolean, default=False, nullable=False)
    email_sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    user = orm_relationship("User", back_populates="notifications")


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    email_enabled = Column(Boolean, default=True, nullable=False)
    push_enabled = Column(Boolean, default=True, nullable=False)
    # {category: {"email": bool, "push": bool}}
    categories = Column(JSON, nullable=True)
    quiet_hours_enabled = Column(Boolean, default=False, nullable=False)
    quiet_hours_start = Column(String, nullable=True)
    quiet_hours_end = Column(String, nullable=True)
    quiet_hours_timezone = Column(String, nullable=True)
    digest_enabled = Column(Boolean, default=False, nullable=False)
    digest_frequency = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=new_id)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    action = Column(String, nullable=False, index=True)
    entity_type = Column(String, nullable=False, index=True)
    entity_id = Column(String, nullable=False)
    previous_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)

    user = orm_relationship("User", back_populates="audit_logs")


class SupplierDataRequest(Base):
    __tablename__ = "supplier_data_requests"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assessment_id = Column(String, nullable=True)
    supplier_name = Column(String, nullable=False)
    supplier_email = Column(String, nullable=True)
    component_type = Column(String, nullable=False)
    data_required = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=True)
    status = Column(String, nullable=False, default="pending")
    sent_at = Column(DateTime(timezone=True), nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=True)
    response_data = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    tokens = orm_relationship("SupplierPortalToken", back_populates="request", cascade="all, delete-orphan")


class SupplierPortalToken(Base):
    __tablename__ = "supplier_portal_tokens"

    id = Column(String, primary_key=True, default=new_id)
    token = Column(String, unique=True, nullable=False, index=True)
    request_id = Column(String, ForeignKey("supplier_data_requests.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_by = Column(String, nullable=True)
    revoke_reason = Column(String, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    access_count = Column(Integer, default=0, nullable=False)
    last_accessed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    request = orm_relationship("SupplierDataRequest", back_populates="tokens")
