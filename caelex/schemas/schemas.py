from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..constants import (
    CORRESPONDENCE_DIRECTIONS,
    CORRESPONDENCE_MESSAGE_TYPES,
    DEADLINE_PRIORITIES,
    NCA_AUTHORITY_INFO,
    NCA_SUBMISSION_STATUSES,
    ORGANIZATION_PLANS,
    SUBMISSION_METHOD_LABELS,
    SUBMISSION_PRIORITIES,
)
from ..utils.dates import parse_datetime, utcnow
from ..utils.json_fields import safe_json_parse_array

UtcDatetime = Annotated[datetime, BeforeValidator(parse_datetime)]


def _stored_list(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return safe_json_parse_array(value)
    return value


StoredList = Annotated[List[Any], BeforeValidator(_stored_list)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _require_text(value: str) -> str:
    if value is None or not value.strip():
        raise ValueError("must not be empty")
    return value.strip()


def _choice(value: Optional[str], choices, label: str) -> Optional[str]:
    if value is None:
        return value
    normalized = value.upper()
    if normalized not in choices:
        raise ValueError(f"Invalid {label}: {value}")
    return normalized


class Page(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


# --- Deadlines ---


class DeadlineCreate(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: UtcDatetime
    category: str = "REGULATORY"
    priority: str = "MEDIUM"
    module_source: Optional[str] = None
    regulatory_ref: Optional[str] = None
    reminder_days: Optional[List[int]] = None

    @field_validator("priority")
    @classmethod
    def _priority(cls, value: str) -> str:
        return _choice(value, DEADLINE_PRIORITIES, "priority")


class DeadlineExtendRequest(CamelModel):
    new_due_date: UtcDatetime
    reason: str = Field(max_length=2000)
    approved_by: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def _reason_not_blank(cls, value: str) -> str:
        return _require_text(value)


class DeadlineRead(CamelModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    due_date: UtcDatetime
    category: str
    priority: str
    status: str
    module_source: Optional[str] = None
    regulatory_ref: Optional[str] = None
    reminder_days: List[int] = []
    original_due_date: Optional[UtcDatetime] = None
    extension_reason: Optional[str] = None
    extension_approved_by: Optional[str] = None
    extended_at: Optional[UtcDatetime] = None
    completed_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_overdue(self) -> bool:
        if self.status in ("COMPLETED", "CANCELLED"):
            return False
        return self.due_date < utcnow()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def effective_status(self) -> str:
        return "OVERDUE" if self.is_overdue else self.status


class DeadlineExtendResponse(CamelModel):
    success: bool = True
    deadline: DeadlineRead


class DeadlineList(Page):
    deadlines: List[DeadlineRead]


# --- Supervision reports ---


class SupervisionReportRead(CamelModel):
    id: str
    supervision_id: str
    incident_id: Optional[str] = None
    report_type: str
    title: Optional[str] = None
    status: str
    generated_at: Optional[UtcDatetime] = None
    generated_by: Optional[str] = None
    due_date: Optional[UtcDatetime] = None
    submitted_at: Optional[UtcDatetime] = None
    nca_reference_number: Optional[str] = None
    file_key: Optional[str] = None
    report_metadata: Optional[Dict[str, Any]] = Field(default=None, serialization_alias="metadata")
    created_at: UtcDatetime


class SupervisionReportList(Page):
    reports: List[SupervisionReportRead]


class SupervisionReportSummary(CamelModel):
    total: int
    by_type: Dict[str, int]
    by_status: Dict[str, int]
    pending_submission: int


# --- NCA submissions ---


class NCASubmitRequest(CamelModel):
    report_id: str
    nca_authority: str
    submission_method: str
    cover_letter: Optional[str] = Field(default=None, max_length=20000)
    attachments: Optional[List[Dict[str, Any]]] = None
    priority: str = "NORMAL"
    sla_deadline: Optional[UtcDatetime] = None

    @field_validator("nca_authority")
    @classmethod
    def _authority(cls, value: str) -> str:
        return _choice(value, NCA_AUTHORITY_INFO, "NCA authority")

    @field_validator("submission_method")
    @classmethod
    def _method(cls, value: str) -> str:
        return _choice(value, SUBMISSION_METHOD_LABELS, "submission method")

    @field_validator("priority")
    @classmethod
    def _priority(cls, value: str) -> str:
        return _choice(value, SUBMISSION_PRIORITIES, "priority")


class NCAStatusUpdate(CamelModel):
    status: str
    notes: Optional[str] = None
    nca_reference: Optional[str] = None
    response_notes: Optional[str] = None
    follow_up_required: Optional[bool] = None
    follow_up_deadline: Optional[UtcDatetime] = None
    follow_up_notes: Optional[str] = None
    rejection_reason: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _status(cls, value: str) -> str:
        return _choice(value, NCA_SUBMISSION_STATUSES, "status")


class NCAAcknowledgeRequest(CamelModel):
    nca_reference: str
    notes: Optional[str] = None

    @field_validator("nca_reference")
    @classmethod
    def _reference(cls, value: str) -> str:
        return _require_text(value)


class NCAResendRequest(CamelModel):
    cover_letter: Optional[str] = None
    submission_method: Optional[str] = None
    additional_attachments: Optional[List[Dict[str, Any]]] = None

    @field_validator("submission_method")
    @classmethod
    def _method(cls, value: Optional[str]) -> Optional[str]:
        return _choice(value, SUBMISSION_METHOD_LABELS, "submission method")


class NCAPriorityUpdate(CamelModel):
    priority: str

    @field_validator("priority")
    @classmethod
    def _priority(cls, value: str) -> str:
        return _choice(value, SUBMISSION_PRIORITIES, "priority")


class NCASubmissionRead(CamelModel):
    id: str
    user_id: str
    report_id: str
    nca_authority: str
    nca_authority_name: Optional[str] = None
    nca_authority_label: str
    nca_authority_country: str
    nca_portal_url: Optional[str] = None
    submission_method: str
    submission_method_label: str
    status: str
    status_label: str
    status_color: str
    priority: str
    submitted_at: UtcDatetime
    submitted_by: Optional[str] = None
    cover_letter: Optional[str] = None
    attachments: List[Any] = []
    status_history: List[Any] = []
    nca_reference: Optional[str] = None
    response_notes: Optional[str] = None
    follow_up_required: bool = False
    follow_up_deadline: Optional[UtcDatetime] = None
    follow_up_notes: Optional[str] = None
    acknowledged_at: Optional[UtcDatetime] = None
    acknowledged_by: Optional[str] = None
    rejected_at: Optional[UtcDatetime] = None
    rejection_reason: Optional[str] = None
    sla_deadline: Optional[UtcDatetime] = None
    original_submission_id: Optional[str] = None
    resend_count: int = 0
    created_at: UtcDatetime
    updated_at: UtcDatetime


class NCASubmissionStats(CamelModel):
    total: int
    by_status: Dict[str, int]
    by_authority: Dict[str, int]
    pending_follow_ups: int
    recent_submissions: int


class NCASubmissionList(Page):
    submissions: List[NCASubmissionRead]
    stats: Optional[NCASubmissionStats] = None


# --- NCA correspondence ---


class CorrespondenceCreate(CamelModel):
    direction: str
    message_type: str
    subject: str = Field(min_length=1, max_length=500)
    content: str = Field(min_length=1)
    requires_response: bool = False
    response_deadline: Optional[UtcDatetime] = None

    @field_validator("direction")
    @classmethod
    def _direction(cls, value: str) -> str:
        return _choice(value, CORRESPONDENCE_DIRECTIONS, "direction")

    @field_validator("message_type")
    @classmethod
    def _message_type(cls, value: str) -> str:
        return _choice(value, CORRESPONDENCE_MESSAGE_TYPES, "message type")


class CorrespondenceRead(CamelModel):
    id: str
    submission_id: str
    direction: str
    message_type: str
    subject: str
    content: str
    sent_by: Optional[str] = None
    is_read: bool
    read_at: Optional[UtcDatetime] = None
    requires_response: bool
    response_deadline: Optional[UtcDatetime] = None
    responded_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_overdue(self) -> bool:
        if not self.requires_response or self.responded_at is not None or self.response_deadline is None:
            return False
        return self.response_deadline < utcnow()


# --- Organizations ---


class OrganizationCreate(CamelModel):
    name: str = Field(min_length=2, max_length=100)
    slug: Optional[str] = Field(default=None, pattern=r"^[a-z0-9-]+$", max_length=50)


class OrganizationRead(CamelModel):
    id: str
    name: str
    slug: str
    plan: str
    max_users: int
    is_active: bool
    created_at: UtcDatetime


class OrganizationWithRole(OrganizationRead):
    role: str


class AdminOrganizationUpdate(CamelModel):
    plan: Optional[str] = None
    is_active: Optional[bool] = None
    max_users: Optional[int] = Field(default=None, ge=-1)

    @field_validator("plan")
    @classmethod
    def _plan(cls, value: Optional[str]) -> Optional[str]:
        return _choice(value, ORGANIZATION_PLANS, "plan")


class MemberRoleUpdate(CamelModel):
    role: str = Field(min_length=1)


class MemberAdd(CamelModel):
    user_id: str
    role: str = "MEMBER"


class MemberRead(CamelModel):
    id: str
    user_id: str
    role: str


class MemberDetail(MemberRead):
    permissions: List[str] = []
    invited_by: Optional[str] = None
    joined_at: UtcDatetime
    email: Optional[str] = None
    name: Optional[str] = None


class MemberRoleResponse(CamelModel):
    member: MemberRead
    message: str


class InvitationCreate(CamelModel):
    email: EmailStr
    role: str = "MEMBER"


class InvitationRead(CamelModel):
    id: str
    organization_id: str
    email: str
    role: str
    invited_by: Optional[str] = None
    expires_at: UtcDatetime
    accepted_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime


class InvitationCreated(InvitationRead):
    token: str
    invite_url: str


# --- Notifications ---


class NotificationRead(CamelModel):
    id: str
    user_id: str
    organization_id: Optional[str] = None
    type: str
    title: str
    message: str
    action_url: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    severity: str
    read: bool
    read_at: Optional[UtcDatetime] = None
    dismissed: bool
    created_at: UtcDatetime


class NotificationList(Page):
    notifications: List[NotificationRead]
    unread_count: int


class MarkReadRequest(CamelModel):
    notification_ids: Optional[List[str]] = Field(default=None, min_length=1, max_length=100)
    all: Optional[bool] = None

    @model_validator(mode="after")
    def _ids_or_all(self) -> "MarkReadRequest":
        if not self.notification_ids and not self.all:
            raise ValueError("Provide notificationIds or all=true")
        return self


class CountResponse(CamelModel):
    success: bool = True
    count: int


class CategoryPreference(CamelModel):
    email: bool = True
    push: bool = True


class NotificationPreferencesRead(CamelModel):
    email_enabled: bool
    push_enabled: bool
    categories: Dict[str, CategoryPreference] = {}
    quiet_hours_enabled: bool
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None
    quiet_hours_timezone: Optional[str] = None
    digest_enabled: bool
    digest_frequency: Optional[str] = None

    @field_validator("categories", mode="before")
    @classmethod
    def _default_categories(cls, value: Any) -> Any:
        return value or {}


class NotificationPreferencesUpdate(CamelModel):
    email_enabled: Optional[bool] = None
    push_enabled: Optional[bool] = None
    categories: Optional[Dict[str, CategoryPreference]] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    quiet_hours_end: Optional[str] = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    quiet_hours_timezone: Optional[str] = None
    digest_enabled: Optional[bool] = None
    digest_frequency: Optional[Literal["daily", "weekly"]] = None


# --- Audit ---


class AuditLogRead(CamelModel):
    id: str
    timestamp: UtcDatetime
    user_id: Optional[str] = None
    action: str
    entity_type: str
    entity_id: str
    previous_value: Any = None
    new_value: Any = None
    description: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditLogList(Page):
    entries: List[AuditLogRead]


class AuditSummaryResponse(CamelModel):
    summary: Dict[str, Any]
    filter_options: Dict[str, Any]


# --- Supplier portal ---


class SupplierRequestCreate(CamelModel):
    supplier_name: str = Field(min_length=1, max_length=200)
    supplier_email: Optional[EmailStr] = None
    component_type: str = Field(min_length=1)
    data_required: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    deadline: Optional[UtcDatetime] = None
    assessment_id: Optional[str] = None


class SupplierRequestRead(CamelModel):
    id: str
    supplier_name: str
    supplier_email: Optional[str] = None
    component_type: str
    data_required: StoredList = []
    notes: Optional[str] = None
    deadline: Optional[UtcDatetime] = None
    status: str
    sent_at: Optional[UtcDatetime] = None
    received_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime


class PortalTokenIssued(CamelModel):
    token: str
    portal_url: str
    expires_at: UtcDatetime


class SupplierTokenRevoke(CamelModel):
    reason: Optional[str] = None


class SupplierDataSubmit(CamelModel):
    response_data: Dict[str, Any]


class OutreachStatus(CamelModel):
    total: int
    pending: int
    sent: int
    received: int
    overdue: int
    requests: List[Dict[str, Any]] = []
