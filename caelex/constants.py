DEADLINE_STATUSES = [
    "UPCOMING",
    "DUE_SOON",
    "OVERDUE",
    "EXTENDED",
    "COMPLETED",
    "CANCELLED",
]

DEADLINE_PRIORITIES = ["LOW", "MEDIUM", "HIGH", "CRITICAL"]

DEFAULT_REMINDER_DAYS = [30, 14, 7, 3, 1]

# --- NCA submissions ---

NCA_SUBMISSION_STATUSES = [
    "DRAFT",
    "SUBMITTED",
    "RECEIVED",
    "UNDER_REVIEW",
    "INFORMATION_REQUESTED",
    "ACKNOWLEDGED",
    "APPROVED",
    "REJECTED",
    "WITHDRAWN",
]

NCA_TERMINAL_STATUSES = {"APPROVED", "REJECTED", "WITHDRAWN"}

NCA_STATUS_LABELS = {
    "DRAFT": "Draft",
    "SUBMITTED": "Submitted",
    "RECEIVED": "Received",
    "UNDER_REVIEW": "Under Review",
    "INFORMATION_REQUESTED": "Information Requested",
    "ACKNOWLEDGED": "Acknowledged",
    "APPROVED": "Approved",
    "REJECTED": "Rejected",
    "WITHDRAWN": "Withdrawn",
}

NCA_STATUS_COLORS = {
    "DRAFT": "gray",
    "SUBMITTED": "blue",
    "RECEIVED": "cyan",
    "UNDER_REVIEW": "yellow",
    "INFORMATION_REQUESTED": "orange",
    "ACKNOWLEDGED": "green",
    "APPROVED": "green",
    "REJECTED": "red",
    "WITHDRAWN": "gray",
}

SUBMISSION_METHOD_LABELS = {
    "PORTAL": "Online Portal",
    "EMAIL": "Email",
    "API": "API Integration",
    "REGISTERED_MAIL": "Registered Mail",
    "IN_PERSON": "In Person",
}

SUBMISSION_PRIORITIES = ["LOW", "NORMAL", "HIGH", "URGENT"]

# Report states that may be filed with an authority
SUBMITTABLE_REPORT_STATUSES = {"generated", "ready"}

NCA_AUTHORITY_INFO = {
    "DE_BMWK": {
        "name": "Federal Ministry for Economic Affairs and Climate Action",
        "country": "Germany",
        "portal_url": "https://www.bmwk.de",
    },
    "DE_DLR": {
        "name": "German Aerospace Center (DLR)",
        "country": "Germany",
        "portal_url": "https://www.dlr.de",
    },
    "FR_CNES": {
        "name": "Centre National d'Études Spatiales",
        "country": "France",
        "portal_url": "https://cnes.fr",
    },
    "FR_DGAC": {
        "name": "Direction Générale de l'Aviation Civile",
        "country": "France",
        "portal_url": "https://www.ecologie.gouv.fr/direction-generale-laviation-civile-dgac",
    },
    "IT_ASI": {
        "name": "Agenzia Spaziale Italiana",
        "country": "Italy",
        "portal_url": "https://www.asi.it",
    },
    "ES_AEE": {
        "name": "Agencia Espacial Española",
        "country": "Spain",
        "portal_url": "https://www.aee.gob.es",
    },
    "NL_NSO": {
        "name": "Netherlands Space Office",
        "country": "Netherlands",
        "portal_url": "https://www.spaceoffice.nl",
    },
    "BE_BELSPO": {
        "name": "Belgian Science Policy Office",
        "country": "Belgium",
        "portal_url": "https://www.belspo.be",
    },
    "AT_FFG": {
        "name": "Austrian Research Promotion Agency",
        "country": "Austria",
        "portal_url": "https://www.ffg.at",
    },
    "PL_POLSA": {
        "name": "Polish Space Agency",
        "country": "Poland",
        "portal_url": "https://polsa.gov.pl",
    },
    "SE_SNSA": {
        "name": "Swedish National Space Agency",
        "country": "Sweden",
        "portal_url": "https://www.rymdstyrelsen.se",
    },
    "DK_DTU": {
        "name": "DTU Space",
        "country": "Denmark",
        "portal_url": "https://www.space.dtu.dk",
    },
    "FI_BF": {
        "name": "Business Finland",
        "country": "Finland",
        "portal_url": "https://www.businessfinland.fi",
    },
    "PT_FCT": {
        "name": "Fundação para a Ciência e a Tecnologia",
        "country": "Portugal",
        "portal_url": "https://www.fct.pt",
    },
    "IE_EI": {
        "name": "Enterprise Ireland",
        "country": "Ireland",
        "portal_url": "https://www.enterprise-ireland.com",
    },
    "LU_LSA": {
        "name": "Luxembourg Space Agency",
        "country": "Luxembourg",
        "portal_url": "https://space-agency.public.lu",
    },
    "CZ_CSO": {
        "name": "Czech Space Office",
        "country": "Czech Republic",
        "portal_url": "https://www.czechspace.cz",
    },
    "RO_ROSA": {
        "name": "Romanian Space Agency",
        "country": "Romania",
        "portal_url": "https://www.rosa.ro",
    },
    "GR_HSA": {
        "name": "Hellenic Space Agency",
        "country": "Greece",
        "portal_url": "https://hsa.gr",
    },
    "EUSPA": {
        "name": "EU Agency for the Space Programme",
        "country": "EU",
        "portal_url": "https://www.euspa.europa.eu",
    },
    "EC_DEFIS": {
        "name": "European Commission DG DEFIS",
        "country": "EU",
        "portal_url": "https://defence-industry-space.ec.europa.eu",
    },
    "OTHER": {
        "name": "Other Authority",
        "country": "Other",
        "portal_url": None,
    },
}

CORRESPONDENCE_DIRECTIONS = ["INBOUND", "OUTBOUND"]
CORRESPONDENCE_MESSAGE_TYPES = ["EMAIL", "LETTER", "PORTAL_MSG", "PHONE_CALL", "MEETING_NOTE"]

# --- Organizations ---

ORGANIZATION_PLANS = ["FREE", "STARTER", "PROFESSIONAL", "ENTERPRISE"]

# -1 means unlimited
PLAN_MAX_USERS = {
    "FREE": 3,
    "STARTER": 10,
    "PROFESSIONAL": 50,
    "ENTERPRISE": -1,
}

# --- Supervision reports ---

SUPERVISION_REPORT_STATUSES = ["draft", "generated", "ready", "submitted", "acknowledged"]

# --- Supplier outreach ---

SUPPLIER_REQUEST_STATUSES = ["pending", "sent", "received"]

# --- Notifications ---

NOTIFICATION_SEVERITIES = ["INFO", "WARNING", "URGENT", "CRITICAL"]

NOTIFICATION_CATEGORIES = {
    "deadlines": "Deadlines",
    "compliance": "Compliance",
    "authorization": "Authorization",
    "incidents": "Incidents",
    "reports": "Reports",
    "team": "Team",
    "spacecraft": "Spacecraft",
    "system": "System",
    "nis2": "NIS2",
}

NOTIFICATION_CONFIG = {
    "DEADLINE_REMINDER": {"label": "Deadline Reminder", "category": "deadlines", "severity": "INFO", "email_prefix": "Reminder"},
    "DEADLINE_APPROACHING": {"label": "Deadline Approaching", "category": "deadlines", "severity": "WARNING", "email_prefix": "Action Required"},
    "DEADLINE_OVERDUE": {"label": "Deadline Overdue", "category": "deadlines", "severity": "URGENT", "email_prefix": "Overdue"},
    "DOCUMENT_EXPIRY": {"label": "Document Expiring", "category": "deadlines", "severity": "WARNING", "email_prefix": "Expiring"},
    "COMPLIANCE_GAP": {"label": "Compliance Gap", "category": "compliance", "severity": "WARNING", "email_prefix": "Compliance"},
    "COMPLIANCE_SCORE_DROPPED": {"label": "Compliance Score Dropped", "category": "compliance", "severity": "WARNING", "email_prefix": "Compliance"},
    "COMPLIANCE_ACTION_REQUIRED": {"label": "Action Required", "category": "compliance", "severity": "URGENT", "email_prefix": "Action Required"},
    "COMPLIANCE_UPDATED": {"label": "Compliance Updated", "category": "compliance", "severity": "INFO", "email_prefix": None},
    "AUTHORIZATION_UPDATE": {"label": "Authorization Update", "category": "authorization", "severity": "INFO", "email_prefix": "Authorization"},
    "WORKFLOW_STATUS_CHANGED": {"label": "Workflow Status Changed", "category": "authorization", "severity": "INFO", "email_prefix": None},
    "DOCUMENT_REQUIRED": {"label": "Document Required", "category": "authorization", "severity": "WARNING", "email_prefix": "Document Required"},
    "AUTHORIZATION_APPROVED": {"label": "Authorization Approved", "category": "authorization", "severity": "INFO", "email_prefix": "Approved"},
    "AUTHORIZATION_REJECTED": {"label": "Authorization Rejected", "category": "authorization", "severity": "WARNING", "email_prefix": "Rejected"},
    "INCIDENT_ALERT": {"label": "Incident Alert", "category": "incidents", "severity": "URGENT", "email_prefix": "Incident Alert"},
    "INCIDENT_CREATED": {"label": "Incident Created", "category": "incidents", "severity": "WARNING", "email_prefix": "Incident"},
    "INCIDENT_ESCALATED": {"label": "Incident Escalated", "category": "incidents", "severity": "CRITICAL", "email_prefix": "Escalated"},
    "INCIDENT_RESOLVED": {"label": "Incident Resolved", "category": "incidents", "severity": "INFO", "email_prefix": None},
    "NCA_DEADLINE_APPROACHING": {"label": "NCA Deadline Approaching", "category": "incidents", "severity": "URGENT", "email_prefix": "NCA Deadline"},
    "WEEKLY_DIGEST": {"label": "Weekly Digest", "category": "reports", "severity": "INFO", "email_prefix": "Weekly Digest"},
    "REPORT_GENERATED": {"label": "Report Generated", "category": "reports", "severity": "INFO", "email_prefix": None},
    "REPORT_SUBMITTED": {"label": "Report Submitted", "category": "reports", "severity": "INFO", "email_prefix": "Submitted"},
    "REPORT_FAILED": {"label": "Report Failed", "category": "reports", "severity": "WARNING", "email_prefix": "Report Failed"},
    "NCA_ACKNOWLEDGED": {"label": "NCA Acknowledged", "category": "reports", "severity": "INFO", "email_prefix": "Acknowledged"},
    "MEMBER_JOINED": {"label": "Member Joined", "category": "team", "severity": "INFO", "email_prefix": None},
    "MEMBER_LEFT": {"label": "Member Left", "category": "team", "severity": "INFO", "email_prefix": None},
    "MEMBER_ROLE_CHANGED": {"label": "Role Changed", "category": "team", "severity": "INFO", "email_prefix": "Role Changed"},
    "INVITATION_RECEIVED": {"label": "Invitation Received", "category": "team", "severity": "INFO", "email_prefix": "Invitation"},
    "SPACECRAFT_STATUS_CHANGED": {"label": "Spacecraft Status Changed", "category": "spacecraft", "severity": "INFO", "email_prefix": None},
    "SPACECRAFT_ADDED": {"label": "Spacecraft Added", "category": "spacecraft", "severity": "INFO", "email_prefix": None},
    "SYSTEM_UPDATE": {"label": "System Update", "category": "system", "severity": "INFO", "email_prefix": None},
    "SYSTEM_MAINTENANCE": {"label": "Scheduled Maintenance", "category": "system", "severity": "WARNING", "email_prefix": "Maintenance"},
    "NIS2_DEADLINE_APPROACHING": {"label": "NIS2 Deadline Approaching", "category": "nis2", "severity": "URGENT", "email_prefix": "NIS2 Deadline"},
    "NIS2_ASSESSMENT_UPDATED": {"label": "NIS2 Assessment Updated", "category": "nis2", "severity": "INFO", "email_prefix": None},
}

# --- Audit ---

AUDIT_EXPORT_HEADERS = [
    "Timestamp",
    "User",
    "Action",
    "Entity Type",
    "Entity ID",
    "Description",
    "Previous Value",
    "New Value",
]

AUDIT_MAX_PAGE_SIZE = 100
