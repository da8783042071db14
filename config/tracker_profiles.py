"""
Tracker Profiles.

A profile is the complete configuration of one tracker instantiation: the
sheet it writes to, the status vocabulary and rank table, which statuses
may override forward progress, the Gmail labels it consumes and the
instructions handed to the extractor.

Two profiles ship with the project:
- applications: job application updates (company / job title)
- proposals: grant proposal updates (funder / proposal title)

A YAML file can override parts of the selected profile (see load_profile).
"""
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

import yaml

from config import parsing_patterns as patterns

logger = logging.getLogger(__name__)

MANUAL_REVIEW_NEEDED = "Manual Review Needed"

# Extractor answers that mean "could not tell"
UNRESOLVED_VALUES = {"", "n/a", "na", "none", "null", "unknown", MANUAL_REVIEW_NEEDED.lower()}

# Logical row fields; profiles map each to a sheet header
FIELD_PROCESSED_AT = "processed_at"
FIELD_EMAIL_DATE = "email_date"
FIELD_PLATFORM = "platform"
FIELD_PRIMARY = "primary"
FIELD_SECONDARY = "secondary"
FIELD_STATUS = "status"
FIELD_PEAK_STATUS = "peak_status"
FIELD_LAST_UPDATE = "last_update"
FIELD_SUBJECT = "subject"
FIELD_PERMALINK = "permalink"
FIELD_MESSAGE_ID = "message_id"
FIELD_THREAD_ID = "thread_id"
FIELD_NOTES = "notes"


@dataclass(frozen=True)
class LabelNames:
    """Gmail labels that drive one tracker."""
    to_process: str
    processed: str
    manual_review: str


@dataclass(frozen=True)
class ResponseFields:
    """JSON keys the extractor must return."""
    primary: str
    secondary: str
    status: str

    def required(self) -> tuple[str, str, str]:
        return (self.primary, self.secondary, self.status)


@dataclass(frozen=True)
class TrackerProfile:
    """Configuration for one tracker instantiation."""
    name: str
    display_name: str
    sheet_tab: str
    headers: tuple[str, ...]
    columns: dict[str, str]  # logical field -> header name
    status_ranks: dict[str, float]
    default_status: str
    override_statuses: frozenset[str]
    stale_exempt_statuses: frozenset[str]
    stale_status: str
    stale_weeks: int
    labels: LabelNames
    response_fields: ResponseFields
    extractor_instruction: str
    status_keywords: tuple[tuple[str, tuple[str, ...]], ...]
    subject_patterns: tuple[dict, ...] = ()
    body_company_patterns: tuple[str, ...] = ()
    body_title_patterns: tuple[str, ...] = ()
    status_aliases: dict[str, str] = field(default_factory=dict)
    manual_review_status: str = MANUAL_REVIEW_NEEDED

    def rank(self, status: Optional[str]) -> float:
        """
        Rank of a status in the progression order.

        Statuses outside the vocabulary rank 0 ("no progress").
        """
        if not status:
            return 0
        status = str(status).strip()
        if status in self.status_ranks:
            return self.status_ranks[status]
        canonical = self.canonical_status(status)
        if canonical is None:
            return 0
        return self.status_ranks[canonical]

    def canonical_status(self, value: Optional[str]) -> Optional[str]:
        """
        Map a free-form status onto the vocabulary.

        Matches vocabulary entries and aliases case-insensitively.

        Returns:
            Vocabulary status, or None if the value is unknown or unresolved
        """
        if value is None:
            return None
        cleaned = str(value).strip()
        if cleaned.lower() in UNRESOLVED_VALUES:
            return None
        for status in self.status_ranks:
            if status.lower() == cleaned.lower():
                return status
        for alias, status in self.status_aliases.items():
            if alias.lower() == cleaned.lower():
                return status
        return None

    def has_column(self, field_name: str) -> bool:
        return field_name in self.columns


APPLICATION_STATUS_RANKS = {
    "Applied": 1,
    "Screening": 2,
    "Assessment": 3,
    "Interviewing": 4,
    "Interview 1": 4.1,
    "Interview 2": 4.2,
    "Interview 3+": 4.3,
    "Final Interview": 4.5,
    "Offer": 5,
    "Accepted Offer": 6,
    "Keep In View": 0.5,
    "Application Viewed": 1.5,
    "Rejected": 0,
    "Withdrawn": -1,
    MANUAL_REVIEW_NEEDED: -2,
}

APPLICATION_INSTRUCTION = """
You are an expert assistant helping a user parse job application emails.
Your goal is to extract ONLY the Company Name, Job Title, and Application Status.
- For Company Name: Extract the specific name of the company the user applied to. If not found, output "N/A".
- For Job Title: Extract the specific job title. If not found, output "N/A".
- For Application Status: Determine the current status. Examples: "Applied", "Application Viewed", "Screening", "Assessment", "Interview Scheduled", "Offer Extended", "Rejected". If no clear status, output "Update/Other".
Do not add any extra words, explanations, or formatting. Output ONLY a valid JSON object with keys "company", "title", and "status".
Example: {"company": "Google", "title": "Software Engineer", "status": "Interview Scheduled"}
If the email is clearly not a job application update (e.g., a newsletter, a job alert, a marketing email), output: {"company": "N/A", "title": "N/A", "status": "Not an Application"}
If the email implies the application was received but no other status, use "Applied".
"""

APPLICATIONS = TrackerProfile(
    name="applications",
    display_name="Application Tracker",
    sheet_tab="Applications",
    headers=(
        "Processed Timestamp", "Email Date", "Platform", "Company", "Job Title",
        "Status", "Peak Status", "Last Update Date", "Email Subject",
        "Email Link", "Email ID", "Thread ID", "Notes",
    ),
    columns={
        FIELD_PROCESSED_AT: "Processed Timestamp",
        FIELD_EMAIL_DATE: "Email Date",
        FIELD_PLATFORM: "Platform",
        FIELD_PRIMARY: "Company",
        FIELD_SECONDARY: "Job Title",
        FIELD_STATUS: "Status",
        FIELD_PEAK_STATUS: "Peak Status",
        FIELD_LAST_UPDATE: "Last Update Date",
        FIELD_SUBJECT: "Email Subject",
        FIELD_PERMALINK: "Email Link",
        FIELD_MESSAGE_ID: "Email ID",
        FIELD_THREAD_ID: "Thread ID",
        FIELD_NOTES: "Notes",
    },
    status_ranks=APPLICATION_STATUS_RANKS,
    default_status="Applied",
    override_statuses=frozenset({"Rejected", "Offer", "Accepted Offer"}),
    stale_exempt_statuses=frozenset({
        "Rejected", "Offer", "Withdrawn", "Accepted Offer", MANUAL_REVIEW_NEEDED,
    }),
    stale_status="Rejected",
    stale_weeks=8,
    labels=LabelNames(
        to_process="MailTracker/Applications/To Process",
        processed="MailTracker/Applications/Processed",
        manual_review="MailTracker/Applications/Manual Review",
    ),
    response_fields=ResponseFields(primary="company", secondary="title", status="status"),
    extractor_instruction=APPLICATION_INSTRUCTION,
    status_keywords=(
        ("Offer", tuple(patterns.OFFER_KEYWORDS)),
        ("Interviewing", tuple(patterns.INTERVIEW_KEYWORDS)),
        ("Assessment", tuple(patterns.ASSESSMENT_KEYWORDS)),
        ("Application Viewed", tuple(patterns.APPLICATION_VIEWED_KEYWORDS)),
        ("Rejected", tuple(patterns.REJECTION_KEYWORDS)),
    ),
    subject_patterns=tuple(patterns.APPLICATION_SUBJECT_PATTERNS),
    body_company_patterns=tuple(patterns.APPLICATION_BODY_COMPANY_PATTERNS),
    body_title_patterns=tuple(patterns.APPLICATION_BODY_TITLE_PATTERNS),
    status_aliases={
        "Interview Scheduled": "Interviewing",
        "Interview": "Interviewing",
        "Offer Extended": "Offer",
        "Job Offer": "Offer",
        "Application Received": "Applied",
        "Declined": "Rejected",
        "Not Selected": "Rejected",
    },
)

PROPOSAL_STATUS_RANKS = {
    "Drafting": 1,
    "Submitted": 2,
    "Under Review": 3,
    "Awarded": 5,
    "Declined": 0,
    "Withdrawn": -1,
    MANUAL_REVIEW_NEEDED: -2,
}

PROPOSAL_INSTRUCTION = """
You are an expert assistant parsing emails related to grant proposals for a non-profit.
Your goal is to extract the Funder Name, RFP Title, and Submission Status.
- For "funderName": Extract the name of the funding organization or foundation. If not found, output "N/A".
- For "proposalTitle": Extract the specific title of the grant or RFP. If not found, output "N/A".
- For "submissionStatus": Determine the status. You MUST choose ONLY from this list: "Submitted", "Under Review", "Awarded", "Declined". If unclear, output "Under Review".
Output ONLY a valid JSON object with keys "funderName", "proposalTitle", and "submissionStatus".
Example: {"funderName": "The Civic Progress Foundation", "proposalTitle": "Youth Arts & STEM Initiative", "submissionStatus": "Under Review"}
If the email is clearly not a grant proposal update, output: {"funderName": "N/A", "proposalTitle": "N/A", "submissionStatus": "Not a Proposal Update"}
"""

PROPOSALS = TrackerProfile(
    name="proposals",
    display_name="Proposal Tracker",
    sheet_tab="Proposals",
    headers=(
        "Processed Timestamp", "Submission Date", "Funder", "RFP Title", "Status",
        "Peak Status", "Last Update", "Amount Requested", "Amount Awarded",
        "Source Email", "Email Link", "Email ID", "Thread ID", "Notes",
    ),
    columns={
        FIELD_PROCESSED_AT: "Processed Timestamp",
        FIELD_EMAIL_DATE: "Submission Date",
        FIELD_PRIMARY: "Funder",
        FIELD_SECONDARY: "RFP Title",
        FIELD_STATUS: "Status",
        FIELD_PEAK_STATUS: "Peak Status",
        FIELD_LAST_UPDATE: "Last Update",
        FIELD_SUBJECT: "Source Email",
        FIELD_PERMALINK: "Email Link",
        FIELD_MESSAGE_ID: "Email ID",
        FIELD_THREAD_ID: "Thread ID",
        FIELD_NOTES: "Notes",
    },
    status_ranks=PROPOSAL_STATUS_RANKS,
    default_status="Submitted",
    override_statuses=frozenset({"Declined", "Awarded"}),
    stale_exempt_statuses=frozenset({"Awarded", "Declined", "Withdrawn", MANUAL_REVIEW_NEEDED}),
    stale_status="Declined",
    stale_weeks=35,  # grant cycles are long
    labels=LabelNames(
        to_process="MailTracker/Proposals/To Process",
        processed="MailTracker/Proposals/Processed",
        manual_review="MailTracker/Proposals/Manual Review",
    ),
    response_fields=ResponseFields(
        primary="funderName", secondary="proposalTitle", status="submissionStatus",
    ),
    extractor_instruction=PROPOSAL_INSTRUCTION,
    status_keywords=(
        ("Awarded", tuple(patterns.AWARDED_KEYWORDS)),
        ("Under Review", tuple(patterns.UNDER_REVIEW_KEYWORDS)),
        ("Declined", tuple(patterns.DECLINED_KEYWORDS)),
    ),
    subject_patterns=tuple(patterns.PROPOSAL_SUBJECT_PATTERNS),
    body_company_patterns=tuple(patterns.PROPOSAL_BODY_COMPANY_PATTERNS),
    body_title_patterns=tuple(patterns.PROPOSAL_BODY_TITLE_PATTERNS),
    status_aliases={
        "Approved": "Awarded",
        "Funded": "Awarded",
        "Rejected": "Declined",
        "Not Funded": "Declined",
        "Received": "Submitted",
        "In Review": "Under Review",
    },
)

PROFILES = {
    APPLICATIONS.name: APPLICATIONS,
    PROPOSALS.name: PROPOSALS,
}


def load_profile(name: str, overrides_path: Optional[Path] = None) -> TrackerProfile:
    """
    Get a tracker profile, optionally overridden from YAML.

    Recognized YAML keys: sheet_tab, default_status, status_ranks,
    override_statuses, stale_exempt_statuses, stale_status, stale_weeks,
    labels (to_process / processed / manual_review), headers, columns.

    Args:
        name: Profile name ("applications" or "proposals")
        overrides_path: Optional YAML file with overrides

    Returns:
        TrackerProfile

    Raises:
        ValueError: Unknown profile or inconsistent overrides
    """
    if name not in PROFILES:
        raise ValueError(f"Unknown tracker profile '{name}'. Known: {sorted(PROFILES)}")

    profile = PROFILES[name]
    if overrides_path is None:
        return profile

    overrides_path = Path(overrides_path)
    if not overrides_path.exists():
        raise ValueError(f"Profile overrides file not found: {overrides_path}")

    with open(overrides_path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Profile overrides must be a mapping, got {type(data).__name__}")

    profile = _apply_overrides(profile, data)
    logger.info(f"Loaded profile overrides for '{name}' from {overrides_path}")
    return profile


def _apply_overrides(profile: TrackerProfile, data: dict) -> TrackerProfile:
    """Merge an overrides mapping into a profile and validate the result."""
    changes = {}

    for key in ("sheet_tab", "default_status", "stale_status"):
        if key in data:
            changes[key] = str(data[key])

    if "stale_weeks" in data:
        changes["stale_weeks"] = int(data["stale_weeks"])

    if "status_ranks" in data:
        ranks = {str(k): float(v) for k, v in data["status_ranks"].items()}
        ranks.setdefault(MANUAL_REVIEW_NEEDED, -2)
        changes["status_ranks"] = ranks

    for key in ("override_statuses", "stale_exempt_statuses"):
        if key in data:
            changes[key] = frozenset(str(s) for s in data[key])

    if "labels" in data:
        labels = data["labels"]
        changes["labels"] = LabelNames(
            to_process=labels.get("to_process", profile.labels.to_process),
            processed=labels.get("processed", profile.labels.processed),
            manual_review=labels.get("manual_review", profile.labels.manual_review),
        )

    if "headers" in data:
        changes["headers"] = tuple(str(h) for h in data["headers"])
    if "columns" in data:
        columns = dict(profile.columns)
        columns.update({str(k): str(v) for k, v in data["columns"].items()})
        changes["columns"] = columns

    merged = replace(profile, **changes)

    unknown = [
        s for s in (*merged.override_statuses, merged.default_status, merged.stale_status)
        if s not in merged.status_ranks
    ]
    if unknown:
        raise ValueError(f"Statuses not in rank table: {sorted(set(unknown))}")

    missing = [h for h in merged.columns.values() if h not in merged.headers]
    if missing:
        raise ValueError(f"Column mapping refers to unknown headers: {missing}")

    return merged
