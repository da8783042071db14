"""
Fallback Parsing Patterns.

Centralized data for the deterministic email parser that runs when the
AI extractor is unavailable or returns incomplete output.

Used by:
- mailtracker/services/fallback_parser.py (sender, subject and body heuristics)
- config/tracker_profiles.py (per-profile pattern and keyword selection)
"""

# =============================================================================
# SENDER DOMAINS
# =============================================================================
# Domains that never identify the organization behind the email: personal
# mailbox providers, job boards and ATS root domains.

NON_COMPANY_DOMAINS = {
    # Mailbox providers
    'gmail.com', 'googlemail.com', 'outlook.com', 'hotmail.com', 'live.com',
    'yahoo.com', 'icloud.com', 'me.com', 'aol.com', 'proton.me', 'protonmail.com',

    # Job boards
    'linkedin.com', 'indeed.com', 'indeedemail.com', 'ziprecruiter.com',
    'monster.com', 'glassdoor.com', 'dice.com', 'hired.com',

    # ATS root domains
    'greenhouse.io', 'greenhouse-mail.io', 'lever.co', 'hire.lever.co',
    'myworkday.com', 'myworkdayjobs.com', 'icims.com', 'taleo.net',
    'successfactors.com', 'smartrecruiters.com', 'jobvite.com', 'bamboohr.com',
    'ashbyhq.com', 'workablemail.com', 'workable.com', 'breezy.hr',
    'recruiterbox.com', 'jazzhr.com', 'applytojob.com', 'otomate.co',
    'ripplehire.com',

    # Grant portals
    'fluxx.io', 'submittable.com', 'smapply.io', 'grantinterface.com',
}

# ATS hosts that put the customer name in a subdomain
# (e.g. acme.myworkdayjobs.com -> "Acme")
ATS_SUBDOMAIN_HOSTS = (
    'myworkdayjobs.com', 'myworkday.com', 'greenhouse.io', 'lever.co',
    'icims.com', 'taleo.net', 'smartrecruiters.com', 'bamboohr.com',
    'ashbyhq.com', 'jobvite.com', 'applytojob.com', 'breezy.hr',
    'submittable.com', 'fluxx.io', 'smapply.io',
)

# Mail-routing subdomains that precede the organization name
# (e.g. careers.acme.com -> acme.com)
SENDER_SUBDOMAIN_PREFIXES = (
    'careers', 'jobs', 'recruiting', 'apply', 'hr', 'talent', 'notification',
    'notifications', 'team', 'hello', 'no-reply', 'noreply', 'mail', 'email',
    'e', 'em', 'info', 'us', 'eu', 'grants', 'news',
)

# Generic TLDs and second-level registrable suffixes
GENERIC_TLDS = (
    'com', 'org', 'net', 'io', 'co', 'ai', 'dev', 'xyz', 'tech', 'ca', 'uk',
    'de', 'fr', 'app', 'eu', 'us', 'info', 'biz', 'work', 'agency', 'careers',
    'group', 'global', 'inc', 'llc', 'ltd', 'corp', 'gmbh', 'edu', 'gov', 'au',
    'in', 'nl', 'se', 'ch',
)

# =============================================================================
# SENDER DISPLAY NAME NOISE
# =============================================================================

# "Acme | Greenhouse" style suffixes
ATS_NAME_SUFFIXES = (
    'greenhouse', 'lever', 'wellfound', 'workday', 'ashby', 'icims',
    'smartrecruiters', 'taleo', 'bamboohr', 'recruiterbox', 'jazzhr',
    'workable', 'breezyhr', 'notion', 'submittable',
)

# Phrases wrapped around the organization name
SENDER_NOISE_PHRASES = (
    'via Wellfound', 'via LinkedIn', 'via Indeed', 'via Greenhouse', 'via Lever',
    'from Greenhouse', 'from Lever', 'Careers at', 'Hiring at', 'Jobs at',
)

# Department / mailbox words that are not part of the name
GENERIC_DEPARTMENT_WORDS = (
    'Careers', 'Recruiting', 'Recruitment', 'Hiring Team', 'Hiring',
    'Talent Acquisition', 'Talent', 'HR', 'Team', 'Notifications', 'Notification',
    'Jobs', 'Job', 'Updates', 'Update', 'Apply', 'Hello', 'No-Reply', 'NoReply',
    'Support', 'Info', 'Admin', 'Department', 'Grants Team', 'Grants', 'Programs',
)

# Legal entity and corporate descriptor suffixes
LEGAL_SUFFIXES = (
    'Inc', 'LLC', 'Ltd', 'Corp', 'Corporation', 'GmbH', 'PLC', 'Co',
)

CORPORATE_DESCRIPTORS = (
    'Solutions', 'Services', 'Group', 'Global', 'Technologies', 'Labs',
    'Studio', 'Ventures',
)

# Display names that are only mailbox words
GENERIC_SENDER_NAMES = {
    'noreply', 'no-reply', 'jobs', 'careers', 'support', 'info', 'admin', 'hr',
    'talent', 'recruiting', 'team', 'hello', 'notifications', 'grants',
}

# =============================================================================
# ROLE KEYWORDS
# =============================================================================
# Words that mark a capture as a job title rather than an organization.

ROLE_KEYWORDS = (
    'engineer', 'manager', 'analyst', 'developer', 'specialist', 'lead',
    'director', 'coordinator', 'architect', 'consultant', 'designer',
    'recruiter', 'associate', 'intern', 'scientist', 'administrator',
)

# Qualifiers stripped from titles: "(Remote)", "- Hybrid", ...
TITLE_QUALIFIERS = (
    'remote', 'hybrid', 'onsite', 'on-site', 'contract', 'part-time',
    'full-time', 'intern', 'co-op', 'stipend', 'urgent', 'hiring', 'opening',
    'various locations',
)

# =============================================================================
# SUBJECT PATTERNS
# =============================================================================
# Ordered; the first match that yields both fields wins. Group numbers are
# 1-based; 0 means "not captured". `swap_on_role` re-checks captures where
# organization and title are commonly transposed.

APPLICATION_SUBJECT_PATTERNS = [
    {"name": "application_for_at",
     "pattern": r"Application for(?: the)?\s+(.+?)\s+at\s+([^-:|–—]+)",
     "title": 1, "company": 2},
    {"name": "interview_invite",
     "pattern": r"Invit(?:e|ation)(?:.*?)(?:to|for)(?: an)? interview(?:.*?)\sfor\s+(?:the\s)?(.+?)(?:\s+at\s+([^-:|–—]+))?$",
     "title": 1, "company": 2},
    {"name": "your_application_for_at",
     "pattern": r"Your application for(?: the)?\s+(.+?)\s+at\s+([^-:|–—]+)",
     "title": 1, "company": 2},
    {"name": "regarding_application",
     "pattern": r"Regarding your application for\s+(.+?)(?:\s-\s(.*?))?(?:\s@\s(.*?))?$",
     "title": 1, "company": 3, "company_alt": 2},
    {"name": "update_or_thanks_company_first",
     "pattern": r"^(?:Update on|Your Application to|Thank you for applying to)\s+([^-:|–—]+?)(?:\s*-\s*([^-:|–—]+))?$",
     "company": 1, "title": 2, "swap_on_role": True},
    {"name": "applying_to_at",
     "pattern": r"applying to\s+(.+?)\s+at\s+([^-:|–—]+)",
     "title": 1, "company": 2},
    {"name": "interest_in_role",
     "pattern": r"interest in the\s+(.+?)\s+role(?:\s+at\s+([^-:|–—]+))?",
     "title": 1, "company": 2},
    {"name": "update_on_your_app",
     "pattern": r"update on your\s+(.+?)\s+app(?:lication)?(?:\s+at\s+([^-:|–—]+))?",
     "title": 1, "company": 2},
]

PROPOSAL_SUBJECT_PATTERNS = [
    {"name": "proposal_to_funder",
     "pattern": r"(?:Your|Re:)?\s*(?:proposal|application)\s+(?:for|titled)\s+\"?(.+?)\"?\s+(?:to|with|at)\s+(?:the\s+)?([^-:|–—]+)",
     "title": 1, "company": 2},
    {"name": "funder_decision",
     "pattern": r"^([^-:|–—]+?)\s+(?:funding decision|grant decision|grant status)\s*[-:–—]\s*(.+)$",
     "company": 1, "title": 2},
    {"name": "loi_status",
     "pattern": r"(?:LOI|letter of inquiry)\s+(?:status|update)\s*[-:–—]\s*(.+?)(?:\s+\(([^)]+)\))?$",
     "title": 1, "company": 2},
]

# =============================================================================
# BODY PATTERNS
# =============================================================================
# Applied to the first BODY_SCAN_CHARS characters when the subject did not
# resolve both fields.

BODY_SCAN_CHARS = 1000

APPLICATION_BODY_COMPANY_PATTERNS = [
    r"(?:applying to|application with|interview with|position at|role at|opportunity at|Thank you for your interest in working at)\s+([A-Z][A-Za-z\s.&'-]+?(?:\s(?:LLC|Inc\.?|Ltd\.?|Corp\.?|GmbH))?)(?:[.,\n(]|\s{2}|$)",
]

APPLICATION_BODY_TITLE_PATTERNS = [
    r"(?:application for the|position of|role of|applying for the|interview for the|title:)\s+([A-Za-z][A-Za-z0-9\s.&'/-]+?)(?:\s\(| at | with |[.,\n(]|$)",
]

PROPOSAL_BODY_COMPANY_PATTERNS = [
    r"(?:on behalf of|submitted to|behalf of the|from the)\s+([A-Z][A-Za-z\s.&'-]+?(?:Foundation|Fund|Trust|Council|Endowment|Institute))(?:[.,\n(]|\s{2}|$)",
]

PROPOSAL_BODY_TITLE_PATTERNS = [
    r"(?:proposal titled|proposal for the|application for the|project titled|grant for the)\s+\"?([A-Za-z][A-Za-z0-9\s.&'/-]+?)\"?(?:\s\(| at | to | with |[.,\n(]|$)",
]

# =============================================================================
# STATUS KEYWORDS
# =============================================================================
# Checked in order against the normalized body; more advanced stages first.

OFFER_KEYWORDS = ["job offer", "offer of employment", "pleased to offer", "offer letter", "offer"]
INTERVIEW_KEYWORDS = [
    "invitation to interview", "schedule an interview", "interview request",
    "like to speak with you", "let s chat", "connect with you", "interview",
]
ASSESSMENT_KEYWORDS = ["coding challenge", "technical test", "skills test", "take home assignment", "assessment"]
APPLICATION_VIEWED_KEYWORDS = ["application was viewed", "profile was viewed", "application has been reviewed"]
REJECTION_KEYWORDS = [
    "not moving forward", "decided not to proceed", "other candidates",
    "regret to inform", "filled the position", "unfortunately",
]

AWARDED_KEYWORDS = ["pleased to award", "grant has been approved", "funding is approved", "awarded"]
UNDER_REVIEW_KEYWORDS = [
    "under review", "application is being reviewed", "thank you for your submission",
    "proposal received",
]
DECLINED_KEYWORDS = ["not selected for funding", "unable to fund", "regret to inform", "declined"]

# =============================================================================
# PLATFORM DETECTION
# =============================================================================
# Substrings of the sender (address or display name) mapped to a platform.

PLATFORM_KEYWORDS = {
    "linkedin.com": "LinkedIn",
    "indeed.com": "Indeed",
    "ziprecruiter.com": "ZipRecruiter",
    "monster.com": "Monster",
    "glassdoor.com": "Glassdoor",
    "wellfound.com": "Wellfound",
    "greenhouse": "Greenhouse",
    "lever.co": "Lever",
    "ashbyhq.com": "Ashby",
    "myworkday": "Workday",
    "icims.com": "iCIMS",
    "smartrecruiters.com": "SmartRecruiters",
}

DEFAULT_PLATFORM = "Email/Website"
