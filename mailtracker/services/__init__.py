"""
Mail Tracker Services Package.

Key service modules:
- extraction: Candidate records from emails (AI extractor + fallback parser)
- entity_index: In-memory index of tracked entities for one run
- reconciliation: CREATE / UPDATE decisions and status merging
- orchestrator: One processing batch end to end
- labeler: Thread outcomes and final Gmail labels
- stale_sweeper: Demotion of entries with no recent update
- gmail, sheets, google_auth: Google API access
"""
