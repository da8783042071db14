"""
Google Sheets API service for the mail tracker.

SheetsService wraps the Sheets API v4 values endpoints. SheetsTable binds
one spreadsheet tab to the row-table interface the orchestrator and stale
sweeper use:

    read_rows() -> (header, [(location, values), ...])
    update_row(location, values)
    update_rows({location: values, ...})
    append_rows([values, ...]) -> location of the first appended row
    write_header(header)

A location is the 1-based sheet row number; the header is row 1.
"""
import logging
import re
from typing import Optional

from googleapiclient.discovery import build

from mailtracker.services.google_auth import get_google_auth, GoogleAccount

logger = logging.getLogger(__name__)

HEADER_ROW = 1

# Cells are stored as typed: timestamps stay "YYYY-MM-DD HH:MM:SS" text,
# subjects starting with "=" are not formulas, numeric ids stay strings
VALUE_INPUT_OPTION = "RAW"

_RANGE_START_RE = re.compile(r"!\$?[A-Z]+\$?(\d+)")


def quote_tab(tab: str) -> str:
    """A1-notation sheet name, quoted."""
    return "'" + tab.replace("'", "''") + "'"


def parse_start_row(updated_range: str) -> Optional[int]:
    """
    First row number of an A1 range such as "'Applications'!A5:M7".
    """
    match = _RANGE_START_RE.search(updated_range or "")
    return int(match.group(1)) if match else None


class SheetsService:
    """
    Google Sheets service for reading and writing spreadsheet data.

    Uses the Sheets API v4 for structured access to cells and ranges.
    Writes use RAW input, so values are stored exactly as given.
    """

    def __init__(self, account_type: GoogleAccount = GoogleAccount.PERSONAL):
        """
        Initialize Sheets service.

        Args:
            account_type: Which Google account to use
        """
        self.account_type = account_type
        self._service = None

    @property
    def service(self):
        """Get or create Sheets API service."""
        if self._service is None:
            auth = get_google_auth(self.account_type)
            credentials = auth.get_credentials()
            self._service = build("sheets", "v4", credentials=credentials)
        return self._service

    def get_values(self, spreadsheet_id: str, range: str) -> list[list[str]]:
        """
        Read values from a sheet range.

        Args:
            spreadsheet_id: The Google Sheets file ID
            range: A1 notation range (e.g., "'Applications'")

        Returns:
            List of rows, where each row is a list of cell values
        """
        try:
            result = self.service.spreadsheets().values().get(
                spreadsheetId=spreadsheet_id,
                range=range
            ).execute()
            return result.get("values", [])
        except Exception as e:
            logger.error(f"Failed to read sheet {spreadsheet_id}: {e}")
            raise

    def update_values(self, spreadsheet_id: str, range: str, values: list[list]) -> None:
        """Overwrite a range."""
        self.service.spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=range,
            valueInputOption=VALUE_INPUT_OPTION,
            body={"values": values},
        ).execute()

    def batch_update_values(self, spreadsheet_id: str, data: dict[str, list[list]]) -> None:
        """Overwrite several ranges in one request."""
        self.service.spreadsheets().values().batchUpdate(
            spreadsheetId=spreadsheet_id,
            body={
                "valueInputOption": VALUE_INPUT_OPTION,
                "data": [{"range": r, "values": v} for r, v in data.items()],
            },
        ).execute()

    def append_values(self, spreadsheet_id: str, range: str, values: list[list]) -> str:
        """
        Append rows after the last row of a table.

        Returns:
            The updated range in A1 notation
        """
        result = self.service.spreadsheets().values().append(
            spreadsheetId=spreadsheet_id,
            range=range,
            valueInputOption=VALUE_INPUT_OPTION,
            insertDataOption="INSERT_ROWS",
            body={"values": values},
        ).execute()
        return result.get("updates", {}).get("updatedRange", "")

    def get_spreadsheet_info(self, spreadsheet_id: str) -> dict:
        """
        Get metadata about a spreadsheet.

        Returns:
            Dict with title and list of sheet names
        """
        try:
            result = self.service.spreadsheets().get(
                spreadsheetId=spreadsheet_id,
                fields="properties.title,sheets.properties.title"
            ).execute()

            return {
                "title": result.get("properties", {}).get("title", ""),
                "sheets": [
                    s.get("properties", {}).get("title", "")
                    for s in result.get("sheets", [])
                ]
            }
        except Exception as e:
            logger.error(f"Failed to get spreadsheet info {spreadsheet_id}: {e}")
            raise


class SheetsTable:
    """One spreadsheet tab as a row table."""

    def __init__(self, spreadsheet_id: str, tab: str, service: Optional[SheetsService] = None):
        self.spreadsheet_id = spreadsheet_id
        self.tab = tab
        self.sheets = service or get_sheets_service()

    def read_rows(self) -> tuple[list[str], list[tuple[int, list]]]:
        """
        Full scan of the tab.

        Returns:
            (header, rows) where rows pairs each sheet row number with its
            values; fully blank rows are skipped
        """
        values = self.sheets.get_values(self.spreadsheet_id, quote_tab(self.tab))
        if not values:
            return [], []

        header = [str(h).strip() for h in values[0]]
        rows = []
        for offset, row in enumerate(values[1:]):
            if not any(str(cell).strip() for cell in row):
                continue
            rows.append((HEADER_ROW + 1 + offset, list(row)))
        return header, rows

    def write_header(self, header: list[str]) -> None:
        self.sheets.update_values(
            self.spreadsheet_id, f"{quote_tab(self.tab)}!A{HEADER_ROW}", [list(header)]
        )
        logger.info(f"Wrote header row to '{self.tab}'")

    def update_row(self, location: int, values: list) -> None:
        if location <= HEADER_ROW:
            raise ValueError(f"Refusing to overwrite row {location} of '{self.tab}'")
        self.sheets.update_values(
            self.spreadsheet_id, f"{quote_tab(self.tab)}!A{location}", [list(values)]
        )

    def update_rows(self, rows: dict[int, list]) -> None:
        if not rows:
            return
        if min(rows) <= HEADER_ROW:
            raise ValueError(f"Refusing to overwrite row {min(rows)} of '{self.tab}'")
        self.sheets.batch_update_values(
            self.spreadsheet_id,
            {f"{quote_tab(self.tab)}!A{loc}": [list(v)] for loc, v in rows.items()},
        )

    def append_rows(self, rows: list[list]) -> int:
        """
        Append rows in one request.

        Returns:
            Sheet row number of the first appended row
        """
        updated_range = self.sheets.append_values(
            self.spreadsheet_id, f"{quote_tab(self.tab)}!A{HEADER_ROW}", [list(r) for r in rows]
        )
        start = parse_start_row(updated_range)
        if start is None:
            raise ValueError(f"Could not determine appended row from range '{updated_range}'")
        return start


# Singleton services per account
_sheets_services: dict[GoogleAccount, SheetsService] = {}


def get_sheets_service(
    account_type: GoogleAccount = GoogleAccount.PERSONAL
) -> SheetsService:
    """Get or create Sheets service for an account."""
    if account_type not in _sheets_services:
        _sheets_services[account_type] = SheetsService(account_type)
    return _sheets_services[account_type]
