"""Google Sheets API v4 implementation of the tabular backend."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Sequence, TypeVar

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from storage.a1 import qualified_range
from storage.tabular import BackendError, Rows

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

T = TypeVar("T")


def build_service(credentials_path: str | Path):
    """Return an authenticated Sheets API client using a service-account key."""
    path = Path(credentials_path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Credentials file not found: {path}")
    credentials = service_account.Credentials.from_service_account_file(str(path), scopes=SCOPES)
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


class GoogleSheetsBackend:
    """Addresses one spreadsheet; each tab is a destination."""

    def __init__(self, service: Any, spreadsheet_id: str) -> None:
        self.service = service
        self.spreadsheet_id = spreadsheet_id
        self._sheet_ids: Dict[str, int] = {}

    def _execute(self, description: str, request_factory: Callable[[], Any]) -> Any:
        try:
            return request_factory().execute()
        except HttpError as exc:
            status = getattr(getattr(exc, "resp", None), "status", None)
            raise BackendError(f"Sheets API {description} failed ({status}): {exc}") from exc
        except (httplib2.HttpLib2Error, GoogleAuthError, OSError) as exc:
            raise BackendError(f"Sheets API {description} failed: {exc}") from exc

    def list_destinations(self) -> List[str]:
        metadata = self._execute(
            "spreadsheets.get",
            lambda: self.service.spreadsheets().get(
                spreadsheetId=self.spreadsheet_id,
                fields="sheets.properties(sheetId,title)",
            ),
        )
        titles: List[str] = []
        for sheet in metadata.get("sheets", []):
            properties = sheet.get("properties", {})
            title = properties.get("title")
            if title is None:
                continue
            titles.append(title)
            self._sheet_ids[title] = properties.get("sheetId")
        return titles

    def create_destination(self, title: str) -> int:
        response = self._execute(
            "spreadsheets.batchUpdate(addSheet)",
            lambda: self.service.spreadsheets().batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body={"requests": [{"addSheet": {"properties": {"title": title}}}]},
            ),
        )
        replies = response.get("replies") or []
        add_sheet = replies[0].get("addSheet") if replies else None
        if not add_sheet:
            raise BackendError(f"Sheets API did not confirm creation of {title!r}")
        sheet_id = add_sheet["properties"]["sheetId"]
        self._sheet_ids[title] = sheet_id
        logger.info("Sheet created", extra={"period": title})
        return sheet_id

    def freeze_rows(self, title: str, row_count: int) -> None:
        sheet_id = self._sheet_ids.get(title)
        if sheet_id is None:
            self.list_destinations()
            sheet_id = self._sheet_ids.get(title)
        if sheet_id is None:
            raise BackendError(f"Sheet {title!r} not found")

        self._execute(
            "spreadsheets.batchUpdate(updateSheetProperties)",
            lambda: self.service.spreadsheets().batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body={
                    "requests": [
                        {
                            "updateSheetProperties": {
                                "properties": {
                                    "sheetId": sheet_id,
                                    "gridProperties": {"frozenRowCount": row_count},
                                },
                                "fields": "gridProperties.frozenRowCount",
                            }
                        }
                    ]
                },
            ),
        )

    def get_values(self, title: str, range_spec: str) -> Rows:
        response = self._execute(
            "values.get",
            lambda: self.service.spreadsheets().values().get(
                spreadsheetId=self.spreadsheet_id,
                range=qualified_range(title, range_spec),
                majorDimension="ROWS",
            ),
        )
        return response.get("values", [])

    def update_values(self, title: str, range_spec: str, rows: Sequence[Sequence[Any]]) -> None:
        self._execute(
            "values.update",
            lambda: self.service.spreadsheets().values().update(
                spreadsheetId=self.spreadsheet_id,
                range=qualified_range(title, range_spec),
                valueInputOption="RAW",
                body={"values": [list(row) for row in rows]},
            ),
        )
