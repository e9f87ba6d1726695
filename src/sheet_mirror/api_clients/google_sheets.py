"""Google Sheets client for reading worksheet ranges."""

from typing import List, Optional

from googleapiclient.errors import HttpError

from .base import BaseGoogleClient, SourceUnavailable, http_status
from ..config.settings import ConfigurationMissing


Grid = List[List[Optional[str]]]


class GoogleSheetsClient(BaseGoogleClient):
    """Reads a fixed range of a spreadsheet as a grid of string cells."""

    service_name = "sheets"
    api_version = "v4"
    scopes = ["https://www.googleapis.com/auth/spreadsheets.readonly"]

    def __init__(self, spreadsheet_id: Optional[str], **kwargs):
        """Initialize Sheets client.

        Args:
            spreadsheet_id: ID of the spreadsheet to read
            **kwargs: Passed to BaseGoogleClient
        """
        super().__init__(**kwargs)
        self.spreadsheet_id = spreadsheet_id

    async def get_values(self, cell_range: str) -> Grid:
        """Fetch the values of a range.

        Rows are returned as the API reports them: trailing empty cells and
        trailing empty rows are omitted.

        Raises:
            SourceUnavailable: If the spreadsheet id is unset or the call fails
        """
        if not self.spreadsheet_id:
            raise SourceUnavailable("Missing required parameter: spreadsheet id")

        try:
            service = self._ensure_service()
            request = service.spreadsheets().values().get(
                spreadsheetId=self.spreadsheet_id,
                range=cell_range
            )
            response = await self._execute(request)

        except HttpError as e:
            self.logger.error(
                "Error fetching sheet data",
                range=cell_range,
                status=http_status(e),
                error=str(e)
            )
            raise SourceUnavailable(f"Error fetching sheet data: {e}") from e

        except (SourceUnavailable, ConfigurationMissing):
            raise

        except Exception as e:
            self.logger.error("Error fetching sheet data", range=cell_range, error=str(e))
            raise SourceUnavailable(f"Error fetching sheet data: {e}") from e

        values = response.get("values", []) or []
        return [list(row) for row in values]
