"""
Tabular stores the upsert handler writes to.

Row numbers are 1-based like the sheet itself; row 1 is the header.
"""
import logging
import threading

import gspread
from gspread.exceptions import GSpreadException, WorksheetNotFound
from gspread.utils import rowcol_to_a1

from row_upsert import StoreError

logger = logging.getLogger(__name__)

BACKENDS = ("gsheets", "memory")


class WorksheetStore:
    """Thin wrapper over a gspread Worksheet.

    Writes are RAW so Sheets keeps keys like "0001" as the text sent and
    get_all_values() hands them back unchanged.
    """

    def __init__(self, worksheet):
        self.worksheet = worksheet

    def get_all_values(self):
        try:
            return self.worksheet.get_all_values()
        except GSpreadException as e:
            raise StoreError(f"Could not read sheet: {e}") from e

    def append_row(self, values):
        try:
            self.worksheet.append_row(values, value_input_option="RAW")
        except GSpreadException as e:
            raise StoreError(f"Could not append row: {e}") from e

    def update_row(self, row, values):
        cells = f"{rowcol_to_a1(row, 1)}:{rowcol_to_a1(row, len(values))}"
        try:
            self.worksheet.update(
                range_name=cells, values=[values], value_input_option="RAW"
            )
        except GSpreadException as e:
            raise StoreError(f"Could not update row {row}: {e}") from e

    def delete_rows(self, start, end):
        try:
            self.worksheet.delete_rows(start, end)
        except GSpreadException as e:
            raise StoreError(f"Could not delete rows {start}-{end}: {e}") from e


class MemoryStore:
    """List-of-rows store for local runs without Google credentials."""

    def __init__(self, rows=None):
        self.rows = [list(r) for r in rows or []]
        self.lock = threading.Lock()

    def get_all_values(self):
        with self.lock:
            return [list(r) for r in self.rows]

    def append_row(self, values):
        with self.lock:
            self.rows.append(list(values))

    def update_row(self, row, values):
        with self.lock:
            if not 1 <= row <= len(self.rows):
                raise StoreError(f"Row {row} out of range")
            self.rows[row - 1] = list(values)

    def delete_rows(self, start, end):
        with self.lock:
            del self.rows[start - 1:end]


# shared so local runs keep rows between requests
memory_store = MemoryStore()


def open_worksheet(config, create=True):
    try:
        client = gspread.service_account(filename=config["credentialsFile"])
        spreadsheet = client.open_by_key(config["spreadsheetId"])
    except (GSpreadException, OSError, ValueError) as e:
        raise StoreError(f"Could not open spreadsheet: {e}") from e

    title = config["worksheet"]
    try:
        return spreadsheet.worksheet(title)
    except WorksheetNotFound:
        if not create:
            return None
    except GSpreadException as e:
        raise StoreError(f"Could not open worksheet {title!r}: {e}") from e

    logger.info("Creating worksheet %r", title)
    try:
        return spreadsheet.add_worksheet(title=title, rows=1000, cols=26)
    except GSpreadException as e:
        raise StoreError(f"Could not create worksheet {title!r}: {e}") from e


def open_store(config, create=True):
    """Build the store for one request.

    Returns None only when create is False and the worksheet is missing.
    """
    backend = config["backend"]
    if backend == "memory":
        return memory_store
    if backend == "gsheets":
        worksheet = open_worksheet(config, create=create)
        return None if worksheet is None else WorksheetStore(worksheet)
    raise ValueError(f"Unknown backend {backend!r}, expected one of {BACKENDS}")
