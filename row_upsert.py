"""
Row upsert handler for battery telemetry.

One worksheet row per battery: find the row whose identifier column matches
the incoming key and overwrite it, or append a new one. The store is passed
in by the caller (see sheet_store.py) and lives for one request.
"""
from collections import namedtuple
from datetime import datetime
import json
import logging

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
CLEAR_ACTION = "clear"


class LoggerError(Exception):
    """Base class for failures reported back to the device."""


class PayloadError(LoggerError):
    """The request body could not be turned into a record."""


class StoreError(LoggerError):
    """The worksheet could not be opened, read or written."""


# field is None for the derived timestamp column
Column = namedtuple("Column", "header field default")


class RecordSchema:
    def __init__(self, name, key_field, columns, ready_reply, ready_json=False):
        self.name = name
        self.key_field = key_field
        self.columns = list(columns)
        self.ready_reply = ready_reply
        self.ready_json = ready_json

        self.header = [c.header for c in self.columns]
        self.key_index = next(i for i, c in enumerate(self.columns) if c.field == key_field)
        self.timestamp_index = next(i for i, c in enumerate(self.columns) if c.field is None)
        self.fields = {c.field for c in self.columns if c.field is not None}

    def __repr__(self):
        return f"RecordSchema({self.name!r})"


UUID_SCHEMA = RecordSchema(
    "uuid",
    key_field="battery_uuid",
    columns=[
        Column("Timestamp", None, None),
        Column("Battery UUID", "battery_uuid", ""),
        Column("Battery Usage", "battery_usage", ""),
        Column("Battery Usage Count", "battery_usage_count", 0),
        Column("Total Time Used", "total_time_used", 0),
        Column("Total Percentage Used", "total_percentage_used", 0),
    ],
    ready_reply={"status": "online", "message": "Battery Logger API is running"},
    ready_json=True,
)

NFC_SCHEMA = RecordSchema(
    "nfc",
    key_field="name",
    columns=[
        Column("Battery Name", "name", ""),
        Column("NFC UID", "uid", ""),
        Column("Usage Count", "usageCount", 0),
        Column("Total Time", "totalTime", 0),
        Column("Total Time Formatted", "totalTimeFormatted", ""),
        Column("Last Updated", None, None),
    ],
    ready_reply="Battery tracker ready",
)

SCHEMAS = {s.name: s for s in (UUID_SCHEMA, NFC_SCHEMA)}


def get_schema(name):
    try:
        return SCHEMAS[name]
    except KeyError:
        raise ValueError(f"Unknown schema {name!r}, expected one of {sorted(SCHEMAS)}") from None


TelemetryRecord = namedtuple("TelemetryRecord", "schema key values")
SubmitResult = namedtuple("SubmitResult", "action key row")
StatusReply = namedtuple("StatusReply", "body mimetype")


def parse_payload(raw):
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise PayloadError(f"Bad JSON: {e}") from e
    if not isinstance(data, dict):
        raise PayloadError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def build_record(schema, payload):
    """Map payload fields onto the schema's columns.

    Missing or null fields take the column default. values skips the
    timestamp column, which is stamped at write time.
    """
    key = payload.get(schema.key_field)
    if key is None or str(key) == "":
        raise PayloadError(f"Missing '{schema.key_field}' in payload")
    key = str(key)

    unknown = sorted(set(payload) - schema.fields)
    if unknown:
        logger.warning("Ignoring fields not in %s schema: %s", schema.name, ", ".join(unknown))

    values = []
    for col in schema.columns:
        if col.field is None:
            continue
        if col.field == schema.key_field:
            values.append(key)
        else:
            value = payload.get(col.field)
            values.append(col.default if value is None else value)
    return TelemetryRecord(schema, key, values)


def find_row(rows, key_index, key):
    """1-based sheet row of the first data row whose key column equals key."""
    for i, row in enumerate(rows[1:], start=2):
        if key_index < len(row) and row[key_index] == key:
            return i
    return None


def ensure_header(store, schema):
    if not store.get_all_values():
        store.append_row(schema.header)
        logger.info("Wrote %s header row", schema.name)


def read_record(schema, raw):
    return build_record(schema, parse_payload(raw))


def submit(store, schema, raw, now=None):
    return write_record(store, read_record(schema, raw), now=now)


def write_record(store, record, now=None):
    schema = record.schema
    ensure_header(store, schema)
    rows = store.get_all_values()
    row = find_row(rows, schema.key_index, record.key)

    values = list(record.values)
    values.insert(schema.timestamp_index, (now or datetime.now()).strftime(TIMESTAMP_FORMAT))

    if row is not None:
        store.update_row(row, values)
        return SubmitResult("updated", record.key, row)

    store.append_row(values)
    return SubmitResult("created", record.key, len(rows) + 1)


def handle_submit(store_factory, schema, raw, now=None):
    """Run one submit and turn the outcome into the wire envelope.

    Never raises: the device only ever sees {"status": ..., "message": ...}.
    """
    try:
        # parse before opening the store so bad bodies never touch the sheet
        record = read_record(schema, raw)
        result = write_record(store_factory(), record, now=now)
    except PayloadError as e:
        logger.warning("Rejected payload: %s", e)
        return {"status": "error", "message": str(e)}
    except Exception as e:
        logger.exception("Submit failed")
        return {"status": "error", "message": str(e)}

    logger.info("[ BATTERY DATA %s ] key=%s row=%d", result.action.upper(), result.key, result.row)
    return {
        "status": "success",
        "message": "Data logged successfully",
        "action": result.action,
    }


def clear(store):
    """Delete every row below the header. Returns how many were removed."""
    count = len(store.get_all_values())
    if count <= 1:
        return 0
    store.delete_rows(2, count)
    return count - 1


def status(store_factory, schema, action=None):
    if action != CLEAR_ACTION:
        if schema.ready_json:
            return StatusReply(json.dumps(schema.ready_reply), "application/json")
        return StatusReply(schema.ready_reply, "text/plain")

    store = store_factory(create=False)
    if store is None:
        logger.info("Clear requested but worksheet does not exist")
    else:
        logger.info("Cleared %d data rows", clear(store))
    return StatusReply("Sheet cleared", "text/plain")
