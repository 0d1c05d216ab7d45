"""CSV reading and writing helpers.

WHAT:
    - `decode_upload`: bytes from an upload -> text (BOM stripped)
    - `detect_delimiter`: pick `,` `;` TAB or `|` from the header line
    - `parse_csv_text`: text -> (headers, data_rows), quoting per RFC 4180
    - `render_csv`: rows -> BOM-prefixed, fully quoted CSV text

WHY:
    Sellers export orders from spreadsheets configured for Arabic or
    European locales, which produce `;` separated files with a UTF-8 BOM.
    Excel only opens UTF-8 CSVs correctly when they start with a BOM, so
    everything we hand back carries one too.

REFERENCES:
    - codboard/services/orders_service.py (import + export consumers)
"""

import csv
import io
from typing import Iterable, List, Sequence, Tuple

from codboard.exceptions import EmptyFileError, UnsupportedFileError

BOM = "\ufeff"
CANDIDATE_DELIMITERS = (";", ",", "\t", "|")


def decode_upload(raw: bytes) -> str:
    """Decode uploaded bytes as UTF-8, dropping a leading BOM.

    Raises:
        UnsupportedFileError: if the payload is not UTF-8 text (e.g. an .xlsx file)
    """
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise UnsupportedFileError(
            "File could not be read as UTF-8 text. Save the sheet as 'CSV UTF-8' and try again."
        ) from exc


def detect_delimiter(first_line: str) -> str:
    """Return the candidate delimiter occurring most often outside quotes.

    Ties keep the earlier candidate; a line with none of them is comma separated.
    """
    detected = ","
    best = 0
    for delimiter in CANDIDATE_DELIMITERS:
        count = 0
        in_quotes = False
        for char in first_line:
            if char == '"':
                in_quotes = not in_quotes
            elif char == delimiter and not in_quotes:
                count += 1
        if count > best:
            best = count
            detected = delimiter
    return detected


def parse_csv_text(text: str) -> Tuple[List[str], List[List[str]]]:
    """Split CSV text into a header record and padded data records.

    Quoted cells may contain the delimiter, newlines and doubled quotes.
    Cells are trimmed, records with only blank cells are dropped, and data
    records shorter than the header are right-padded with "".

    Raises:
        EmptyFileError: if fewer than two non-empty records remain
    """
    if text.startswith(BOM):
        text = text[len(BOM):]

    first_line = next((line for line in text.splitlines() if line.strip()), "")
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=detect_delimiter(first_line))

    records = []
    for record in reader:
        cells = [cell.strip() for cell in record]
        if any(cells):
            records.append(cells)

    if len(records) < 2:
        raise EmptyFileError()

    headers = records[0]
    width = len(headers)
    rows = [cells + [""] * (width - len(cells)) for cells in records[1:]]
    return headers, rows


def render_csv(headers: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    """Render a BOM-prefixed CSV where every cell is double-quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return BOM + buffer.getvalue()
