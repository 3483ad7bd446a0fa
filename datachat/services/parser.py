import logging
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from zipfile import BadZipFile

import pandas as pd
from fastapi import UploadFile
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from pandas.errors import EmptyDataError, ParserError

from datachat.core.config import get_settings
from datachat.core.errors import ErrorCodes, FileTooLargeError, InvalidInputError
from datachat.core.performance import track_performance
from datachat.core.sanitization import sanitize_filename, sanitize_for_logging, validate_column_name

logger = logging.getLogger(__name__)

# Allowed file extensions
ALLOWED_EXTENSIONS = {'.csv', '.xlsx'}

# MIME type mapping for validation
MIME_TYPE_MAP = {
    'text/csv': '.csv',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet': '.xlsx',
}

DANGEROUS_MIME_TYPES = {
    'application/x-executable',
    'application/x-sharedlib',
    'application/x-msdownload',
    'text/html',
    'application/javascript',
}

READ_CHUNK_SIZE = 1024 * 1024


def validate_file_extension(filename: Optional[str]) -> str:
    """
    Validate and normalize the file extension.
    Returns the extension if valid, raises InvalidInputError otherwise.
    """
    if not filename:
        raise InvalidInputError(ErrorCodes.INVALID_FILE_TYPE, "The upload has no file name.")

    file_ext = Path(filename).suffix.lower()
    if file_ext not in ALLOWED_EXTENSIONS:
        shown = file_ext or "no extension"
        raise InvalidInputError(ErrorCodes.INVALID_FILE_TYPE, f"Got {shown}.")
    return file_ext


def validate_mime_type(content_type: Optional[str], file_ext: str) -> None:
    """
    Reject obviously dangerous MIME types; a mismatch with the extension is
    only logged since browsers often send generic types.
    """
    if not content_type:
        return

    content_type = content_type.lower()
    expected_ext = MIME_TYPE_MAP.get(content_type)
    if expected_ext and expected_ext != file_ext:
        logger.warning(f"MIME type {content_type} doesn't match extension {file_ext}")

    if content_type in DANGEROUS_MIME_TYPES:
        raise InvalidInputError(ErrorCodes.INVALID_FILE_TYPE, f"Content type '{content_type}' is not allowed.")


async def read_upload(file: UploadFile) -> bytes:
    """
    Read the upload in chunks, stopping as soon as the size limit is passed.
    """
    settings = get_settings()
    chunks = []
    size = 0
    while True:
        chunk = await file.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > settings.max_file_size_bytes:
            raise FileTooLargeError(ErrorCodes.FILE_TOO_LARGE, f"Maximum size is {settings.max_file_size_mb}MB.")
        chunks.append(chunk)

    if size == 0:
        raise InvalidInputError(ErrorCodes.FILE_EMPTY)
    return b"".join(chunks)


def cell_text(value: Any) -> str:
    """Render a spreadsheet cell the way it would appear in a CSV export."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat() if value.time() == datetime.min.time() else value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def read_csv(contents: bytes) -> pd.DataFrame:
    """First line is the header; every cell is kept as text, blank lines dropped."""
    options = dict(dtype=str, keep_default_na=False, skip_blank_lines=True)
    try:
        return pd.read_csv(BytesIO(contents), **options)
    except UnicodeDecodeError:
        logger.info("CSV is not UTF-8, retrying as latin1")
        return pd.read_csv(BytesIO(contents), encoding='latin1', **options)


def read_xlsx(contents: bytes) -> pd.DataFrame:
    """
    Read the largest sheet of a workbook.
    Merged cells are filled with the value from the top-left cell.
    """
    wb = load_workbook(BytesIO(contents), data_only=True)
    ws = max(wb.worksheets, key=lambda sheet: sheet.max_row)

    merged_ranges = list(ws.merged_cells.ranges)
    for merged_range in merged_ranges:
        top_left_value = ws.cell(merged_range.min_row, merged_range.min_col).value
        ws.unmerge_cells(str(merged_range))
        for row in range(merged_range.min_row, merged_range.max_row + 1):
            for col in range(merged_range.min_col, merged_range.max_col + 1):
                ws.cell(row, col, top_left_value)

    if merged_ranges:
        logger.info(f"Unmerged {len(merged_ranges)} cell ranges in sheet '{ws.title}'")

    values = [[cell_text(v) for v in row] for row in ws.iter_rows(values_only=True)]
    values = [row for row in values if any(row)]
    if not values:
        return pd.DataFrame()

    header, body = values[0], values[1:]
    return pd.DataFrame(body, columns=header, dtype=str)


def clean_dataframe(df: pd.DataFrame) -> pd.DataFrame:
    """Trim every cell and header, then drop rows with no content."""
    df = df.fillna("").astype(str)
    df = df.apply(lambda col: col.str.strip())
    df.columns = [' '.join(str(col).replace('\r', ' ').split()) for col in df.columns]
    return df[(df != "").any(axis=1)].reset_index(drop=True)


def validate_file_content(df: pd.DataFrame) -> None:
    """
    Check row and column limits and header names.

    Raises:
        InvalidInputError: If content validation fails
    """
    settings = get_settings()
    if len(df.columns) == 0 or len(df) == 0:
        raise InvalidInputError(ErrorCodes.FILE_EMPTY)

    if len(df) > settings.max_file_rows:
        raise InvalidInputError(
            ErrorCodes.PARSE_ERROR,
            f"The file has {len(df):,} rows; the maximum is {settings.max_file_rows:,}."
        )

    if len(df.columns) > settings.max_file_columns:
        raise InvalidInputError(
            ErrorCodes.PARSE_ERROR,
            f"The file has {len(df.columns)} columns; the maximum is {settings.max_file_columns}."
        )

    for col in df.columns:
        if not validate_column_name(str(col)):
            raise InvalidInputError(ErrorCodes.PARSE_ERROR, f"Column name '{sanitize_for_logging(str(col), 80)}' is not usable.")


@track_performance("parse_file")
async def parse_upload(file: UploadFile) -> Tuple[List[Dict[str, str]], List[str]]:
    """
    Parse an uploaded CSV or Excel file into rows of strings.

    Returns:
        (rows keyed by header, header names in file order)

    Raises:
        InvalidInputError: wrong type, empty or unreadable file
        FileTooLargeError: file exceeds the size limit
    """
    file_ext = validate_file_extension(file.filename)
    validate_mime_type(file.content_type, file_ext)
    contents = await read_upload(file)
    safe_filename = sanitize_filename(file.filename)

    try:
        df = read_csv(contents) if file_ext == '.csv' else read_xlsx(contents)
    except EmptyDataError as e:
        raise InvalidInputError(ErrorCodes.FILE_EMPTY) from e
    except (ParserError, BadZipFile, InvalidFileException, ValueError, KeyError, OSError) as e:
        logger.error(f"Error parsing file {safe_filename}: {e}")
        raise InvalidInputError(ErrorCodes.PARSE_ERROR) from e

    df = clean_dataframe(df)
    validate_file_content(df)

    columns = [str(col) for col in df.columns]
    logger.info(
        f"Successfully parsed file: {safe_filename}, shape: {df.shape}",
        extra={"row_count": len(df), "column_count": len(columns)}
    )
    return df.to_dict(orient="records"), columns
