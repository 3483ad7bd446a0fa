"""
Unit tests for the upload parser.
"""
from datetime import datetime
from io import BytesIO

import pandas as pd
import pytest
from fastapi import UploadFile
from openpyxl import Workbook
from starlette.datastructures import Headers

from datachat.core.config import reload_settings
from datachat.core.errors import ErrorCodes, FileTooLargeError, InvalidInputError
from datachat.core.performance import PerformanceMonitor
from datachat.services.parser import (
    cell_text, clean_dataframe, parse_upload, validate_file_extension, validate_mime_type,
)


def _upload(content: bytes, filename="data.csv", content_type=None) -> UploadFile:
    headers = Headers({"content-type": content_type}) if content_type else None
    return UploadFile(file=BytesIO(content), filename=filename, headers=headers)


def _xlsx_bytes() -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(["Region", "Sales", "When"])
    ws.append(["North", 100, datetime(2024, 1, 1)])
    ws.append(["South", 2.5, None])
    ws.append(["East", 7, None])
    ws.append([None, 8, None])
    ws.merge_cells("A4:A5")
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.mark.unit
async def test_parse_csv():
    """Cells stay text exactly as written."""
    rows, columns = await parse_upload(_upload(b"name,age,zip\nJohn,30,02139\nJane,25,NA"))

    assert columns == ["name", "age", "zip"]
    assert rows == [
        {"name": "John", "age": "30", "zip": "02139"},
        {"name": "Jane", "age": "25", "zip": "NA"},
    ]


@pytest.mark.unit
async def test_parse_csv_quotes_blanks_and_whitespace():
    content = b' name , city \n"Smith, J",Leeds \n\n  ,  \nLee,\n'
    rows, columns = await parse_upload(_upload(content))

    assert columns == ["name", "city"]
    assert rows == [
        {"name": "Smith, J", "city": "Leeds"},
        {"name": "Lee", "city": ""},
    ]


@pytest.mark.unit
async def test_parse_csv_latin1_fallback():
    content = "name,value\nJosé,100\nMaría,200".encode("latin1")
    rows, _ = await parse_upload(_upload(content))

    assert [row["name"] for row in rows] == ["José", "María"]


@pytest.mark.unit
async def test_parse_xlsx_fills_merged_cells():
    rows, columns = await parse_upload(_upload(_xlsx_bytes(), filename="report.xlsx"))

    assert columns == ["Region", "Sales", "When"]
    assert rows == [
        {"Region": "North", "Sales": "100", "When": "2024-01-01"},
        {"Region": "South", "Sales": "2.5", "When": ""},
        {"Region": "East", "Sales": "7", "When": ""},
        {"Region": "East", "Sales": "8", "When": ""},
    ]


@pytest.mark.unit
@pytest.mark.parametrize("content", [b"", b"\n\n", b"a,b\n", b"a,b\n , \n"])
async def test_empty_files(content):
    with pytest.raises(InvalidInputError) as exc_info:
        await parse_upload(_upload(content))
    assert exc_info.value.code == ErrorCodes.FILE_EMPTY


@pytest.mark.unit
async def test_corrupted_xlsx():
    with pytest.raises(InvalidInputError) as exc_info:
        await parse_upload(_upload(b"definitely not a zip archive", filename="broken.xlsx"))
    assert exc_info.value.code == ErrorCodes.PARSE_ERROR


@pytest.mark.unit
async def test_file_too_large(monkeypatch):
    monkeypatch.setenv("MAX_FILE_SIZE_MB", "1")
    reload_settings()
    content = b"a,b\n" + b"1,2\n" * 300_000

    with pytest.raises(FileTooLargeError) as exc_info:
        await parse_upload(_upload(content))
    assert exc_info.value.status_code == 413
    assert exc_info.value.code == ErrorCodes.FILE_TOO_LARGE


@pytest.mark.unit
async def test_too_many_rows(monkeypatch):
    monkeypatch.setenv("MAX_FILE_ROWS", "1000")
    reload_settings()
    content = b"a\n" + b"1\n" * 1001

    with pytest.raises(InvalidInputError) as exc_info:
        await parse_upload(_upload(content))
    assert exc_info.value.code == ErrorCodes.PARSE_ERROR
    assert "1,001 rows" in exc_info.value.to_response()["detail"]


@pytest.mark.unit
async def test_unusable_column_name():
    with pytest.raises(InvalidInputError) as exc_info:
        await parse_upload(_upload(b"a,../secret\n1,2\n"))
    assert exc_info.value.code == ErrorCodes.PARSE_ERROR


@pytest.mark.unit
async def test_parse_is_tracked(clean_metrics):
    await parse_upload(_upload(b"a\n1\n"))

    assert PerformanceMonitor.get_stats("parse_file")["count"] == 1


@pytest.mark.unit
@pytest.mark.parametrize("filename", ["data.txt", "data", "", None, "sheet.xls"])
def test_validate_file_extension_rejects(filename):
    with pytest.raises(InvalidInputError) as exc_info:
        validate_file_extension(filename)
    assert exc_info.value.code == ErrorCodes.INVALID_FILE_TYPE


@pytest.mark.unit
def test_validate_file_extension_valid():
    assert validate_file_extension("test.csv") == ".csv"
    assert validate_file_extension("Test.XLSX") == ".xlsx"


@pytest.mark.unit
def test_validate_mime_type():
    # Mismatches and missing types are tolerated
    validate_mime_type(None, ".csv")
    validate_mime_type("text/csv", ".xlsx")
    validate_mime_type("application/octet-stream", ".csv")

    with pytest.raises(InvalidInputError):
        validate_mime_type("text/html", ".csv")


@pytest.mark.unit
async def test_dangerous_mime_type_is_rejected():
    with pytest.raises(InvalidInputError) as exc_info:
        await parse_upload(_upload(b"a\n1\n", content_type="application/javascript"))
    assert exc_info.value.code == ErrorCodes.INVALID_FILE_TYPE


@pytest.mark.unit
def test_clean_dataframe():
    df = pd.DataFrame({"col\n1": [" x ", None, ""], "col2": ["1", None, "  "]})
    cleaned = clean_dataframe(df)

    assert list(cleaned.columns) == ["col 1", "col2"]
    assert cleaned.to_dict(orient="records") == [{"col 1": "x", "col2": "1"}]


@pytest.mark.unit
@pytest.mark.parametrize("value, expected", [
    (None, ""),
    (True, "true"),
    (3.0, "3"),
    (2.5, "2.5"),
    (datetime(2024, 5, 1), "2024-05-01"),
    (datetime(2024, 5, 1, 13, 30), "2024-05-01 13:30:00"),
    ("  text ", "text"),
])
def test_cell_text(value, expected):
    assert cell_text(value) == expected
