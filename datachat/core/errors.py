"""
Error message constants and utilities for user-friendly error handling.

Only two families of errors ever leave the analysis core: invalid input and
upstream (LLM provider) failures. Everything that goes wrong while reading the
model's answer is absorbed by the response normalizer.
"""
from typing import Any, Dict, Optional

# Error codes
class ErrorCodes:
    MISSING_QUERY = "MISSING_QUERY"
    EMPTY_DATASET = "EMPTY_DATASET"
    MISSING_API_KEY = "MISSING_API_KEY"
    INVALID_API_KEY = "INVALID_API_KEY"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    UPSTREAM_UNREACHABLE = "UPSTREAM_UNREACHABLE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    FILE_EMPTY = "FILE_EMPTY"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    PARSE_ERROR = "PARSE_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

# User-friendly error messages - friendly, helpful, and empathetic
ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    ErrorCodes.MISSING_QUERY: {
        "message": "What would you like to know?",
        "detail": "We didn't receive a question to answer about your data.",
        "suggestion": "💡 Type a question like 'Which region has the highest sales?' and send it again."
    },
    ErrorCodes.EMPTY_DATASET: {
        "message": "There's no data to analyze yet",
        "detail": "The request didn't include any rows. Upload a CSV first so we have something to work with.",
        "suggestion": "💡 Upload a CSV with a header row and at least one data row, then ask your question again."
    },
    ErrorCodes.MISSING_API_KEY: {
        "message": "An API key is required",
        "detail": "Answering questions about your data needs access to the analysis model, and no API key was provided.",
        "suggestion": "💡 Add your API key in the settings panel and try again."
    },
    ErrorCodes.INVALID_API_KEY: {
        "message": "That API key doesn't look right",
        "detail": "The API key format is invalid.",
        "suggestion": "💡 Copy the key again from your provider dashboard. Keys are long and start with a fixed prefix."
    },
    ErrorCodes.UPSTREAM_ERROR: {
        "message": "The analysis service returned an error",
        "detail": "We reached the analysis service but it refused the request.",
        "suggestion": "💡 Check that your API key is active and the selected model is available, then try again."
    },
    ErrorCodes.UPSTREAM_UNREACHABLE: {
        "message": "We couldn't reach the analysis service",
        "detail": "The connection to the analysis service failed or took too long.",
        "suggestion": "💡 Give it another try in a moment. If it keeps happening, check your network connection."
    },
    ErrorCodes.FILE_TOO_LARGE: {
        "message": "Oops! Your file is a bit too large",
        "detail": "We love that you have lots of data! However, your file exceeds our size limit to keep things fast for everyone.",
        "suggestion": "💡 Try splitting your file into smaller parts, or export just the columns you need."
    },
    ErrorCodes.FILE_EMPTY: {
        "message": "Hmm, your file looks empty",
        "detail": "We couldn't find any data in the file you uploaded. This might happen if the file wasn't saved properly.",
        "suggestion": "💡 Make sure your file has a header row and data rows, save it again, and try uploading once more."
    },
    ErrorCodes.INVALID_FILE_TYPE: {
        "message": "We need a CSV or Excel file",
        "detail": "We work best with CSV or Excel files (.csv, .xlsx). Your file type isn't something we can read yet.",
        "suggestion": "💡 Most spreadsheet tools have a 'Download as CSV' option in the File menu."
    },
    ErrorCodes.PARSE_ERROR: {
        "message": "We're having trouble reading your file",
        "detail": "Something's not quite right with the file format. It might be corrupted or in an unexpected format.",
        "suggestion": "💡 Try saving your file again as a fresh CSV. Make sure the first row holds the column names."
    },
    ErrorCodes.RATE_LIMIT_EXCEEDED: {
        "message": "Whoa there! Slow down a bit",
        "detail": "You're sending questions faster than we can keep up! We limit requests to keep the service fast for everyone.",
        "suggestion": "💡 Take a quick break and try again in about a minute. Your data will still be there!"
    },
    ErrorCodes.TIMEOUT: {
        "message": "This is taking longer than expected",
        "detail": "Your request is taking a while to process. This usually happens with very large datasets.",
        "suggestion": "💡 Try a more specific question, or upload a smaller slice of your data."
    },
    ErrorCodes.UNKNOWN_ERROR: {
        "message": "Hmm, something unexpected happened",
        "detail": "We encountered an issue we weren't expecting. Don't worry - it's not your fault!",
        "suggestion": "💡 Give it another try in a moment. If the problem keeps happening, try a different question."
    }
}

def get_error_response(error_code: str, additional_detail: Optional[str] = None) -> Dict[str, str]:
    """
    Get user-friendly error response for an error code.

    Args:
        error_code: One of the ErrorCodes constants
        additional_detail: Optional additional detail to append

    Returns:
        Dictionary with code, message, detail, and suggestion
    """
    error_info = ERROR_MESSAGES.get(error_code, ERROR_MESSAGES[ErrorCodes.UNKNOWN_ERROR])

    response = {
        "code": error_code,
        "message": error_info["message"],
        "detail": error_info["detail"],
        "suggestion": error_info["suggestion"]
    }

    if additional_detail:
        response["detail"] = f"{response['detail']} {additional_detail}"

    return response


class AnalysisError(Exception):
    """Base class for errors that are reported back to the caller."""

    status_code = 500

    def __init__(self, code: str, additional_detail: Optional[str] = None):
        self.code = code
        self.additional_detail = additional_detail
        super().__init__(additional_detail or code)

    def to_response(self, correlation_id: Optional[str] = None) -> Dict[str, Any]:
        error_info: Dict[str, Any] = get_error_response(self.code, self.additional_detail)
        if correlation_id:
            error_info["correlation_id"] = correlation_id
        return error_info


class InvalidInputError(AnalysisError):
    """Missing query, empty dataset or a malformed credential."""

    status_code = 400


class UpstreamServiceError(AnalysisError):
    """The LLM provider failed or could not be reached."""

    status_code = 502


class FileTooLargeError(InvalidInputError):
    """Uploaded file exceeds the configured size limit."""

    status_code = 413
