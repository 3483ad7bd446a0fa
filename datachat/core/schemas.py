from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Any, Dict


class LLMConfig(BaseModel):
    """Per-request model selection and credential, supplied by the caller."""
    model: str
    credential: str


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = ""
    data: List[Dict[str, Any]] = Field(default_factory=list)
    api_key: str = Field(default="", alias="apiKey")
    model: Optional[str] = None
    column_name_map: Optional[Dict[str, str]] = Field(default=None, alias="columnNameMap")


class ApiKeyTestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(default="", alias="apiKey")


class DataProfile(BaseModel):
    row_count: int
    column_types: Dict[str, str]
    column_stats: Dict[str, Dict[str, Any]]
    column_name_map: Dict[str, str]


class UploadResult(BaseModel):
    filename: str
    row_count: int
    columns: List[str]
    column_name_map: Dict[str, str]
    profile: DataProfile
    data: List[Dict[str, str]]
