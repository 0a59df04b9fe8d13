"""
Pydantic schemas for API request/response validation.

Request fields use the camelCase names the browser clients send.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional

from feedback_agent.core.models import Assessment


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Access Schemas
# ============================================================================

class ValidateAccessRequest(CamelModel):
    agent_id: str = Field(alias="agentId")
    access_code: str = Field(alias="accessCode")


class ValidateAccessResponse(BaseModel):
    access_token: str
    expires_at: str


class AcceptAccessRequest(CamelModel):
    agent_id: str = Field(alias="agentId")
    access_token: str = Field(alias="accessToken")


# ============================================================================
# Assessment Schemas
# ============================================================================

class AssessmentRequest(CamelModel):
    agent_id: str = Field(alias="agentId")
    student_text: str = Field(alias="studentText")
    access_token: str = Field(alias="accessToken")


class AssessmentResponse(BaseModel):
    assessment: Assessment
    feedback: str
    verification_code: str


# ============================================================================
# Criterion Schemas
# ============================================================================

class ImproveCriterionRequest(CamelModel):
    agent_id: str = Field(alias="agentId")
    sketch: str
    task_description: Optional[str] = Field(default=None, alias="taskDescription")


class ImproveCriterionResponse(BaseModel):
    text: str


class AnalyzeCriterionRequest(CamelModel):
    agent_id: str = Field(alias="agentId")
    name: Optional[str] = None
    description: Optional[str] = None
    indicator: Optional[str] = None
    bloom_level: Optional[str] = Field(default=None, alias="bloomLevel")
    bloom_index: Optional[float] = Field(default=None, alias="bloomIndex")
    weight: Optional[float] = None
    task_description: Optional[str] = Field(default=None, alias="taskDescription")


# ============================================================================
# Teacher Schemas
# ============================================================================

class MaterialResponse(BaseModel):
    id: str
    agent_id: str
    file_name: str
    mime_type: str
    status: str


class ReprocessRequest(CamelModel):
    force_trim: bool = Field(default=True, alias="forceTrim")


class AccessCodeRequest(BaseModel):
    code: str


class ExportRequest(CamelModel):
    agent_id: str = Field(alias="agentId")
    format: Literal["csv", "json", "txt"] = "csv"
    start: Optional[int] = None
    end: Optional[int] = None


class ClearLogsRequest(CamelModel):
    agent_id: str = Field(alias="agentId")


class DeletedResponse(BaseModel):
    deleted: int = 0


# ============================================================================
# Code Range Schemas
# ============================================================================

class CodeValueResponse(BaseModel):
    value: int

