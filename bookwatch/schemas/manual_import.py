from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import date

MISSING_CODE = "FALTA"


class CodeAssignment(BaseModel):
    """上传文件中一个段落的代码分配"""
    index: int  # 上传文件中的位置（从 0 开始）
    text: str
    assignedCode: str  # 例如 "DTG 1.1"，或 "FALTA" 表示未匹配
    status: Literal["auto", "manual", "missing", "pending"] = "manual"


class ValidationIssue(BaseModel):
    type: Literal["format", "sequence", "duplicate", "non_existent", "missing_required"]
    message: str
    affectedIndex: Optional[int] = None
    affectedCode: Optional[str] = None


class ValidateAssignmentsRequest(BaseModel):
    assignments: List[CodeAssignment]


class ValidateAssignmentsResponse(BaseModel):
    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)


class ExtractParagraphsRequest(BaseModel):
    content: str


class ExtractParagraphsResponse(BaseModel):
    paragraphs: List[str]
    count: int


class StructureRequest(BaseModel):
    paragraphs: List[str]


class StructuralComparison(BaseModel):
    uploadedCount: int
    dbCount: int
    match: Literal["exact", "extra", "missing"]
    extraCount: Optional[int] = None
    missingCount: Optional[int] = None


class MatchSuggestion(BaseModel):
    code: str
    similarity: float
    dbText: str


class ParagraphMatch(BaseModel):
    index: int
    bestMatch: Optional[MatchSuggestion] = None
    suggestions: List[MatchSuggestion] = Field(default_factory=list)


class MatchRequest(BaseModel):
    paragraphs: List[str]


class MatchResponse(BaseModel):
    matches: List[ParagraphMatch]


class ManualImportRequest(BaseModel):
    versionType: Literal["regular", "physical_baseline"] = "regular"
    editionDate: Optional[date] = None
    versionNotes: Optional[str] = None
    assignments: List[CodeAssignment]


class ManualImportResult(BaseModel):
    success: bool
    versionId: str
    versionNumber: int
    snapshotsCreated: int
    isBaseline: bool
