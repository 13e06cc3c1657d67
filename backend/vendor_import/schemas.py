"""
Vendor import request and queue payload models.

Wire names are camelCase (the web client and queue body use them); Python
attributes are snake_case.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VendorImportRequest(_CamelModel):
    """Body of POST /api/vendor-import"""
    current_statement_id: str = Field(..., alias="currentStatementId", min_length=1)
    vendor: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    pdf_base64: str = Field(..., alias="pdfBase64", min_length=1)


class VendorImportJob(VendorImportRequest):
    """Queue payload: the submission plus who submitted it and the job id."""
    job_id: str = Field(..., alias="jobId", min_length=1)
    org_id: str = Field(..., alias="orgId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)


class VendorImportSubmitResponse(BaseModel):
    jobId: str
    message: str


class ConfirmProperty(_CamelModel):
    id: str
    name: str
    address: Optional[str] = None


class ConfirmExpense(_CamelModel):
    date: str
    description: str
    vendor: str
    amount: float = Field(..., allow_inf_nan=False)


class ApprovedMatch(_CamelModel):
    """A property match the user approved in the import preview."""
    property: ConfirmProperty
    confidence: float = Field(..., allow_inf_nan=False)
    reason: Optional[str] = None
    expenses: List[ConfirmExpense]
    total_amount: float = Field(..., alias="totalAmount", allow_inf_nan=False)


class VendorImportConfirmRequest(_CamelModel):
    """Body of POST /api/vendor-import/confirm"""
    current_statement_id: str = Field(..., alias="currentStatementId", min_length=1)
    approved_matches: List[ApprovedMatch] = Field(..., alias="approvedMatches")


class VendorImportConfirmResponse(BaseModel):
    success: bool = True
    createdCount: int
    updatedPropertiesCount: int
    updatedProperties: List[str]
