from __future__ import annotations
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import MAX_MESSAGE_CHARS

Category = Literal[
    "OTR Request", "Subject Enrollment", "Grade Inquiry", "Document Request",
    "Enrollment", "Scholarship", "Financial Aid", "Tuition Payment",
    "Academic Complaint", "Course Evaluation", "Library", "General Inquiry",
    "Technical Support", "Other",
]
Priority = Literal["Low", "Normal", "High", "Urgent"]
Status = Literal["Pending", "In Review", "Approved", "Rejected", "Completed", "Cancelled", "On Hold"]
AdminSettableStatus = Literal["Pending", "In Review", "Completed"]

class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

class ConversationContext(CamelModel):
    original_message: str = Field(..., alias="originalMessage", min_length=1, max_length=MAX_MESSAGE_CHARS)
    category: Optional[str] = Field(None, max_length=100)
    signature: Optional[str] = Field(None, max_length=128)

class ChatMessageRequest(CamelModel):
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_CHARS,
                         description="Message must be between 1 and 1000 characters")
    conversation_context: Optional[ConversationContext] = Field(None, alias="conversationContext")

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "message": "yes",
                "conversationContext": {
                    "originalMessage": "I need an OTR, 2 copies, purpose: job application",
                    "category": "OTR Request",
                },
            }
        },
    )

class RequestDetails(CamelModel):
    number_of_copies: Optional[int] = Field(None, alias="numberOfCopies", ge=1, le=10)
    purpose: Optional[str] = Field(None, max_length=500)
    subject_code: Optional[str] = Field(None, alias="subjectCode", max_length=50)
    subject_name: Optional[str] = Field(None, alias="subjectName", max_length=200)
    semester: Optional[str] = Field(None, max_length=50)
    academic_year: Optional[str] = Field(None, alias="academicYear", max_length=20)
    student_id: Optional[str] = Field(None, alias="studentId", max_length=50)
    course: Optional[str] = Field(None, max_length=200)
    year_level: Optional[str] = Field(None, alias="yearLevel", max_length=20)

class TicketCreateRequest(CamelModel):
    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10, max_length=5000)
    category: Category
    priority: Priority = "Normal"
    request_details: Optional[RequestDetails] = Field(None, alias="requestDetails")

class StatusUpdateRequest(CamelModel):
    status: AdminSettableStatus
    remarks: Optional[str] = Field(None, max_length=2000)

class CommentRequest(CamelModel):
    content: str = Field(..., min_length=1, max_length=2000)
    is_internal: bool = Field(False, alias="isInternal")

class AssignRequest(CamelModel):
    assignee_id: Optional[str] = Field(None, alias="assigneeId", max_length=100)

