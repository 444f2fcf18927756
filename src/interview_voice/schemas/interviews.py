"""Records returned by the interview REST API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Interview(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(alias="_id")
    title: str
    company: str
    description: str = ""
    status: str = "scheduled"
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class ScoredAssessment(BaseModel):
    score: float
    explanation: str = ""


class TypedAssessment(BaseModel):
    type: str
    explanation: str = ""


class Feedback(BaseModel):
    """Post-interview evaluation generated by the server."""

    model_config = ConfigDict(extra="ignore")

    overall_score: float
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    confidence_assessment: Optional[ScoredAssessment] = None
    communication_style: Optional[TypedAssessment] = None
    approach_analysis: Optional[TypedAssessment] = None
    generated_at: Optional[datetime] = None


class InterviewDetails(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str
    company: str
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class FeedbackReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    feedback: Feedback
    interview_details: Optional[InterviewDetails] = Field(
        default=None, alias="interviewDetails"
    )


class InterviewCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_title: str = Field(min_length=1, alias="jobTitle")
    company: str = Field(min_length=1)
    job_description: str = Field(min_length=1, alias="jobDescription")
