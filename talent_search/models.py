from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


TaskStatus = Literal["PENDING", "STARTED", "SUCCESS", "FAILURE", "RETRY"]
FeedbackType = Literal["like", "dislike"]
SearchRoute = Literal["search", "refine"]
PollState = Literal["created", "polling", "success", "failure", "poll_error", "stopped"]


class SearchQueryRequest(BaseModel):
    query: str
    top_k: int = Field(default=5, ge=1)
    session_id: Optional[str] = None


class RefineQueryRequest(BaseModel):
    refinement_query: str
    session_id: str
    top_k: int = Field(default=5, ge=1)


class FeedbackRequest(BaseModel):
    session_id: str
    profile_id: str
    search_result_feedback_id: str
    feedback_type: FeedbackType
    comment: Optional[str] = None
    query_text: Optional[str] = None
    user_agent: Optional[str] = None
    search_rank_position: Optional[int] = None
    chunk_id: Optional[str] = None
    search_timestamp: Optional[str] = None
    time_to_feedback: int = Field(default=0, ge=0)


class FeedbackAck(BaseModel):
    message: str = ""
    status: str = ""


# Profile records are owned by the backend; unknown fields are kept so a
# restored conversation serializes back to what it was saved from.
class ContactInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = None
    github_url: Optional[str] = None
    portfolio_url: Optional[str] = None
    location: Optional[str] = None


class WorkExperience(BaseModel):
    model_config = ConfigDict(extra="allow")

    company: Optional[str] = None
    role: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    location: Optional[str] = None
    responsibilities: Optional[List[str]] = None
    description: Optional[str] = None
    duration_months: Optional[int] = None


class Education(BaseModel):
    model_config = ConfigDict(extra="allow")

    institution: Optional[str] = None
    degree: Optional[str] = None
    field_of_study: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    description: Optional[str] = None
    duration_months: Optional[int] = None


class Project(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    description: Optional[str] = None
    technologies_used: Optional[List[str]] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    url: Optional[str] = None
    duration_months: Optional[int] = None


class ProfessionalProfile(BaseModel):
    model_config = ConfigDict(extra="allow")

    profile_id: str
    contact_info: Optional[ContactInfo] = None
    summary: Optional[str] = None
    work_experience: Optional[List[WorkExperience]] = None
    education: Optional[List[Education]] = None
    skills: Optional[List[str]] = None
    projects: Optional[List[Project]] = None
    certifications: Optional[List[str]] = None
    publications: Optional[List[str]] = None
    awards: Optional[List[str]] = None
    created_at: Optional[str] = None


class ProcessedQuery(BaseModel):
    model_config = ConfigDict(extra="allow")

    original_query: str
    semantic_query: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    strict_filters: Dict[str, Any] = Field(default_factory=dict)
    concepts: List[str] = Field(default_factory=list)
    intent: Optional[str] = None
    core_semantic_intent: Optional[str] = None
    essential_entities: Optional[List[str]] = None
    query_variations: Optional[List[str]] = None
    requested_result_count: Optional[int] = None


class SearchResultItem(BaseModel):
    profile: ProfessionalProfile
    score: float
    explanation: Optional[str] = None
    feedback_id: str
    relevant_chunks: Optional[List[Any]] = None
    ranking_features: Optional[Dict[str, float]] = None


class SearchQueryResponse(BaseModel):
    query: str = ""
    session_id: str = ""
    processed_query: Optional[ProcessedQuery] = None
    results: List[SearchResultItem] = Field(default_factory=list)
    generated_summary: Optional[str] = None
    message: Optional[str] = None


class ProfileUploadResponse(BaseModel):
    task_id: str
    filename: str = ""
    message: str = ""


class TaskStatusResponse(BaseModel):
    task_id: str
    status: TaskStatus
    metadata: Optional[Dict[str, Any]] = None
    result: Optional[Any] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    checks: Dict[str, bool] = Field(default_factory=dict)


class QueryMessage(BaseModel):
    type: Literal["query"] = "query"
    content: str
    timestamp: Optional[datetime] = None


class ResponseMessage(BaseModel):
    type: Literal["response"] = "response"
    content: str
    summary: Optional[str] = None
    results: List[SearchResultItem] = Field(default_factory=list)
    timestamp: Optional[datetime] = None


Message = Annotated[Union[QueryMessage, ResponseMessage], Field(discriminator="type")]


class SearchOutcome(BaseModel):
    route: SearchRoute
    query: str
    message: ResponseMessage
    response: Optional[SearchQueryResponse] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PollSnapshot(BaseModel):
    task_id: str
    state: PollState
    status: Optional[TaskStatus] = None
    error: Optional[str] = None
    polls: int = 0
    transitions: List[PollState] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None
    updated_at: datetime


class SubmitQueryRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: Optional[int] = Field(default=None, ge=1)


class SubmitFeedbackRequest(BaseModel):
    profile_id: str = Field(min_length=1)
    feedback_id: str = Field(min_length=1)
    feedback_type: FeedbackType
    comment: Optional[str] = None
    rank_position: Optional[int] = Field(default=None, ge=1)


class SessionStateResponse(BaseModel):
    session_id: str
    established: bool
    is_searching: bool
    messages: List[Message] = Field(default_factory=list)


class UploadStartedResponse(BaseModel):
    task_id: str
    filename: str
    message: str
    poll: PollSnapshot
