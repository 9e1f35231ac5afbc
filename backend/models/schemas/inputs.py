"""Records read from the prep-state collaborators.

These mirror what the checklist, research, practice, job and profile
services hand back. Every field is optional-ish so partial records still
parse; the extractors treat missing data as a reason for lower confidence.
"""

from datetime import datetime

from pydantic import BaseModel

from models.schemas.context import InterviewType


class ChecklistItem(BaseModel):
    item_id: str = ""
    label: str = ""
    category: str = "general"  # research, practice, materials, logistics, mindset
    completed: bool = False


class Checklist(BaseModel):
    items: list[ChecklistItem] = []


class CompanyResearch(BaseModel):
    description: str = ""
    mission: str = ""
    culture: str = ""
    leadership_results: list[str] = []
    news: list[str] = []
    competitors: list[str] = []
    financial_health: list[str] = []
    social_links: dict[str, str] = {}  # linkedin, twitter, facebook
    last_researched: datetime | None = None


class PracticeSession(BaseModel):
    session_id: str = ""
    job_id: str = ""
    session_type: str = "behavioral"
    average_score: float = 0.0  # 0-100
    completed: bool = True
    focus_areas: list[str] = []
    created_at: datetime


class InterviewRecord(BaseModel):
    interview_id: str
    interview_type: InterviewType = "video"
    date: datetime
    outcome: str = "pending"  # pending, passed, rejected, offer


class JobRecord(BaseModel):
    job_id: str
    user_id: str
    job_title: str = ""
    company: str = ""
    archived: bool = False
    match_score: float | None = None  # 0-100, from job matching
    match_breakdown: dict[str, float | None] = {}  # skills, experience, education
    skill_gaps: list[str] = []
    requirements: list[str] = []
    interviews: list[InterviewRecord] = []

    def find_interview(self, interview_id: str) -> InterviewRecord | None:
        for interview in self.interviews:
            if interview.interview_id == interview_id:
                return interview
        return None


class UserProfile(BaseModel):
    user_id: str
    skills: list[str] = []
