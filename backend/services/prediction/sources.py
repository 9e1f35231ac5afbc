"""Collaborator interfaces for prep-state data, plus an in-memory implementation.

The store only ever talks to the abstract interfaces below; the in-memory
implementation backs the default wiring and the tests. Every mutator on it
sends a stale notification, the same way the checklist, research and
practice screens do after saving.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging

from models.schemas.inputs import (
    Checklist,
    CompanyResearch,
    JobRecord,
    PracticeSession,
    UserProfile,
)

logger = logging.getLogger(__name__)


class JobSource(ABC):
    """Authoritative for job and interview existence."""

    @abstractmethod
    async def get_job(self, user_id: str, job_id: str) -> JobRecord | None:
        """Return the job with its embedded interviews, or None."""

    @abstractmethod
    async def list_jobs(self, user_id: str) -> list[JobRecord]:
        """Return every job the user owns."""


class ChecklistSource(ABC):
    @abstractmethod
    async def get_checklist(self, user_id: str, job_id: str, interview_id: str) -> Checklist | None:
        """Return the interview's preparation checklist, or None."""


class ResearchSource(ABC):
    @abstractmethod
    async def get_research(self, user_id: str, job_id: str) -> CompanyResearch | None:
        """Return the company research saved for the job, or None."""


class PracticeSource(ABC):
    @abstractmethod
    async def list_sessions(self, user_id: str, job_id: str) -> list[PracticeSession]:
        """Return practice sessions recorded against the job."""


class ProfileSource(ABC):
    @abstractmethod
    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Return the user's profile, or None."""


@dataclass
class PrepSources:
    jobs: JobSource
    checklists: ChecklistSource
    research: ResearchSource
    practice: PracticeSource
    profiles: ProfileSource

    @classmethod
    def backed_by(cls, source) -> "PrepSources":
        """Use one object implementing every interface for all five roles."""
        return cls(jobs=source, checklists=source, research=source, practice=source, profiles=source)


class InMemoryPrepData(JobSource, ChecklistSource, ResearchSource, PracticeSource, ProfileSource):
    """Process-local prep state. Mutators notify `notifier` (anything with notify_stale)."""

    def __init__(self, notifier=None) -> None:
        self.notifier = notifier
        self._jobs: dict[tuple[str, str], JobRecord] = {}
        self._checklists: dict[tuple[str, str, str], Checklist] = {}
        self._research: dict[tuple[str, str], CompanyResearch] = {}
        self._sessions: dict[tuple[str, str], list[PracticeSession]] = {}
        self._profiles: dict[str, UserProfile] = {}

    # --- reads ---

    async def get_job(self, user_id: str, job_id: str) -> JobRecord | None:
        job = self._jobs.get((user_id, job_id))
        return job.model_copy(deep=True) if job else None

    async def list_jobs(self, user_id: str) -> list[JobRecord]:
        return [job.model_copy(deep=True) for (uid, _), job in self._jobs.items() if uid == user_id]

    async def get_checklist(self, user_id: str, job_id: str, interview_id: str) -> Checklist | None:
        checklist = self._checklists.get((user_id, job_id, interview_id))
        return checklist.model_copy(deep=True) if checklist else None

    async def get_research(self, user_id: str, job_id: str) -> CompanyResearch | None:
        research = self._research.get((user_id, job_id))
        return research.model_copy(deep=True) if research else None

    async def list_sessions(self, user_id: str, job_id: str) -> list[PracticeSession]:
        return [s.model_copy(deep=True) for s in self._sessions.get((user_id, job_id), [])]

    async def get_profile(self, user_id: str) -> UserProfile | None:
        profile = self._profiles.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    # --- mutations ---

    def _notify(self, user_id: str, job_id: str, interview_id: str) -> None:
        if self.notifier is not None:
            self.notifier.notify_stale(user_id, job_id, interview_id)

    def _notify_job(self, user_id: str, job_id: str) -> None:
        job = self._jobs.get((user_id, job_id))
        for interview in job.interviews if job else []:
            self._notify(user_id, job_id, interview.interview_id)

    def _notify_user(self, user_id: str) -> None:
        for (uid, job_id) in list(self._jobs):
            if uid == user_id:
                self._notify_job(uid, job_id)

    def save_job(self, job: JobRecord) -> None:
        self._jobs[(job.user_id, job.job_id)] = job.model_copy(deep=True)
        # Other interviews read this job's outcomes as history
        self._notify_user(job.user_id)

    def remove_job(self, user_id: str, job_id: str) -> None:
        self._jobs.pop((user_id, job_id), None)
        self._notify_user(user_id)

    def set_interview_outcome(self, user_id: str, job_id: str, interview_id: str, outcome: str) -> None:
        job = self._jobs.get((user_id, job_id))
        interview = job.find_interview(interview_id) if job else None
        if interview is None:
            logger.warning("Outcome for unknown interview %s/%s ignored", job_id, interview_id)
            return
        interview.outcome = outcome
        self._notify_user(user_id)

    def save_checklist(self, user_id: str, job_id: str, interview_id: str, checklist: Checklist) -> None:
        self._checklists[(user_id, job_id, interview_id)] = checklist.model_copy(deep=True)
        self._notify(user_id, job_id, interview_id)

    def toggle_checklist_item(
        self, user_id: str, job_id: str, interview_id: str, item_id: str, completed: bool,
    ) -> None:
        checklist = self._checklists.get((user_id, job_id, interview_id))
        for item in checklist.items if checklist else []:
            if item.item_id == item_id:
                item.completed = completed
                self._notify(user_id, job_id, interview_id)
                return
        logger.warning("Checklist item %s not found for interview %s", item_id, interview_id)

    def save_research(self, user_id: str, job_id: str, research: CompanyResearch) -> None:
        self._research[(user_id, job_id)] = research.model_copy(deep=True)
        self._notify_job(user_id, job_id)

    def save_practice_session(self, user_id: str, session: PracticeSession) -> None:
        self._sessions.setdefault((user_id, session.job_id), []).append(session.model_copy(deep=True))
        self._notify_job(user_id, session.job_id)

    def save_profile(self, profile: UserProfile) -> None:
        self._profiles[profile.user_id] = profile.model_copy(deep=True)
        self._notify_user(profile.user_id)
