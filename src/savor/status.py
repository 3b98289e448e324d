"""
Onboarding status - What a fresh install still needs before its first cycle.
"""

import os
from dataclasses import asdict, dataclass

from sqlalchemy import exists, select

from .config.schema import LLMConfig
from .storage.database import Database
from .storage.models import ArticleRow, SkillRow

__all__ = ["OnboardingStatus", "get_onboarding_status"]

# Providers that run locally and need no key
_KEYLESS_PROVIDERS = frozenset({"ollama"})


@dataclass(frozen=True)
class OnboardingStatus:
    llm_configured: bool
    has_skills: bool
    has_articles: bool

    @property
    def complete(self) -> bool:
        return self.llm_configured and self.has_skills and self.has_articles

    def to_dict(self) -> dict[str, bool]:
        return {**asdict(self), "complete": self.complete}


def llm_configured(config: LLMConfig) -> bool:
    if config.provider in _KEYLESS_PROVIDERS:
        return True
    return bool(os.environ.get(config.api_key_env))


def get_onboarding_status(database: Database, llm_config: LLMConfig) -> OnboardingStatus:
    with database.read() as session:
        has_skills = bool(session.scalar(select(exists().where(SkillRow.id.is_not(None)))))
        has_articles = bool(session.scalar(select(exists().where(ArticleRow.id.is_not(None)))))
    return OnboardingStatus(
        llm_configured=llm_configured(llm_config),
        has_skills=has_skills,
        has_articles=has_articles,
    )
