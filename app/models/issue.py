from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

IssueSeverity = Literal["error", "warning", "notice"]

EvidenceType = Literal["page", "link", "http", "content", "schema", "security", "other"]

SEVERITY_ORDER: Dict[str, int] = {
    "error": 3,
    "warning": 2,
    "notice": 1,
}


class Evidence(BaseModel):
    type: EvidenceType
    message: str
    url: Optional[str] = None
    source_url: Optional[str] = None
    target_url: Optional[str] = None
    anchor_text: Optional[str] = None
    status: Optional[int] = None
    details: Optional[Dict[str, Any]] = None


class Issue(BaseModel):
    """One detected problem.

    Issues sharing ``(id, title, description)`` are merged by the
    consolidator; ``description`` is part of that identity.
    """

    id: str
    category: str
    severity: IssueSeverity
    rank: int = Field(ge=0, le=10)
    title: str
    description: str
    affected_urls: List[str] = Field(default_factory=list)
    evidence: List[Evidence] = Field(default_factory=list)
    recommendation: str = ""
    tags: List[str] = Field(default_factory=list)

    @property
    def identity(self) -> tuple:
        return (self.id, self.title, self.description)
