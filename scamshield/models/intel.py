"""
intel.py — Pydantic models for grounded regional scam intelligence.

Field aliases are the camelCase names Gemini is asked to produce, so the
model's JSON validates directly and the UI receives the same shape.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class TopScam(BaseModel):
    title: str
    count: int = Field(default=0, ge=0)  # estimated report intensity


class Source(BaseModel):
    title: str = ""
    uri:   str


class RegionalAlert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    location:         str
    risk_level:       RiskLevel = Field(alias="riskLevel")
    top_scams:        list[TopScam] = Field(default_factory=list, alias="topScams")
    recent_incidents: list[str] = Field(default_factory=list, alias="recentIncidents")
    safety_tip:       str = Field(alias="safetyTip")
    sources:          list[Source] = Field(default_factory=list)  # from grounding metadata
