"""Vendor marketplace preference schemas."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _clean_names(values: Optional[list[str]]) -> list[str]:
    seen: list[str] = []
    for value in values or []:
        name = str(value or "").strip()
        if name and name.lower() not in {s.lower() for s in seen}:
            seen.append(name)
    return seen


class VendorPreferences(BaseModel):
    preferred_categories: list[str] = Field(default_factory=list)
    preferred_states: list[str] = Field(default_factory=list)
    preferred_cities: list[str] = Field(default_factory=list)
    auto_lead_filter: bool = True
    min_budget: Optional[float] = Field(None, ge=0)
    max_budget: Optional[float] = Field(None, ge=0)

    @field_validator("preferred_categories", "preferred_states", "preferred_cities", mode="before")
    @classmethod
    def _dedupe(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = [part for part in value.split(",")]
        return _clean_names(value)

    @model_validator(mode="after")
    def _check_budget_range(self) -> "VendorPreferences":
        if self.min_budget is not None and self.max_budget is not None and self.min_budget > self.max_budget:
            raise ValueError("min_budget must not exceed max_budget")
        return self
