"""Wire models for the enrichment provider API and its callbacks."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

MAX_BATCH_ITEMS = 100


class ContactData(BaseModel):
    email: str = Field(pattern=r"^.+@.+\..+$")
    custom: Dict[str, str] = Field(default_factory=dict)


class BulkEnrichmentRequest(BaseModel):
    """Body of ``POST /v2/contact/reverse/email/bulk``."""

    name: str
    webhook_url: str
    data: List[ContactData] = Field(min_length=1, max_length=MAX_BATCH_ITEMS)


class BulkEnrichmentResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    enrichment_id: str


class EnrichmentResult(BaseModel):
    """One enriched contact delivered in a callback.

    Field names are accepted in snake or camel case. A result must identify
    its subscriber through ``custom.subscriber_id`` or ``email``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: Optional[str] = None
    custom: Dict[str, Any] = Field(default_factory=dict)
    linkedin_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("linkedin_url", "linkedinUrl")
    )
    job_title: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("job_title", "jobTitle")
    )
    company_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("company_name", "companyName")
    )
    company_domain: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("company_domain", "companyDomain")
    )
    headcount: Optional[int] = Field(default=None, gt=0)
    industry: Optional[str] = None
    credits_used: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("credits_used", "creditsUsed")
    )

    @model_validator(mode="after")
    def _require_identity(self) -> "EnrichmentResult":
        if not self.email and not self.subscriber_id:
            raise ValueError("result needs an email or custom.subscriber_id")
        return self

    @property
    def subscriber_id(self) -> Optional[str]:
        value = self.custom.get("subscriber_id")
        return str(value) if value is not None else None

    def profile_fields(self) -> Dict[str, object]:
        """Enrichment attributes to write back onto the subscriber."""
        return {
            "linkedin_url": self.linkedin_url,
            "job_title": self.job_title,
            "company_name": self.company_name,
            "company_domain": self.company_domain,
            "headcount": self.headcount,
            "industry": self.industry,
        }


class EnrichmentCallback(BaseModel):
    """Webhook body announcing the results of one provider batch."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    correlation_id: str = Field(
        validation_alias=AliasChoices("enrichment_id", "enrichmentId", "correlation_id")
    )
    results: List[EnrichmentResult] = Field(default_factory=list)
