"""
agenda/models/plan.py

Plan, permission and usage models shared by the API and the client.

Wire format is camelCase (pointsProgram, maxProfessionals, ...); Python code
uses snake_case attributes. Models are frozen: a resolved plan is replaced
whole, never patched.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


# Wire names, in display order
FEATURE_KEYS = (
    "dashboard",
    "appointments",
    "services",
    "professionals",
    "clients",
    "reviews",
    "tasks",
    "pointsProgram",
    "loyalty",
    "inventory",
    "messages",
    "coupons",
    "financial",
    "reports",
    "settings",
)


class PlanPermissions(CamelModel):
    """Feature flags of a plan. Absent or null keys are False."""
    model_config = ConfigDict(extra="ignore")

    dashboard: bool = False
    appointments: bool = False
    services: bool = False
    professionals: bool = False
    clients: bool = False
    reviews: bool = False
    tasks: bool = False
    points_program: bool = False
    loyalty: bool = False
    inventory: bool = False
    messages: bool = False
    coupons: bool = False
    financial: bool = False
    reports: bool = False
    settings: bool = False

    @field_validator("*", mode="before")
    @classmethod
    def _none_is_denied(cls, value: Any) -> Any:
        return False if value is None else value

    @classmethod
    def allow_all(cls) -> "PlanPermissions":
        return cls(**{key: True for key in FEATURE_KEYS})

    @classmethod
    def deny_all(cls) -> "PlanPermissions":
        return cls()

    def get(self, feature: str) -> bool:
        """Look up a feature by wire or attribute name; unknown names are denied."""
        attr = _FEATURE_ATTRS.get(feature)
        if attr is None:
            return False
        return bool(getattr(self, attr))

    def as_dict(self) -> Dict[str, bool]:
        return self.model_dump(by_alias=True)


_FEATURE_ATTRS: Dict[str, str] = {}
for _attr, _field in PlanPermissions.model_fields.items():
    _FEATURE_ATTRS[_attr] = _attr
    _FEATURE_ATTRS[_field.alias or _attr] = _attr


def is_known_feature(feature: str) -> bool:
    return feature in _FEATURE_ATTRS


class PlanUsage(CamelModel):
    """Metered professional headcount. The count may exceed the limit."""
    professionals_count: int = Field(ge=0)
    professionals_limit: int = Field(ge=0)


class PlanInfo(CamelModel):
    id: Optional[int] = None
    name: str
    max_professionals: int = Field(default=0, ge=0)
    permissions: PlanPermissions = Field(default_factory=PlanPermissions)


class PlanData(CamelModel):
    """Unit returned by the plan-info endpoint."""
    plan: PlanInfo
    usage: Optional[PlanUsage] = None


class LimitInfo(CamelModel):
    current: int
    limit: int
    can_add: bool
    # limit - current; negative when a company is already over its limit
    remaining: int


class PlanCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    price_cents: int = Field(default=0, ge=0)
    free_days: int = Field(default=0, ge=0)
    max_professionals: int = Field(default=1, ge=0)
    permissions: Optional[PlanPermissions] = None


class PlanSummary(CamelModel):
    id: int
    name: str
    price_cents: int
    free_days: int
    max_professionals: int
    permissions: PlanPermissions
    is_active: bool


class CompanyCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    email: Optional[str] = None
    plan_id: Optional[int] = None


class CompanyPlan(CamelModel):
    """A company's effective plan after defaults are applied."""
    company_id: int
    plan_id: int
    name: str
    max_professionals: int
    permissions: PlanPermissions
