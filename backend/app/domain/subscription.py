"""
Subscription Domain Models

Domain models for plans, subscriptions and usage limits.
Enums, typed limits, DTOs, and domain entities for the billing bounded context.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
)


class PlanName(str, Enum):
    """Plan identifiers seeded in subscription_plans."""
    FREE = "free"
    PRO = "pro"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status (mirrors Stripe)."""
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    TRIALING = "trialing"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"


class BillingPeriod(str, Enum):
    """Billing period for checkout."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class LimitKey(str, Enum):
    """Keys of a plan's limits mapping, as stored in the limits JSONB column."""
    MAX_TASKS = "maxTasks"
    MAX_WORKSPACES = "maxWorkspaces"
    MAX_FRIENDS = "maxFriends"
    MAX_NUDGES_PER_DAY = "maxNudgesPerDay"
    JARVIS_CONVERSATIONS_PER_MONTH = "jarvisConversationsPerMonth"
    JARVIS_TOKENS_PER_MONTH = "jarvisTokensPerMonth"
    CONVERSATION_HISTORY_DAYS = "conversationHistoryDays"
    MAX_FILE_SIZE = "maxFileSize"


class UsageMetric(str, Enum):
    """Counter names stored in subscription_usage.metric_name."""
    TASKS_CREATED = "tasks_created"
    WORKSPACES_CREATED = "workspaces_created"
    FRIENDS_COUNT = "friends_count"
    NUDGES_SENT = "nudges_sent"
    JARVIS_CONVERSATIONS = "jarvis_conversations"
    JARVIS_TOKENS = "jarvis_tokens"


# Limit keys backed by a usage counter. Missing keys describe a property
# checked elsewhere (e.g. upload size) and have nothing to accumulate.
LIMIT_METRICS: dict[LimitKey, UsageMetric] = {
    LimitKey.MAX_TASKS: UsageMetric.TASKS_CREATED,
    LimitKey.MAX_WORKSPACES: UsageMetric.WORKSPACES_CREATED,
    LimitKey.MAX_FRIENDS: UsageMetric.FRIENDS_COUNT,
    LimitKey.MAX_NUDGES_PER_DAY: UsageMetric.NUDGES_SENT,
    LimitKey.JARVIS_CONVERSATIONS_PER_MONTH: UsageMetric.JARVIS_CONVERSATIONS,
    LimitKey.JARVIS_TOKENS_PER_MONTH: UsageMetric.JARVIS_TOKENS,
}

MONTHLY_AI_METRICS = (UsageMetric.JARVIS_CONVERSATIONS, UsageMetric.JARVIS_TOKENS)


# =============================================================================
# Typed Limits
# =============================================================================

# Storage/wire sentinel for "no limit"
UNLIMITED = -1


@dataclass(frozen=True)
class Unlimited:
    """A limit that never blocks."""

    @property
    def raw(self) -> int:
        return UNLIMITED

    def allows(self, current: int) -> bool:
        return True


@dataclass(frozen=True)
class Bounded:
    """A finite limit; reaching it exactly blocks the next action."""
    value: int

    @property
    def raw(self) -> int:
        return self.value

    def allows(self, current: int) -> bool:
        return current < self.value


Limit = Union[Unlimited, Bounded]


def parse_limit(value: Any) -> Limit:
    """Convert a stored integer (-1 = unlimited) into a typed limit."""
    if isinstance(value, (Unlimited, Bounded)):
        return value
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Limit must be an integer, got {value!r}")
    if value == UNLIMITED:
        return Unlimited()
    if value < 0:
        raise ValueError(f"Limit must be {UNLIMITED} or non-negative, got {value}")
    return Bounded(value)


LimitValue = Annotated[
    Limit,
    PlainValidator(parse_limit),
    PlainSerializer(lambda limit: limit.raw, return_type=int),
]


class PlanLimits(BaseModel):
    """
    Typed view of a plan's limits mapping.

    Field aliases match the keys stored in subscription_plans.limits.
    A key absent from storage is treated as Bounded(0) so the limiter
    denies instead of guessing.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    max_tasks: LimitValue = Field(default=Bounded(0), alias="maxTasks")
    max_workspaces: LimitValue = Field(default=Bounded(0), alias="maxWorkspaces")
    max_friends: LimitValue = Field(default=Bounded(0), alias="maxFriends")
    max_nudges_per_day: LimitValue = Field(default=Bounded(0), alias="maxNudgesPerDay")
    jarvis_conversations_per_month: LimitValue = Field(
        default=Bounded(0), alias="jarvisConversationsPerMonth"
    )
    jarvis_tokens_per_month: LimitValue = Field(
        default=Bounded(0), alias="jarvisTokensPerMonth"
    )
    conversation_history_days: LimitValue = Field(
        default=Bounded(0), alias="conversationHistoryDays"
    )
    max_file_size: LimitValue = Field(default=Bounded(0), alias="maxFileSize")

    def get(self, key: LimitKey) -> Limit:
        """Return the typed limit for a limit key."""
        return getattr(self, _FIELD_BY_KEY[key])

    def to_raw(self) -> dict[str, int]:
        """Serialize back to the JSONB representation."""
        return self.model_dump(by_alias=True)


_FIELD_BY_KEY: dict[LimitKey, str] = {
    LimitKey(field.alias): name for name, field in PlanLimits.model_fields.items()
}


# =============================================================================
# Tier Configuration (seed data)
# =============================================================================

FREE_TIER_LIMITS = PlanLimits(
    maxTasks=50,
    maxWorkspaces=1,
    maxFriends=10,
    maxNudgesPerDay=3,
    jarvisConversationsPerMonth=5,
    jarvisTokensPerMonth=10000,
    conversationHistoryDays=30,
    maxFileSize=1 * 1024 * 1024,  # 1MB
)

PRO_TIER_LIMITS = PlanLimits(
    maxTasks=UNLIMITED,
    maxWorkspaces=UNLIMITED,
    maxFriends=UNLIMITED,
    maxNudgesPerDay=UNLIMITED,
    jarvisConversationsPerMonth=UNLIMITED,
    jarvisTokensPerMonth=100000,
    conversationHistoryDays=UNLIMITED,
    maxFileSize=10 * 1024 * 1024,  # 10MB
)

FREE_FEATURES = [
    "Up to 50 tasks",
    "1 workspace",
    "Basic lists & subtasks",
    "5 Jarvis conversations per month",
    "Up to 10K tokens for Jarvis",
    "Up to 10 friends",
    "Email notifications",
    "Basic search",
    "File attachments up to 1MB",
]

PRO_FEATURES = [
    "Unlimited tasks & workspaces",
    "Unlimited Jarvis AI conversations",
    "Up to 100K tokens per month for Jarvis",
    "Advanced productivity analytics",
    "Unlimited friends & nudges",
    "Team collaboration features",
    "Priority support (24h response)",
    "File attachments up to 10MB",
    "Export data (CSV, JSON)",
    "Recurring tasks",
    "Task templates",
]


# =============================================================================
# Domain Entities
# =============================================================================

class SubscriptionPlan(BaseModel):
    """Plan definition (read-only from the application's perspective)."""
    id: str
    name: str
    description: Optional[str] = None
    price_monthly: float = 0
    price_yearly: Optional[float] = None
    features: list[str] = Field(default_factory=list)
    limits: PlanLimits = Field(default_factory=PlanLimits)
    stripe_price_id_monthly: Optional[str] = None
    stripe_price_id_yearly: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    def price_id_for(self, billing_period: BillingPeriod) -> Optional[str]:
        """Stripe price id for a billing period, if configured."""
        if billing_period == BillingPeriod.YEARLY:
            return self.stripe_price_id_yearly
        return self.stripe_price_id_monthly


class Subscription(BaseModel):
    """A user's single subscription row, optionally joined with its plan."""
    id: Optional[str] = None
    user_id: str
    plan_id: str
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    plan: Optional[SubscriptionPlan] = None

    model_config = ConfigDict(from_attributes=True)


class UsageSummary(BaseModel):
    """Current counter values shown on the subscription settings page."""
    model_config = ConfigDict(populate_by_name=True)

    tasks: int = 0
    workspaces: int = 0
    friends: int = 0
    nudges_today: int = Field(default=0, alias="nudgesToday")
    jarvis_conversations_this_month: int = Field(
        default=0, alias="jarvisConversationsThisMonth"
    )
    jarvis_tokens_this_month: int = Field(default=0, alias="jarvisTokensThisMonth")


class SubscriptionWithUsage(Subscription):
    """Subscription, plan and usage counters in one view."""
    usage: UsageSummary


class LimitCheckResult(BaseModel):
    """Outcome of a quota check. limit is -1 when unlimited."""
    allowed: bool
    current: int
    limit: int
    reason: Optional[str] = None


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CreateCheckoutRequest(BaseModel):
    """Request DTO for creating a checkout session."""
    model_config = ConfigDict(populate_by_name=True)

    plan_id: str = Field(..., alias="planId", description="Plan to purchase")
    billing_period: BillingPeriod = Field(
        default=BillingPeriod.MONTHLY,
        alias="billingPeriod",
        description="Billing period (monthly or yearly)"
    )


class RedirectResponse(BaseModel):
    """Response DTO for hosted Stripe pages (checkout, portal)."""
    url: Optional[str] = None


class SyncSubscriptionResponse(BaseModel):
    """Response DTO for manual Stripe sync."""
    message: str
    synced: bool
    plan: Optional[str] = None
