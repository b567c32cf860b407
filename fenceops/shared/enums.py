"""Enumerations shared by models, schemas and services"""

from enum import Enum


class MarketDemand(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class CompetitionLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class QuoteStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ClusterStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class ClusterJobStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class DiscountFamily(str, Enum):
    CLUSTER = "cluster"
    FLEXIBLE = "flexible"


class SchedulingOptionType(str, Enum):
    JOIN_CLUSTER = "join_cluster"
    NEW_CLUSTER = "new_cluster"
    FLEXIBLE = "flexible_scheduling"


class ApprovalRuleType(str, Enum):
    AMOUNT = "amount"
    DISCOUNT = "discount"
    ANOMALY = "anomaly"
    CUSTOM = "custom"


class ApprovalLevel(str, Enum):
    MANAGER = "manager"
    DIRECTOR = "director"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return APPROVAL_LEVEL_ORDER.index(self)


APPROVAL_LEVEL_ORDER = [ApprovalLevel.MANAGER, ApprovalLevel.DIRECTOR, ApprovalLevel.OWNER]


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class StepStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class Decision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
