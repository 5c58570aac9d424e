"""
nextspark/models/plan.py

Plan model for billing.

Plans carry the feature list and limit map consumed by the billing
evaluator. Prices are integer cents.
"""

from datetime import datetime
from typing import Optional, List, Dict
from pydantic import Field

from nextspark.models.base import ApiModel


class Plan(ApiModel):
    """
    Plan represents a capability tier.

    Examples:
    - free (default)
    - pro
    - enterprise (features ['*'], every limit -1)
    """

    id: str
    slug: str
    name: str
    type: str = "free"
    price_monthly: int = 0
    price_yearly: int = 0
    trial_days: int = 0
    features: List[str] = Field(default_factory=list)
    limits: Dict[str, int] = Field(default_factory=dict)
    sort_order: int = 0
    is_public: bool = True
    is_default: bool = False
    created_at: Optional[datetime] = None
