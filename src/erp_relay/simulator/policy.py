"""
Replenishment Policy - parameters of the simulated purchasing department

Cadence, lead times, safety stock and jitter. The defaults reproduce a
buyer who orders every two to three months, gets goods in four to six
weeks, and panics when cover drops under 45 days.
"""

from pydantic import BaseModel, Field, model_validator


class ReplenishmentPolicy(BaseModel):
    """
    Purchasing parameters

    All durations are in simulated days.
    """

    # Regular cadence
    purchase_interval_min_days: int = Field(default=60, ge=1)
    purchase_interval_max_days: int = Field(default=90, ge=1)
    first_purchase_min_days: int = Field(
        default=5, ge=0, description="Earliest first order after the clock origin"
    )
    first_purchase_max_days: int = Field(default=25, ge=0)

    # Lead times
    execution_lag_days: float = Field(
        default=5, ge=0, description="Days from creation until approval executes the order"
    )
    delivery_lag_min_days: int = Field(
        default=25, ge=1, description="Minimum days from creation to delivery (>= 1 keeps delivery after creation)"
    )
    delivery_lag_max_days: int = Field(default=40, ge=1)

    # Safety stock
    safety_stock_days: float = Field(
        default=45, ge=0, description="Days of cover below which an emergency order is placed"
    )
    safety_stock_multiplier: float = Field(default=1.2, ge=1.0)
    min_target_cover_days: float = Field(
        default=60, ge=0, description="Floor for the cover each order aims to buy"
    )

    # Jitter
    quantity_jitter: float = Field(default=0.25, ge=0.0, lt=1.0)
    price_jitter: float = Field(default=0.20, ge=0.0, lt=1.0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_ranges(self) -> "ReplenishmentPolicy":
        for low, high in (
            ("purchase_interval_min_days", "purchase_interval_max_days"),
            ("first_purchase_min_days", "first_purchase_max_days"),
            ("delivery_lag_min_days", "delivery_lag_max_days"),
        ):
            if getattr(self, low) > getattr(self, high):
                raise ValueError(f"{low} must not exceed {high}")
        return self

    @property
    def target_cover_days(self) -> float:
        """Days of consumption one order is meant to cover"""
        return max(self.safety_stock_days * self.safety_stock_multiplier, self.min_target_cover_days)

    def target_quantity(self, daily_rate: float) -> float:
        return daily_rate * self.target_cover_days

