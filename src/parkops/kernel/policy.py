"""
Operations Policy - tenant-level parameters for access and custody

Everything that varies between deployments but must not vary within a
shift lives here: which payment methods exist, which of them put physical
cash in the operator's drawer, and how assignment expiry is compared.
"""

from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class OperationsPolicy(BaseModel):
    """
    Tenant operations parameters

    Defaults follow the platform's production configuration: four payment
    methods, cash-only custody, inclusive assignment expiry.
    """

    policy_version: str = Field(
        default="1.0",
        description="Policy version for tracking changes over time",
    )

    accepted_payment_methods: list[str] = Field(
        default=["CASH", "CARD", "WEBPAY", "TRANSFER"],
        min_length=1,
        description="Payment methods the ledger accepts",
    )

    cash_methods: list[str] = Field(
        default=["CASH"],
        description="Methods whose payments add to the operator's expected cash",
    )

    assignment_upper_bound_inclusive: bool = Field(
        default=True,
        description="Whether at == valid_to still authorizes (inclusive expiry)",
    )

    version_conflict_max_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Reload-and-retry budget for concurrent writers on one stream",
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "description": "Operations parameters governing access and cash custody"
        },
    }

    @model_validator(mode="after")
    def _cash_methods_are_accepted(self) -> "OperationsPolicy":
        unknown = set(self.cash_methods) - set(self.accepted_payment_methods)
        if unknown:
            raise ValueError(f"cash_methods not accepted: {sorted(unknown)}")
        return self

    @classmethod
    def from_file(cls, path: str | Path) -> "OperationsPolicy":
        """Load a policy from a JSON document"""
        return cls.model_validate_json(Path(path).read_text())


default_operations_policy = OperationsPolicy()
