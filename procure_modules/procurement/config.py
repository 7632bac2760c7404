"""
Procurement Configuration Schema.

Ledger account codes and installment policy for the back office.
Actual values are loaded from the settings file at runtime.
"""

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Self

from procure_engines.posting import PostingAccounts
from procure_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.config")


@dataclass
class AccountConfig:
    """
    Account codes and payment policy.

    Field defaults follow a common Indonesian chart of accounts.
    Override at instantiation with company-specific values:

        config = AccountConfig(
            cash_bank="1-10002",
            **settings["accounts"],
        )
    """

    vendor_payable: str = "2-10100"
    vat_in: str = "1-10500"
    cash_bank: str = "1-10001"
    prepaid_withholding: str = "1-10600"
    prepaid_installment: str = "1-10400"
    tax_clearing: str = "2-10900"
    default_inventory: str = "1-10300"

    minimum_down_payment_ratio: Decimal = Decimal("0.10")
    max_partial_installments: int = 3

    def __post_init__(self):
        self.minimum_down_payment_ratio = Decimal(str(self.minimum_down_payment_ratio))
        if not Decimal("0") <= self.minimum_down_payment_ratio < Decimal("1"):
            raise ValueError(
                f"minimum_down_payment_ratio must be in [0, 1): {self.minimum_down_payment_ratio}"
            )
        if self.max_partial_installments < 1:
            raise ValueError("max_partial_installments must be at least 1")
        logger.info(
            "account_config_initialized",
            extra={
                "vendor_payable": self.vendor_payable,
                "cash_bank": self.cash_bank,
                "minimum_down_payment_ratio": str(self.minimum_down_payment_ratio),
                "max_partial_installments": self.max_partial_installments,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the default chart of accounts."""
        logger.info("account_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g. the ``accounts`` settings block)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown account settings: {unknown}")
        logger.info(
            "account_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    def posting_accounts(self) -> PostingAccounts:
        return PostingAccounts(
            vendor_payable=self.vendor_payable,
            vat_in=self.vat_in,
            cash_bank=self.cash_bank,
            prepaid_withholding=self.prepaid_withholding,
            prepaid_installment=self.prepaid_installment,
            tax_clearing=self.tax_clearing,
        )
