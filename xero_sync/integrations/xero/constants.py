"""Chart-of-accounts codes and display names used in every tenant."""

import enum


class AccountCode(str, enum.Enum):
    SALES = "4000"
    BANK = "2001"
    MERCHANT_FEES = "6041"


SALES_ACCOUNT_NAME = "Sales of Goods"
EXPENSE_ACCOUNT_NAME = "Assembly Processing Fees"
ASSET_ACCOUNT_NAME = "Assembly Asset Account"
ABSORBED_FEES_DESCRIPTION = "Assembly Absorbed Fees"
TAX_RATE_NAME_PREFIX = "Assembly Sales Tax"
REPORT_TAX_TYPE_OUTPUT = "OUTPUT"
