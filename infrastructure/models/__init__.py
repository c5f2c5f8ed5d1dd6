"""Infrastructure models package exports."""
from .base import Base, metadata
from .contribution import ContributionModel, ContributionRecurModel, FinancialTrxnModel
from .customer import StripeCustomerModel
from .webhook import PaymentProcessorWebhookModel

__all__ = [
    "Base",
    "metadata",
    "ContributionModel",
    "ContributionRecurModel",
    "FinancialTrxnModel",
    "StripeCustomerModel",
    "PaymentProcessorWebhookModel",
]
