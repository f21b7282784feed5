"""Flow families handled by the workflow state machine."""

from .base import UserInput, Workflow, WorkflowContext
from .browse import BrowseWorkflow
from .secret_import import SecretImportWorkflow
from .tickets import TicketPurchaseWorkflow
from .trade import TradeWorkflow
from .transfer import DirectTransferWorkflow, PeerTransferWorkflow
from .wizards import EventWizardWorkflow, MintWizardWorkflow

__all__ = [
    "UserInput",
    "Workflow",
    "WorkflowContext",
    "BrowseWorkflow",
    "SecretImportWorkflow",
    "TicketPurchaseWorkflow",
    "TradeWorkflow",
    "DirectTransferWorkflow",
    "PeerTransferWorkflow",
    "EventWizardWorkflow",
    "MintWizardWorkflow",
]
