"""
Service container and FastAPI dependencies
"""

from typing import Optional

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..ledger import LedgerStore
from ..balances import BalanceAccumulator
from ..customers import CustomerManager
from ..suppliers import SupplierManager
from ..bookings import BookingManager
from ..purchases import PurchaseManager
from ..sources import BookingSource, PurchaseSource
from ..statement import StatementBuilder
from ..vouchers import VoucherService
from ..config import StudioConfig, get_config


class StudioSystem:
    """Studio ledger with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[StudioConfig] = None):
        self.config = config or get_config()

        # Initialize storage
        self.storage = storage or create_storage(self.config.database_url)

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.ledger = LedgerStore(self.storage, self.audit_trail,
                                  max_page_size=self.config.max_page_size)
        self.balances = BalanceAccumulator(self.storage, self.audit_trail,
                                           rollback_retries=self.config.balance_update_retries)
        self.customer_manager = CustomerManager(self.storage, self.audit_trail)
        self.supplier_manager = SupplierManager(self.storage, self.audit_trail)
        self.booking_manager = BookingManager(self.storage, self.audit_trail, self.balances)
        self.purchase_manager = PurchaseManager(self.storage, self.audit_trail, self.balances)

        # Read side
        self.booking_source = BookingSource(self.booking_manager)
        self.purchase_source = PurchaseSource(self.purchase_manager)
        self.statement_builder = StatementBuilder(
            self.ledger, self.customer_manager, self.supplier_manager,
            self.booking_source, self.purchase_source
        )

        # Write side for manual postings
        self.voucher_service = VoucherService(self.ledger, self.balances, self.customer_manager)

    def close(self) -> None:
        self.storage.close()


# Global studio system instance, created on first use
studio_system: Optional[StudioSystem] = None


def get_studio_system() -> StudioSystem:
    global studio_system
    if studio_system is None:
        studio_system = StudioSystem()
    return studio_system
