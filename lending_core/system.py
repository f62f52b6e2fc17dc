"""
System Wiring

Builds the lending component graph on top of one record store.
"""

from typing import Optional

from .audit import AuditTrail
from .config import LendingConfig, get_config
from .ledger import PaymentLedger
from .lifecycle import LoanLifecycle
from .logging_config import setup_logging
from .reconciliation import ReconciliationEngine
from .storage import RecordStore, create_store
from .users import UserDirectory


class LendingSystem:
    """Lending engine with all components initialized"""

    def __init__(self, config: Optional[LendingConfig] = None, storage: Optional[RecordStore] = None,
                 configure_logging: bool = False):
        self.config = config or get_config()
        if configure_logging:
            setup_logging(
                level=self.config.log_level,
                log_format=self.config.log_format,
                log_file=self.config.log_file
            )

        self.storage = storage or create_store(self.config)
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.users = UserDirectory(self.storage, self.audit_trail)
        self.ledger = PaymentLedger(self.storage)
        self.reconciliation = ReconciliationEngine()
        self.lifecycle = LoanLifecycle(
            self.storage, self.ledger, self.reconciliation, self.audit_trail,
            config=self.config
        )

    def close(self) -> None:
        """Release the record store"""
        self.storage.close()
