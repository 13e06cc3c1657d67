from .connection import get_db, init_db, close_db, Base

# Import statement models to ensure they are registered with Base
from .statement_models import (
    PropertyDB, OwnerStatementDB, OwnerStatementIncomeDB,
    OwnerStatementExpenseDB, OwnerStatementAdjustmentDB, UnmatchedImportItemDB
)

__all__ = [
    'get_db', 'init_db', 'close_db', 'Base',
    # Statement models
    'PropertyDB', 'OwnerStatementDB', 'OwnerStatementIncomeDB',
    'OwnerStatementExpenseDB', 'OwnerStatementAdjustmentDB', 'UnmatchedImportItemDB',
]
