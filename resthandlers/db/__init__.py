"""SQLAlchemy data source for the transaction orchestrator."""

from resthandlers.db.connection import (
    EngineDataSource,
    SqlAlchemyTransaction,
    create_data_source,
    create_engine,
)

__all__ = ["EngineDataSource", "SqlAlchemyTransaction", "create_data_source", "create_engine"]
