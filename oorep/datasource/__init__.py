from oorep.datasource.oorep_api import OOREPDataSource

__all__ = ["OOREPDataSource"]
