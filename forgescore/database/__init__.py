from .dbm import DBM, dialect_insert

__all__ = ["DBM", "dialect_insert"]
