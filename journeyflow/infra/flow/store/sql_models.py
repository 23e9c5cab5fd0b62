"""
SQLModel models for flow record persistence.

This module contains the SQLModel table definition backing SQLStorage.
"""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


# ============================================================
#                   SQLMODEL TABLE DEFINITIONS
# ============================================================

class FlowRecordModel(SQLModel, table=True):
    """
    SQLModel representation of one key/value flow record.

    Table: flow_record
    """
    __tablename__ = "flow_record"

    key: str = Field(primary_key=True)
    value: bytes
    updated_at: Optional[datetime] = Field(default=None, index=True)
