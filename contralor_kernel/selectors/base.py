"""
Read side of the register: sheets, entries, pending events, closing
balances.  Selectors only query; they return frozen rows, never ORM
instances, and leave the transaction to the caller.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    def __init__(self, session: Session):
        self.session = session
