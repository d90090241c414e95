"""Donor person fields, cut down to the R68 schema limits."""

from dataclasses import dataclass
from typing import Optional

NAME_MAX_LENGTH = 35
HOUSE_MAX_LENGTH = 40


@dataclass
class Individual:
    """A donor as written into a claim's ``Donor`` block.

    Forename and surname are truncated to 35 characters and the house
    name/number to 40. Truncation is silent.
    """
    forename: str = ""
    surname: str = ""
    house_no: str = ""
    title: Optional[str] = None
    postcode: Optional[str] = None
    overseas: bool = False

    def __post_init__(self):
        self.forename = (self.forename or "")[:NAME_MAX_LENGTH]
        self.surname = (self.surname or "")[:NAME_MAX_LENGTH]
        self.house_no = (self.house_no or "")[:HOUSE_MAX_LENGTH]

    @property
    def overseas_indicator(self) -> str:
        return "yes" if self.overseas is True else "no"
