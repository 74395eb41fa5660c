"""Result types for MRZ extraction."""

from dataclasses import dataclass, asdict
from typing import Dict


@dataclass(frozen=True)
class MrzResult:
    """Validated passport fields.

    Dates are ISO ``YYYY-MM-DD``; unrecovered fields are empty strings.
    """
    passport_number: str = ""
    nationality: str = ""  # display country name
    birth_date: str = ""
    expiry_date: str = ""

    def is_empty(self) -> bool:
        return not any((self.passport_number, self.nationality, self.birth_date, self.expiry_date))

    def to_dict(self) -> Dict[str, str]:
        """Convert result to JSON-serializable dict"""
        return asdict(self)
