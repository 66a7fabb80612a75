"""
Merchant Qualification Module

Decides whether a card transaction names an IRS-qualified medical merchant.
The rule is plain case-insensitive substring containment over a fixed
vocabulary: no tokenization, no stemming. "Optometrist Ave Cafe" qualifies
and "Cardiology" does not.
"""

from typing import Iterable, List, Tuple


QUALIFIED_MERCHANT_TERMS: Tuple[str, ...] = (
    "doctor",
    "hospital",
    "pharmacy",
    "clinic",
    "dentist",
    "optometrist",
    "chiropractor",
)


class MerchantQualifier:
    """Matches transaction descriptions against the qualified-merchant vocabulary"""

    def __init__(self, terms: Iterable[str] = QUALIFIED_MERCHANT_TERMS):
        self.terms = tuple(term.lower() for term in terms)

    def matching_terms(self, description: str) -> List[str]:
        """Every vocabulary term contained in the description"""
        lowered = description.lower()
        return [term for term in self.terms if term in lowered]

    def is_qualified(self, description: str) -> bool:
        lowered = description.lower()
        return any(term in lowered for term in self.terms)


def is_qualified(description: str) -> bool:
    """Check a description against the default vocabulary"""
    return MerchantQualifier().is_qualified(description)
