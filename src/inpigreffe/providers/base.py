"""Provider base interfaces and shared types."""

from typing import Optional, Protocol, TypedDict


class CompanyRecord(TypedDict, total=False):
    siren: str
    legal_name: str
    legal_form: str
    street: str
    zip: str
    city: str
    country: str
    greffe: Optional[str]
    source: str
    notes: str


class Provider(Protocol):
    """Protocol defining a company registry provider."""

    def fetch(self, siren: str) -> CompanyRecord:
        """Retrieve the company record for a SIREN or SIRET."""

        ...
