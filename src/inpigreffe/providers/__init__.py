"""Fournisseurs de données d'entreprises pour ``inpigreffe``."""

from .base import CompanyRecord, Provider
from .inpi import INPIProvider

__all__ = ["CompanyRecord", "Provider", "INPIProvider"]
