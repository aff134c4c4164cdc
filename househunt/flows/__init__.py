"""Per-site automation flows."""

from househunt.flows.base import SiteFlow
from househunt.flows.naplan_lookup import NaplanLookupFlow
from househunt.flows.property_page import PropertyPageFlow
from househunt.flows.school_catchment import SchoolCatchmentFlow

__all__ = ["SiteFlow", "PropertyPageFlow", "SchoolCatchmentFlow", "NaplanLookupFlow"]
