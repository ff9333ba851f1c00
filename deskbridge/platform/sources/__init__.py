"""Helpdesk source adapters.

Importing this package registers every adapter with the source registry.
"""

from deskbridge.platform.decorators import get_source_class, list_sources
from deskbridge.platform.sources._base import BaseSource, SourceSchema
from deskbridge.platform.sources.freshdesk import FreshdeskSource
from deskbridge.platform.sources.groove import GrooveSource
from deskbridge.platform.sources.helpcrunch import HelpCrunchSource
from deskbridge.platform.sources.helpscout import HelpScoutSource
from deskbridge.platform.sources.hubspot import HubSpotSource
from deskbridge.platform.sources.intercom import IntercomSource
from deskbridge.platform.sources.kayako import KayakoSource
from deskbridge.platform.sources.zendesk import ZendeskSource
from deskbridge.platform.sources.zoho_desk import ZohoDeskSource

__all__ = [
    "BaseSource",
    "FreshdeskSource",
    "GrooveSource",
    "HelpCrunchSource",
    "HelpScoutSource",
    "HubSpotSource",
    "IntercomSource",
    "KayakoSource",
    "SourceSchema",
    "ZendeskSource",
    "ZohoDeskSource",
    "get_source_class",
    "list_sources",
]
