"""
Relay

Signal ingestion and AI-assisted task triage.

Philosophy:
- Every signal is normalized eagerly; records never point back to raw payloads
- Provider faults degrade to partial data, misconfiguration always surfaces
- The same message maps to the same id on every sync
- AI backends are interchangeable candidates, tried in order

Usage:
    from relay.common import load_config
    from relay.common.schemas import NormalizedSignal, ProposedTask
    from relay.ingest import SlackClient, ReferenceStoreBuilder, SignalFetcher
    from relay.suggest import SuggestionEngine
    from relay.tracker import AsanaAdapter
"""

__version__ = "0.1.0"
