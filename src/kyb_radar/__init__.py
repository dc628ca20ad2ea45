"""
KYB Early-Risk Radar - multi-stage Know-Your-Business risk pipeline.

Classifies a business customer's journey, profiles the entity and its
parties, analyzes transaction behaviour, scores it with a deterministic rule
engine and writes a KYB note. Every stage is also exposed as a tool over a
small JSON-RPC protocol.
"""

__version__ = "1.0.0"
