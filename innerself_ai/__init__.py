"""
innerself-ai: Three-card reading service for the innerSelf app

This package turns a question, optional prior context and a set of drawn
card labels into a structured reading by:
- Rendering a constrained prompt for an external generation service
- Normalizing the service reply (extraction, tolerant JSON parsing, validation)
- Substituting a deterministic fallback reading when any stage fails
"""

__version__ = "0.1.0"
