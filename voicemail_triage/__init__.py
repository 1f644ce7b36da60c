"""
Voicemail Triage.

This package turns voicemail transcripts into service desk tickets using
LLM-based summarization, request type routing, field filling and priority
classification, gated by a per-tenant ticket quota.
"""

__version__ = "1.0.0"
__author__ = "Automation Engineer"
