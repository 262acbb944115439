"""
Witness Prep Service
====================

Service layer for two attorney tools that share one architecture:

1. Witness testimony prep - generate 20 cross-examination questions from case
   documents, then practice answering with AI follow-ups and feedback.
2. Deposition prep - analyze documents for gaps and contradictions, generate
   strategic questions and build an exportable outline.

The LLM and OCR services are external; this package builds prompts, recovers
structured output, substitutes fallback content and persists session state.
"""

__version__ = "1.0.0"
