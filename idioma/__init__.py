"""
Idioma - leveled news reading backend

Fetches regional news, extracts readable article HTML from arbitrary pages and
rewrites it at a target CEFR level with a language model, caching every
expensive step.
"""

__version__ = "0.1.0"
