"""
FocusLog.

Tracks the focused application/window, segments it into activity sessions and
categorises them with keyword rules or a hosted LLM.
"""
import logging

# Applications using this package should configure their own logging.
logging.getLogger(__name__).addHandler(logging.NullHandler())

VERSION = "0.1.0"
