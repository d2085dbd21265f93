"""
studysync - spaced-repetition quiz progress with local cache and cloud sync.

Keeps per-question mastery state consistent between an always-available
local cache and an optional remote document store, repairs progress when
course content changes, and runs priority-ordered study sessions.
"""

__version__ = "1.0.0"
