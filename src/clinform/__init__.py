"""Schema-driven clinical form engine.

Interprets declarative clinical form definitions, tracks conditional
visibility over live answer state, validates answers, and reduces them into
encounter/observation payloads ready for persistence.
"""

__version__ = "0.1.0"
