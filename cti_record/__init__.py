"""
cti_record: active records with class-table inheritance.
"""

__version__ = "0.1.0"
