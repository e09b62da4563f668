"""
Paged entity reads.
"""

from .query import EntityPage, ReadQuery, decode_token, encode_token, sql_literal

__all__ = [
    "EntityPage",
    "ReadQuery",
    "decode_token",
    "encode_token",
    "sql_literal",
]
