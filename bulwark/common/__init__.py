# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Common package providing shared helpers for bulwark.

This package includes:
- Clock access used for every recorded timestamp
- Timestamp formatting and parsing for serialized exports
"""

from .utils import (
    get_current_time,
    format_timestamp,
    parse_timestamp,
)

__all__ = [
    'get_current_time',
    'format_timestamp',
    'parse_timestamp',
]
