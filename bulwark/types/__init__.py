# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Package types provides the value types shared by every bulwark package.

- Circuit states (closed, open, half-open)
- Immutable outcome records produced at the end of every protected call
"""

from .common import (
    CircuitState,
    OutcomeRecord,
)

__all__ = [
    'CircuitState',
    'OutcomeRecord',
]
