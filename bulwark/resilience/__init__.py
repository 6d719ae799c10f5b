# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Package resilience provides the timeout race used around protected calls.

The operation and a timer run as independent tasks joined by a
first-to-complete wait; a late operation outcome is discarded.
"""

from .timeout import (
    Operation,
    TimeoutConfig,
    Timeout,
    invoke,
)

__all__ = [
    'Operation',
    'TimeoutConfig',
    'Timeout',
    'invoke',
]
