# Overview: Identifier generation for every new entity row.

from __future__ import annotations

import uuid


def new_id() -> str:
    """Random UUID4 string used as primary key for all domain rows."""
    return str(uuid.uuid4())
