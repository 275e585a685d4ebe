from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated

from pydantic import StringConstraints

from flashgen.apis.schemas import CamelModel

CategoryName = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)
]


class CategoryCreate(CamelModel):
    name: CategoryName


class CategoryRead(CamelModel):
    id: uuid.UUID
    name: str
    created_at: datetime
    updated_at: datetime
