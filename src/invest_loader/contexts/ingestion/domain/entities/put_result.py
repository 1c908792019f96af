from __future__ import annotations

from typing import Literal

PutResult = Literal["inserted", "skipped_existing"]

INSERTED: PutResult = "inserted"
SKIPPED_EXISTING: PutResult = "skipped_existing"
