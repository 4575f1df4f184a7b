# Overview: Phone number column type shipped as a module-provided plugin ("phone-numbers:phone").

from __future__ import annotations

import re
from typing import Any, Optional

from .registry import ColumnTypeRegistry, TypeContract

MODULE_ID = "phone-numbers"

PHONE_RE = re.compile(r"^[+]?[0-9\s\-().]{7,20}$")


class PhoneType(TypeContract):
    type_id = "phone"
    description = "Phone number with optional country prefix"
    example = "+1 (555) 123-4567"

    def convert(self, raw: Any) -> str:
        s = str(raw).strip() if isinstance(raw, (str, int)) and not isinstance(raw, bool) else None
        if s is None or not PHONE_RE.match(s):
            raise ValueError("Invalid phone number format")
        return s

    def suggest_fix(self, raw: Any) -> Optional[str]:
        return "Use format: +1234567890 or (123) 456-7890"


def register(registry: ColumnTypeRegistry) -> None:
    registry.register(PhoneType(), module_id=MODULE_ID)
