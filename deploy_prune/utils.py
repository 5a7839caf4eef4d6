from typing import List, Optional
from datetime import datetime


def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [n.strip() for n in value.split(",") if n.strip()]


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()
