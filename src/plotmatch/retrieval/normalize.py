"""Area-name normalization and the keys derived from it.

Providers report the same district under different free-text names (project
names, entity names, marketing names). Everything stored or compared goes
through normalize_area() first.
"""

import re

from plotmatch.core.types import SourceKind

UNKNOWN_AREA = "Unknown"

# Raw (lowercased, trimmed) → canonical area name
AREA_NORMALIZATION: dict[str, str] = {
    "majan": "Wadi Al Safa 3",
    "dubai industrial city": "Saih Shuaib 2",
    "dic": "Saih Shuaib 2",
    "dubai industrial": "Saih Shuaib 2",
    "dlrc": "Dubai Land Residential Complex",
    "al satwa": "Jumeirah Garden City",
}

_FNV_OFFSET = 2_166_136_261
_FNV_PRIME = 16_777_619


def normalize_area(area: str | None) -> str:
    """Map a raw area name to its canonical form.

    'DIC' → 'Saih Shuaib 2'
    '  Business Bay ' → 'Business Bay'
    '' → 'Unknown'
    """
    if not area or not area.strip():
        return UNKNOWN_AREA
    cleaned = area.strip()
    return AREA_NORMALIZATION.get(cleaned.lower(), cleaned)


def normalize_land_number(land_number: str | None) -> str:
    """Trimmed, uppercased land number used as the durable cache key."""
    return (land_number or "").strip().upper()


def build_match_key(land_number: str, area: str | None) -> str:
    """Correlation key across providers: land number + canonical area.

    '344-0123 ', 'business bay' → '344-0123-businessbay'
    """
    key = f"{(land_number or '').strip()}-{normalize_area(area)}"
    return re.sub(r"\s+", "", key.lower())


def generate_plot_id(source: SourceKind, land_number: str | None) -> str:
    """Deterministic plot id: 32-bit FNV-1a over '<PREFIX>::<LANDNUMBER>'."""
    prefix = source.id_prefix
    payload = f"{prefix}::{normalize_land_number(land_number) or 'UNKNOWN'}"
    h = _FNV_OFFSET
    for ch in payload:
        h ^= ord(ch)
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return f"{prefix}-{h:08X}"
