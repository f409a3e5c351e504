"""Color and font requests: parsing, normalization, and WCAG contrast checks."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..errors import ValidationError

NAMED_COLORS: Dict[str, str] = {
    "blue": "#3b82f6",
    "light blue": "#bfdbfe",
    "dark blue": "#1e40af",
    "navy": "#1e3a8a",
    "sky": "#0ea5e9",
    "green": "#10b981",
    "light green": "#86efac",
    "dark green": "#065f46",
    "emerald": "#10b981",
    "lime": "#84cc16",
    "red": "#ef4444",
    "light red": "#fca5a5",
    "dark red": "#991b1b",
    "rose": "#f43f5e",
    "gray": "#6b7280",
    "grey": "#6b7280",
    "light gray": "#d1d5db",
    "dark gray": "#374151",
    "slate": "#64748b",
    "black": "#000000",
    "white": "#ffffff",
    "yellow": "#fbbf24",
    "purple": "#a855f7",
    "pink": "#ec4899",
    "orange": "#f97316",
    "teal": "#14b8a6",
    "indigo": "#6366f1",
    "brown": "#92400e",
}

DEFAULT_COLOR_SCHEME: Dict[str, str] = {
    "primary": "#2563eb",
    "secondary": "#64748b",
    "accent": "#10b981",
    "background": "#ffffff",
    "text": "#1e293b",
}

DEFAULT_FONT_FAMILY: Dict[str, str] = {"heading": "Arial", "body": "Arial"}

PROFESSIONAL_FONTS = [
    "Arial", "Calibri", "Cambria", "Garamond", "Georgia", "Helvetica", "Inter",
    "Lato", "Open Sans", "Roboto", "Tahoma", "Times New Roman", "Verdana",
]
_DISCOURAGED_FONTS = {"comic sans", "comic sans ms", "papyrus", "impact", "brush script", "jokerman"}

COLOR_TARGETS = ("background", "header", "text", "primary", "accent", "font")

# WCAG 2.1 minimum contrast ratios
CONTRAST_AA_NORMAL = 4.5
CONTRAST_AA_LARGE = 3.0
CONTRAST_AAA_NORMAL = 7.0

_HEX6 = re.compile(r"^#[0-9a-f]{6}$")
_HEX3 = re.compile(r"^#[0-9a-f]{3}$")

_VERB = r"(?:change|make|set|update|turn|use)"
_COLOR_VALUE = r"(#[0-9a-f]{6}\b|#[0-9a-f]{3}\b|[a-z]+(?:\s+[a-z]+)?)"
_REQUEST_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("background", re.compile(rf"{_VERB}\s+(?:the\s+)?background\s+(?:colou?r\s+)?(?:to\s+|into\s+)?{_COLOR_VALUE}")),
    ("header", re.compile(rf"{_VERB}\s+(?:the\s+)?(?:headers?|headings?|titles?)\s+(?:colou?r\s+)?(?:to\s+|into\s+)?{_COLOR_VALUE}")),
    ("text", re.compile(rf"{_VERB}\s+(?:the\s+)?(?:text|font)\s+colou?r\s+(?:to\s+|into\s+)?{_COLOR_VALUE}")),
    ("primary", re.compile(rf"{_VERB}\s+(?:the\s+)?primary\s+colou?r\s+(?:to\s+|into\s+)?{_COLOR_VALUE}")),
    ("accent", re.compile(rf"{_VERB}\s+(?:the\s+)?accent\s+colou?r\s+(?:to\s+|into\s+)?{_COLOR_VALUE}")),
]
_FONT_PATTERN = re.compile(rf"{_VERB}\s+(?:the\s+)?fonts?\s+(?:family\s+)?(?:to\s+)?(?!colou?r)([a-z][a-z\s]*?)(?:\s+(?:and|,)\b|[.;,]|$)")


@dataclass(frozen=True)
class ColorRequest:
    target: str
    value: str
    original: str

    def to_dict(self) -> Dict[str, str]:
        return {"target": self.target, "value": self.value, "original": self.original}


def normalize_color(color: str) -> str:
    """Return ``#rrggbb`` for a hex code or a named color. Unknown values raise ValidationError."""
    cleaned = (color or "").strip().lower()
    if _HEX6.match(cleaned):
        return cleaned
    if _HEX3.match(cleaned):
        return "#" + "".join(ch * 2 for ch in cleaned[1:])
    cleaned = re.sub(r"\s+", " ", re.sub(r"\b(colou?r|please|shade)\b", "", cleaned)).strip()
    if cleaned in NAMED_COLORS:
        return NAMED_COLORS[cleaned]
    raise ValidationError(f"Unknown color: {color!r}", details={"known_colors": sorted(NAMED_COLORS)})


def is_known_color(color: str) -> bool:
    try:
        normalize_color(color)
    except ValidationError:
        return False
    return True


def _resolve_color_value(raw: str) -> Tuple[str, str]:
    """Pick the longest leading words of *raw* that name a color."""
    words = raw.strip().split()
    for size in (2, 1):
        candidate = " ".join(words[:size])
        if len(words) >= size and is_known_color(candidate):
            return normalize_color(candidate), candidate
    return normalize_color(raw), raw.strip()


def normalize_font(font: str) -> Optional[str]:
    cleaned = re.sub(r"\s+", " ", (font or "").strip().lower())
    for name in PROFESSIONAL_FONTS:
        if name.lower() == cleaned:
            return name
    if cleaned in _DISCOURAGED_FONTS:
        return cleaned.title()
    return None


def is_professional_font(font: str) -> bool:
    return normalize_font(font) in PROFESSIONAL_FONTS


def parse_color_request(text: str) -> List[ColorRequest]:
    """Extract color and font changes from a command.

    Raises ValidationError when a color target is mentioned with a value that
    is not a known color name or hex code.
    """
    lowered = (text or "").lower()
    requests: List[ColorRequest] = []
    for target, pattern in _REQUEST_PATTERNS:
        match = pattern.search(lowered)
        if match:
            value, original = _resolve_color_value(match.group(1))
            requests.append(ColorRequest(target=target, value=value, original=original))

    font_match = _FONT_PATTERN.search(lowered)
    if font_match and not any(r.target == "text" for r in requests):
        raw_font = font_match.group(1).strip()
        requests.append(ColorRequest(target="font", value=" ".join(w.capitalize() for w in raw_font.split()), original=raw_font))
    return requests


def apply_color_requests(
    requests: List[ColorRequest],
    color_scheme: Optional[Dict[str, str]] = None,
    font_family: Optional[Dict[str, str]] = None,
) -> Tuple[Dict[str, str], Dict[str, str], List[str]]:
    """Merge *requests* into copies of the current scheme and fonts.

    Returns ``(color_scheme, font_family, warnings)``.
    """
    scheme = {**DEFAULT_COLOR_SCHEME, **(color_scheme or {})}
    fonts = {**DEFAULT_FONT_FAMILY, **(font_family or {})}
    warnings: List[str] = []

    for request in requests:
        if request.target == "font":
            normalized = normalize_font(request.value)
            if normalized is None:
                warnings.append(f'Font "{request.value}" is not recognized. Keeping {fonts["body"]}.')
                continue
            if not is_professional_font(normalized):
                warnings.append(f'Font "{normalized}" is not recommended for professional resumes.')
            fonts["heading"] = normalized
            fonts["body"] = normalized
        elif request.target == "background":
            scheme["background"] = request.value
        elif request.target == "header":
            scheme["primary"] = request.value
        elif request.target == "text":
            scheme["text"] = request.value
        elif request.target in ("primary", "accent"):
            scheme["primary"] = request.value
            scheme["accent"] = request.value

    warnings.extend(check_contrast(scheme))
    return scheme, fonts, warnings


# ---------------------------------------------------------------------------
# Contrast
# ---------------------------------------------------------------------------


def _relative_luminance(hex_value: str) -> float:
    value = normalize_color(hex_value)
    channels = []
    for i in (1, 3, 5):
        c = int(value[i:i + 2], 16) / 255
        channels.append(c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4)
    r, g, b = channels
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_ratio(foreground: str, background: str) -> float:
    l1, l2 = _relative_luminance(foreground), _relative_luminance(background)
    lighter, darker = max(l1, l2), min(l1, l2)
    return (lighter + 0.05) / (darker + 0.05)


def check_contrast(scheme: Dict[str, str]) -> List[str]:
    """Human-readable contrast warnings for text and header colors on the background."""
    warnings: List[str] = []
    text_ratio = contrast_ratio(scheme["text"], scheme["background"])
    if text_ratio < CONTRAST_AA_NORMAL:
        warnings.append(
            f"Text color has insufficient contrast with background ({text_ratio:.2f}:1, "
            f"needs {CONTRAST_AA_NORMAL}:1 for WCAG AA). This may make your resume difficult to read."
        )
    elif text_ratio < CONTRAST_AAA_NORMAL:
        warnings.append(
            f"Color scheme meets WCAG AA ({text_ratio:.2f}:1) but not AAA (needs {CONTRAST_AAA_NORMAL}:1)."
        )

    header_ratio = contrast_ratio(scheme["primary"], scheme["background"])
    if header_ratio < CONTRAST_AA_LARGE:
        warnings.append(
            f"Header color has insufficient contrast with background ({header_ratio:.2f}:1, "
            f"needs {CONTRAST_AA_LARGE}:1 for large text). Consider using a darker shade."
        )
    return warnings
