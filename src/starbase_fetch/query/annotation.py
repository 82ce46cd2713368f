"""
Removal of in-text annotations.

Text values may embed annotations such as `[[Has capital::Berlin]]`,
which display as their value (or caption) and must not leak their
markup into query results.
"""

import re

# [[Property::value]], [[Property::value|caption]], [[Property:=value]]
_ANNOTATION = re.compile(
    r"\[\[\s*([^\[\]|]+?)\s*(?:::|:=)\s*([^\[\]]*?)\s*\]\]"
)

# Annotation switches
_SWITCH = re.compile(r"\[\[\s*SMW\s*::\s*(?:on|off)\s*\]\]", re.IGNORECASE)


def _display_text(match: re.Match) -> str:
    value = match.group(2)
    if "|" in value:
        value, caption = value.rsplit("|", 1)
        return caption if caption.strip() else value
    # Multiple properties: [[Prop1::Prop2::value]]
    if "::" in value:
        value = value.rsplit("::", 1)[1]
    return value


def remove_annotation(text: str) -> str:
    """Replace each annotation in `text` with the text it displays."""
    text = _SWITCH.sub("", text)
    return _ANNOTATION.sub(_display_text, text)
