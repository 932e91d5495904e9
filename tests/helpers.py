"""
Bluhatch Test Helper Utilities

Sample artifact bytes and small builders shared by the test modules.

Example usage:
    from tests.helpers import JPEG_BYTES, upload_form
"""

from typing import Any, Dict, Optional, Tuple

# Smallest byte strings carrying each accepted file signature
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 32
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
PDF_BYTES = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n" + b"0" * 32


def upload_form(
    evidence_type: str = "before",
    description: str = "Roof before works",
    **extra: Optional[str]
) -> Dict[str, Any]:
    """Multipart form fields for an evidence upload."""
    data = {"evidence_type": evidence_type, "description": description}
    data.update({k: v for k, v in extra.items() if v is not None})
    return data


def upload_file(
    content: bytes = JPEG_BYTES,
    filename: str = "roof.jpg",
    content_type: str = "image/jpeg"
) -> Dict[str, Tuple[str, bytes, str]]:
    return {"file": (filename, content, content_type)}
