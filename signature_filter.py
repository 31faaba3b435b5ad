"""
Signature Image Filter

Decides whether an image attachment is an email signature, a logo, a social
network icon or a tracking pixel rather than a document worth extracting.
Filename heuristics and the byte size are checked first; pixel dimensions
are read with Pillow when dimension checks are enabled.
"""

import io
import re
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from extraction_schema import Attachment

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('png', 'jpg', 'jpeg', 'gif', 'bmp', 'tif', 'tiff')

SIGNATURE_FILENAME_PATTERNS = [
    (re.compile(r"outlook", re.IGNORECASE), "outlook inline image"),
    (re.compile(r"^image\d+\.", re.IGNORECASE), "generic inline image"),
    (re.compile(r"logo", re.IGNORECASE), "logo"),
    (re.compile(r"^(signature|footer|banner|header)", re.IGNORECASE), "signature block"),
    (re.compile(r"^att\d+\.", re.IGNORECASE), "outlook ATT attachment"),
    (re.compile(r"desc\.(png|jpg|jpeg|gif)$", re.IGNORECASE), "description image"),
    (re.compile(r"^cid[:\-_]", re.IGNORECASE), "content-id reference"),
    (re.compile(r"^[a-f0-9]{8,}[-_]", re.IGNORECASE), "hex content id"),
    (re.compile(r"^inline", re.IGNORECASE), "inline image"),
    (re.compile(r"\bicon|icon\b", re.IGNORECASE), "icon"),
    (re.compile(r"spacer", re.IGNORECASE), "spacer"),
    (re.compile(r"pixel", re.IGNORECASE), "tracking pixel"),
    (re.compile(r"tracking", re.IGNORECASE), "tracking pixel"),
    (re.compile(r"\b(facebook|linkedin|twitter|instagram|whatsapp|youtube)\b", re.IGNORECASE), "social network icon"),
    (re.compile(r"\bbadge\b", re.IGNORECASE), "badge"),
    (re.compile(r"~WRL\d+\.tmp$", re.IGNORECASE), "word temporary file"),
    (re.compile(r"winmail\.dat$", re.IGNORECASE), "winmail.dat"),
]

# Mail client artifacts filtered whatever their extension
MAIL_ARTIFACT_LABELS = ("word temporary file", "winmail.dat")


@dataclass
class SignatureCheck:
    """Verdict of the signature filter for one attachment."""
    is_signature: bool
    reason: str = ""
    width: Optional[int] = None
    height: Optional[int] = None


def is_image_filename(filename: str) -> bool:
    name = filename.lower()
    return '.' in name and name.rsplit('.', 1)[-1] in IMAGE_EXTENSIONS


class SignatureFilter:
    """
    Filters logo/signature/tracking-pixel images out of the attachment set.
    """

    def __init__(self, max_signature_bytes: int = 10000, check_dimensions: bool = True):
        """
        Initialize the signature filter.

        Args:
            max_signature_bytes: Images smaller than this are treated as signatures
            check_dimensions: Whether to decode images and apply pixel-dimension rules
        """
        self.max_signature_bytes = max_signature_bytes
        self.check_dimensions = check_dimensions

    def match_filename(self, filename: str) -> Optional[str]:
        """Return the name of the first signature filename pattern matching, if any."""
        for pattern, label in SIGNATURE_FILENAME_PATTERNS:
            if pattern.search(filename):
                return label
        return None

    def check(self, attachment: Attachment) -> SignatureCheck:
        """
        Decide whether an attachment is a signature-like image.

        Args:
            attachment: Attachment to inspect

        Returns:
            SignatureCheck with the verdict and the reason
        """
        is_image = is_image_filename(attachment.filename)
        label = self.match_filename(attachment.filename)
        if label and (is_image or label in MAIL_ARTIFACT_LABELS):
            return SignatureCheck(True, f"signature: filename looks like {label}")

        if not is_image:
            return SignatureCheck(False)

        if attachment.size is not None and attachment.size < self.max_signature_bytes:
            return SignatureCheck(True, f"signature: image smaller than {self.max_signature_bytes // 1000} KB")

        if not self.check_dimensions:
            return SignatureCheck(False)

        dimensions = self._read_dimensions(attachment.content)
        if dimensions is None:
            return SignatureCheck(False)

        width, height = dimensions
        reason = self._dimension_reason(width, height)
        return SignatureCheck(reason is not None, reason or "", width, height)

    def is_signature(self, attachment: Attachment) -> bool:
        return self.check(attachment).is_signature

    def _read_dimensions(self, content: bytes) -> Optional[Tuple[int, int]]:
        try:
            with Image.open(io.BytesIO(content)) as image:
                return image.size
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.debug(f"Could not read image dimensions: {e}")
            return None

    @staticmethod
    def _dimension_reason(width: int, height: int) -> Optional[str]:
        if width <= 0 or height <= 0:
            return None
        area = width * height
        ratio = width / height

        if (width == 1 and height == 1) or area < 100:
            return f"signature: tracking pixel ({width}x{height})"
        if area < 25000 or (width < 80 and height < 80):
            return f"signature: tiny image ({width}x{height})"
        if ratio > 6 or ratio < 0.16:
            return f"signature: banner or spacer (ratio {ratio:.2f})"
        if width > 600 and height < 200:
            return f"signature: signature banner ({width}x{height})"
        return None
