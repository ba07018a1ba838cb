from __future__ import annotations

import json
from io import BytesIO
from typing import Union

import qrcode

from ..core.constants import CLASS_JOIN_CODE_TYPE
from ..core.exceptions import ValidationError


def build_payload(class_id: int) -> str:
    return json.dumps({"type": CLASS_JOIN_CODE_TYPE, "classId": int(class_id)})


def parse_payload(raw: Union[str, dict]) -> int:
    """Return the class id carried by a scanned join code."""

    data = raw
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except ValueError:
            raise ValidationError("Invalid join code")
    if not isinstance(data, dict) or data.get("type") != CLASS_JOIN_CODE_TYPE:
        raise ValidationError("Invalid join code")
    try:
        class_id = int(data.get("classId"))
    except (TypeError, ValueError):
        raise ValidationError("Invalid join code")
    if class_id <= 0:
        raise ValidationError("Invalid join code")
    return class_id


def render_png(class_id: int) -> BytesIO:
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=2,
    )
    qr.add_data(build_payload(class_id))
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buf = BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return buf
