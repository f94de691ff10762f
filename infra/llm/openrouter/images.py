import base64
import io
from typing import Dict, List, Optional

from PIL import Image


def image_to_jpeg(data: bytes, max_width: Optional[int] = None, quality: int = 90) -> bytes:
    """Re-encode image bytes as JPEG, shrinking to max_width if wider."""
    image = Image.open(io.BytesIO(data))
    image = image.convert("RGB")

    if max_width and image.width > max_width:
        height = round(image.height * max_width / image.width)
        image = image.resize((max_width, height), Image.LANCZOS)

    buffered = io.BytesIO()
    image.save(buffered, format="JPEG", quality=quality)
    return buffered.getvalue()


def user_message(prompt: str, image: Optional[bytes] = None, mime_type: str = "image/jpeg") -> List[Dict]:
    """Build a single user message, attaching the image as a data URL."""
    if image is None:
        return [{"role": "user", "content": prompt}]

    img_b64 = base64.b64encode(image).decode('utf-8')
    return [{
        "role": "user",
        "content": [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{img_b64}"}},
        ],
    }]
