from typing import Optional

from PIL import Image

from infra.config import PipelineSettings
from infra.pipeline.storage import Library
from pipeline.schemas import Page, CropWindow, utc_now_iso


def crop_box(image: Image.Image, crop: CropWindow):
    """Pixel box for a 0-1000 horizontal crop window, full height."""
    width, height = image.size
    left = int(round(crop.x_start / 1000 * width))
    right = int(round(crop.x_end / 1000 * width))
    right = max(right, left + 1)
    return (left, 0, min(right, width), height)


def needs_crop(page: Page, library: Library) -> bool:
    """A crop window is set but no usable derived image exists.

    A cropped_photo reference whose blob is gone counts as missing.
    """
    if page.crop is None:
        return False
    if not page.cropped_photo:
        return True
    return not library.images.exists(page.cropped_photo)


def render_crop(image: Image.Image, crop: CropWindow, max_width: int) -> Image.Image:
    cropped = image.crop(crop_box(image, crop))
    if cropped.width > max_width:
        height = max(1, round(cropped.height * max_width / cropped.width))
        cropped = cropped.resize((max_width, height), Image.LANCZOS)
    return cropped


def materialize_crop(page: Page, library: Library, settings: Optional[PipelineSettings] = None) -> Page:
    """Cut the crop window out of the source image, store it as a blob and
    persist the page's cropped_photo reference."""
    if page.crop is None:
        return page

    settings = settings or library.config.pipeline
    source = library.images.open(page.source_image)
    cropped = render_crop(source, page.crop, settings.crop_max_width)

    key = f"crops/{page.book_id}/{page.id}-{int(page.crop.x_start)}-{int(page.crop.x_end)}.jpg"
    ref = library.images.put_image(key, cropped, quality=settings.crop_quality)

    def apply(p: Page):
        p.cropped_photo = ref
        p.updated_at = utc_now_iso()

    return library.pages.update(page.book_id, page.id, apply)
