"""
Image render backend using PIL.

Renders each materialized window to an image whenever it changes, and
optionally saves it as a PNG. Layout is deliberately simple: boxes split
their area evenly between children along their orientation, leaf widgets
draw their text centered in their cell.
"""

import logging
import os
from typing import Any, Dict, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from ..tree.node import WidgetNode
from ..utils.errors import BackendError, TypeMismatch
from ..widgets.registry import WidgetRegistry, default_registry
from .headless import HeadlessBackend

logger = logging.getLogger(__name__)

Box = Tuple[int, int, int, int]


class ImageBackend(HeadlessBackend):
    """
    Renders window trees to PIL images.

    Attributes:
        images: Latest rendered image per handle
        output_dir: Directory PNG files are written to, if any
        font_cache: Dictionary mapping font keys to loaded ImageFont objects
    """

    name = "image"

    def __init__(
        self,
        size: Tuple[int, int] = (400, 40),
        output_dir: Optional[str] = None,
        registry: Optional[WidgetRegistry] = None,
        style: Optional[Dict[str, Any]] = None,
    ):
        super().__init__()
        self.size = size
        self.output_dir = os.path.expanduser(output_dir) if output_dir else None
        self.registry = registry or default_registry()
        self.style = {
            "background_color": "#000000",
            "text_color": "#FFFFFF",
            "bar_color": "#4C8DFF",
            "font": "DejaVu Sans",
            "font_size": 14,
        }
        self.style.update(style or {})
        self.images: Dict[Any, Image.Image] = {}
        self.font_cache = {}

    def on_render(self, handle: Any, root: WidgetNode) -> None:
        image = self.render(root)
        if self.output_dir:
            self._save(handle, image)
        self.images[handle] = image

    def destroy(self, handle: Any) -> None:
        super().destroy(handle)
        self.images.pop(handle, None)

    def render(self, root: WidgetNode) -> Image.Image:
        """Render a whole tree to a new image."""
        width = int(root.attributes["width"].as_number()) if _has_size(root, "width") else self.size[0]
        height = int(root.attributes["height"].as_number()) if _has_size(root, "height") else self.size[1]

        image = Image.new("RGB", (width, height), self.style["background_color"])
        draw = ImageDraw.Draw(image)
        self._render_node(draw, root, (0, 0, width, height))
        return image

    def _save(self, handle: Any, image: Image.Image) -> None:
        path = os.path.join(self.output_dir, f"window-{handle}.png")
        partial = path + ".partial"
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            image.save(partial, "PNG")
            os.replace(partial, path)
        except OSError as e:
            raise BackendError(f"Cannot write {path}: {e}") from e
        logger.debug(f"Saved {path}")

    def _render_node(self, draw: ImageDraw.ImageDraw, node: WidgetNode, box: Box) -> None:
        if not _is_visible(node):
            return

        widget = self.registry.get(node.widget_type)
        if widget is None:
            raise BackendError(f"Cannot render unknown widget type '{node.widget_type}'")

        if node.widget_type == "progress":
            self._draw_bar(draw, node, box)

        text = widget.render_text(node.attributes)
        if text:
            self._draw_text(draw, text, box)

        if node.children:
            for child, cell in zip(node.children, _split(node, box)):
                self._render_node(draw, child, cell)

    def _draw_bar(self, draw: ImageDraw.ImageDraw, node: WidgetNode, box: Box) -> None:
        value = node.attributes.get("value")
        if value is None or not value.coerces_to_number():
            return
        fraction = max(0.0, min(1.0, value.as_number() / 100.0))
        left, top, right, bottom = box
        filled = left + int((right - left) * fraction)
        if filled > left:
            draw.rectangle((left, top, filled - 1, bottom - 1), fill=self.style["bar_color"])

    def _draw_text(self, draw: ImageDraw.ImageDraw, text: str, box: Box) -> None:
        """
        Draw text centered in a box.

        Multi-line text is stacked with a small line spacing and the block
        is centered vertically.
        """
        font = self._load_font(self.style["font"], self.style["font_size"])
        left, top, right, bottom = box

        lines = text.split("\n")
        line_bboxes = [draw.textbbox((0, 0), line, font=font) for line in lines]
        line_spacing = 2
        total_height = sum(bbox[3] - bbox[1] for bbox in line_bboxes)
        total_height += (len(lines) - 1) * line_spacing

        y_offset = top + ((bottom - top) - total_height) // 2
        for line, bbox in zip(lines, line_bboxes):
            line_width = bbox[2] - bbox[0]
            text_x = left + ((right - left) - line_width) // 2
            # bbox[1] can be negative for tall ascenders
            draw.text((text_x, y_offset - bbox[1]), line, font=font, fill=self.style["text_color"])
            y_offset += (bbox[3] - bbox[1]) + line_spacing

    def _load_font(self, font_name: str, font_size: int):
        """Load a font with caching"""
        cache_key = f"{font_name}_{font_size}"

        if cache_key in self.font_cache:
            return self.font_cache[cache_key]

        font = None

        if "/" in font_name or font_name.endswith(".ttf"):
            font_path = os.path.expanduser(font_name)
            try:
                font = ImageFont.truetype(font_path, font_size)
            except OSError as e:
                logger.warning(f"Failed to load font from path '{font_path}': {e}")

        if not font:
            font = self._find_system_font(font_name, font_size)

        if not font:
            logger.warning(f"Failed to load font '{font_name}', using default")
            font = ImageFont.load_default()

        self.font_cache[cache_key] = font
        return font

    def _find_system_font(self, font_name: str, font_size: int):
        font_dirs = [
            "/usr/share/fonts",
            "/usr/local/share/fonts",
            os.path.expanduser("~/.fonts"),
            os.path.expanduser("~/.local/share/fonts"),
        ]
        wanted = font_name.lower().replace(" ", "")

        for font_dir in font_dirs:
            if not os.path.exists(font_dir):
                continue
            for root, _dirs, files in os.walk(font_dir):
                for file in files:
                    if not file.endswith((".ttf", ".otf")):
                        continue
                    if wanted not in file.lower().replace(" ", ""):
                        continue
                    font_path = os.path.join(root, file)
                    try:
                        font = ImageFont.truetype(font_path, font_size)
                    except OSError as e:
                        # Font file might be corrupted or inaccessible
                        logger.debug(f"Cannot load font {font_path}: {e}")
                        continue
                    logger.debug(f"Loaded font: {font_path}")
                    return font
        return None


def _is_visible(node: WidgetNode) -> bool:
    visible = node.attributes.get("visible")
    if visible is None:
        return True
    try:
        return visible.as_bool()
    except TypeMismatch:
        return True


def _has_size(node: WidgetNode, name: str) -> bool:
    value = node.attributes.get(name)
    return value is not None and value.coerces_to_number() and value.as_number() > 0


def _split(node: WidgetNode, box: Box):
    """Divide a container's box between its children."""
    left, top, right, bottom = box
    count = len(node.children)
    orientation = node.attributes.get("orientation")
    vertical = orientation is not None and orientation.as_string() in ("v", "vertical")

    cells = []
    for index in range(count):
        if vertical:
            step = (bottom - top) / count
            cells.append((left, int(top + index * step), right, int(top + (index + 1) * step)))
        else:
            step = (right - left) / count
            cells.append((int(left + index * step), top, int(left + (index + 1) * step), bottom))
    return cells
