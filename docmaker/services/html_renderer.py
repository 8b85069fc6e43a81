"""
Presentation AST -> self-contained HTML pages (one page per slide).

The pages are what the PDF renderer prints and what the preview endpoint
returns, so everything a slide needs (fonts, page size, background) is
inlined.
"""
from __future__ import annotations

import html
import re
from typing import Any, Dict, List
from urllib.parse import quote

from docmaker.services.slide_quality import CANVAS_HEIGHT, CANVAS_WIDTH

DEFAULT_FONT = "Heebo"
_BLOCKED_SCHEMES = ("javascript:", "data:text/html", "vbscript:")
_FONT_WEIGHTS = "300;400;500;600;700;800;900"
_CSS_UNSAFE = re.compile(r"[<>{};\\'\"\r\n]")


def escape_html(text: Any) -> str:
    return (
        str(text if text is not None else "")
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("\n", "<br/>")
    )


def sanitize_url(url: Any) -> str:
    """Empty string for script-capable URLs, the URL otherwise."""
    if not url:
        return ""
    url = str(url)
    if url.strip().lower().startswith(_BLOCKED_SCHEMES):
        return ""
    return url.replace('"', "%22")


def css_value(value: Any) -> str:
    """Strip characters that could close a rule, a quoted string or the <style> element."""
    return _CSS_UNSAFE.sub("", str(value if value is not None else ""))


def style_attr(styles: List[str]) -> str:
    """Join declarations for a double-quoted style attribute."""
    return html.escape("; ".join(str(s) for s in styles), quote=False).replace('"', "&quot;")


def background_css(background: Dict[str, Any]) -> str:
    background = background or {}
    kind = background.get("type")
    value = background.get("value") or ""
    if kind in ("solid", "gradient") and value:
        return f"background: {css_value(value)};"
    if kind == "image" and value:
        return f"background: url('{css_value(sanitize_url(value))}') center/cover no-repeat;"
    return "background: #1a1a2e;"


def _geometry(el: Dict[str, Any]) -> List[str]:
    return [
        "position: absolute",
        f"left: {el.get('x', 0)}px",
        f"top: {el.get('y', 0)}px",
        f"width: {el.get('width', 0)}px",
        f"height: {el.get('height', 0)}px",
        f"z-index: {el.get('zIndex', 0)}",
    ]


def _common(el: Dict[str, Any], styles: List[str]) -> None:
    opacity = el.get("opacity")
    if opacity is not None and opacity != 1:
        styles.append(f"opacity: {opacity}")
    if el.get("rotation"):
        styles.append(f"transform: rotate({el['rotation']}deg)")


def _text_html(el: Dict[str, Any], default_font: str) -> str:
    gradient = el.get("gradientFill")
    font = css_value(el.get("fontFamily") or default_font or DEFAULT_FONT)
    overflow = "visible" if el.get("role") in ("title", "subtitle", "decorative") else "hidden"
    styles = _geometry(el) + [
        f"font-size: {el.get('fontSize', 20)}px",
        f"font-weight: {el.get('fontWeight', 400)}",
        f"color: {'transparent' if gradient else el.get('color', '#ffffff')}",
        f"text-align: {el.get('textAlign', 'right')}",
        "white-space: pre-wrap",
        "word-wrap: break-word",
        f"overflow: {overflow}",
        "direction: rtl",
        f"font-family: '{font}', sans-serif",
    ]
    if el.get("lineHeight"):
        styles.append(f"line-height: {el['lineHeight']}")
    if el.get("letterSpacing"):
        styles.append(f"letter-spacing: {el['letterSpacing']}px")
    for key, css in (("textDecoration", "text-decoration"), ("textTransform", "text-transform")):
        if el.get(key) and el[key] != "none":
            styles.append(f"{css}: {el[key]}")
    _common(el, styles)
    if el.get("backgroundColor"):
        styles.append(f"background-color: {el['backgroundColor']}")
    if el.get("borderRadius"):
        styles.append(f"border-radius: {el['borderRadius']}px")
    if el.get("padding"):
        styles.append(f"padding: {el['padding']}px")
    if el.get("mixBlendMode") and el["mixBlendMode"] != "normal":
        styles.append(f"mix-blend-mode: {el['mixBlendMode']}")
    stroke = el.get("textStroke")
    if isinstance(stroke, dict) and stroke.get("width"):
        styles.append(f"-webkit-text-stroke: {stroke['width']}px {stroke.get('color', '#ffffff')}")
    if gradient:
        styles += [f"background: {gradient}", "-webkit-background-clip: text", "background-clip: text"]

    return f'<div style="{style_attr(styles)}">{escape_html(el.get("content", ""))}</div>'


def _image_html(el: Dict[str, Any]) -> str:
    styles = _geometry(el) + ["overflow: hidden"]
    if el.get("borderRadius"):
        styles.append(f"border-radius: {el['borderRadius']}px")
    if el.get("clipPath"):
        styles.append(f"clip-path: {el['clipPath']}")
    if el.get("border"):
        styles.append(f"border: {el['border']}")
    _common(el, styles)

    img_style = style_attr([
        "width: 100%", "height: 100%", f"object-fit: {el.get('objectFit', 'cover')}", "display: block",
    ])
    return (
        f'<div style="{style_attr(styles)}">'
        f'<img src="{sanitize_url(el.get("src"))}" alt="{escape_html(el.get("alt", ""))}" '
        f'style="{img_style}" onerror="this.style.display=\'none\'" /></div>'
    )


def _shape_html(el: Dict[str, Any]) -> str:
    styles = _geometry(el)
    fill = el.get("fill") or "transparent"
    if "gradient" in fill:
        styles.append(f"background: {fill}")
    else:
        styles.append(f"background-color: {fill}")
    if el.get("borderRadius"):
        styles.append(f"border-radius: {el['borderRadius']}px")
    if el.get("clipPath"):
        styles.append(f"clip-path: {el['clipPath']}")
    if el.get("border"):
        styles.append(f"border: {el['border']}")
    _common(el, styles)
    if el.get("mixBlendMode") and el["mixBlendMode"] != "normal":
        styles.append(f"mix-blend-mode: {el['mixBlendMode']}")
    return f'<div style="{style_attr(styles)}"></div>'


def element_to_html(el: Dict[str, Any], default_font: str = DEFAULT_FONT) -> str:
    """HTML for one element; unknown element types render as nothing."""
    kind = el.get("type")
    if kind == "text":
        return _text_html(el, default_font)
    if kind == "image":
        return _image_html(el)
    if kind == "shape":
        return _shape_html(el)
    return ""


def slide_to_html(slide: Dict[str, Any], design_system: Dict[str, Any]) -> str:
    """A complete 1920x1080 HTML document for one slide."""
    fonts = design_system.get("fonts") or {}
    heading_font = css_value(fonts.get("heading") or DEFAULT_FONT)
    body_font = css_value(fonts.get("body") or heading_font)
    direction = "ltr" if design_system.get("direction") == "ltr" else "rtl"

    elements = sorted(slide.get("elements") or [], key=lambda e: e.get("zIndex") or 0)
    elements_html = "\n    ".join(element_to_html(el, heading_font) for el in elements)

    used_fonts = [heading_font]
    for font in [body_font] + [el.get("fontFamily") for el in elements if el.get("type") == "text"]:
        if font and font not in used_fonts:
            used_fonts.append(font)
    font_query = "&".join(f"family={quote(f)}:wght@{_FONT_WEIGHTS}" for f in used_fonts)

    return f"""<!DOCTYPE html>
<html dir="{direction}" lang="he">
<head>
  <meta charset="UTF-8">
  <link href="https://fonts.googleapis.com/css2?{font_query}&display=swap" rel="stylesheet">
  <style>
    @page {{ size: {CANVAS_WIDTH}px {CANVAS_HEIGHT}px; margin: 0; }}
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    body {{
      font-family: '{heading_font}', sans-serif;
      direction: {direction};
      -webkit-print-color-adjust: exact !important;
      print-color-adjust: exact !important;
      width: {CANVAS_WIDTH}px;
      height: {CANVAS_HEIGHT}px;
      overflow: hidden;
    }}
    .slide {{
      width: {CANVAS_WIDTH}px;
      height: {CANVAS_HEIGHT}px;
      position: relative;
      overflow: hidden;
      {background_css(slide.get("background") or {})}
    }}
    div {{ -webkit-print-color-adjust: exact !important; print-color-adjust: exact !important; }}
    .slide * {{ -webkit-font-smoothing: antialiased; text-rendering: geometricPrecision; }}
  </style>
</head>
<body>
  <div class="slide">
    {elements_html}
  </div>
</body>
</html>"""


def presentation_to_html_slides(presentation: Dict[str, Any]) -> List[str]:
    design_system = presentation.get("designSystem") or {}
    return [slide_to_html(slide, design_system) for slide in presentation.get("slides") or []]
