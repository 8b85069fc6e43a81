"""
Deterministic quality checks for generated slides.

validate_slide() scores a slide out of 100 against its pacing directive;
auto_fix_slide() repairs the issues marked auto-fixable (text contrast and
safe-zone placement); check_visual_consistency() pulls drifting titles
back in line across the deck.
"""
from __future__ import annotations

import copy
import dataclasses
import re
from typing import Any, Dict, Iterable, List, Optional

from docmaker.services.color_utils import MAX_FIX_ATTEMPTS, adjust_lightness, contrast_ratio

CANVAS_WIDTH = 1920
CANVAS_HEIGHT = 1080
SAFE_MARGIN = 80
# Content inside this inner frame does not trigger a safe-zone warning
SAFE_ZONE_TOLERANCE = 60

# Slides whose titles are intentionally oversized or repositioned
_FREEFORM_TITLE_SLIDES = ("cover", "closing", "bigIdea", "insight")

_HEX_CHARS = re.compile(r"[^#0-9a-fA-F]")


@dataclasses.dataclass
class ValidationIssue:
    severity: str  # critical | warning | suggestion
    category: str
    message: str
    element_id: Optional[str] = None
    auto_fixable: bool = False


@dataclasses.dataclass
class ValidationResult:
    valid: bool
    score: int
    issues: List[ValidationIssue]

    @property
    def needs_auto_fix(self) -> bool:
        return any(i.severity == "critical" and i.auto_fixable for i in self.issues)


# ---------------------------------------------------------------------------
# Spatial helpers
# ---------------------------------------------------------------------------

def _box(el: Dict[str, Any]) -> Dict[str, float]:
    return {
        "x": el.get("x") or 0,
        "y": el.get("y") or 0,
        "width": el.get("width") or 0,
        "height": el.get("height") or 0,
    }


def compute_occupied_area(boxes: Iterable[Dict[str, float]]) -> float:
    """Summed element area as a fraction of the canvas, capped at 1."""
    occupied = sum(b["width"] * b["height"] for b in boxes)
    return min(occupied / (CANVAS_WIDTH * CANVAS_HEIGHT), 1.0)


def compute_balance_score(boxes: Iterable[Dict[str, float]]) -> float:
    """
    Visual balance on a 4x3 grid: 1 is evenly spread, 0 is lopsided.
    An empty slide scores 0.5.
    """
    cols, rows = 4, 3
    cell_w, cell_h = CANVAS_WIDTH / cols, CANVAS_HEIGHT / rows
    cells = [0.0] * (cols * rows)

    for b in boxes:
        for r in range(rows):
            for c in range(cols):
                cx, cy = c * cell_w, r * cell_h
                overlap_x = max(0.0, min(b["x"] + b["width"], cx + cell_w) - max(b["x"], cx))
                overlap_y = max(0.0, min(b["y"] + b["height"], cy + cell_h) - max(b["y"], cy))
                cells[r * cols + c] += overlap_x * overlap_y

    max_cell = max(cells)
    if max_cell == 0:
        return 0.5
    normalized = [c / max_cell for c in cells]
    mean = sum(normalized) / len(normalized)
    variance = sum((v - mean) ** 2 for v in normalized) / len(normalized)
    return max(0.0, 1 - variance * 2)


def _is_content_text(el: Dict[str, Any]) -> bool:
    return el.get("type") == "text" and el.get("role") != "decorative"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_slide(
    slide: Dict[str, Any],
    design_system: Dict[str, Any],
    pacing: Dict[str, Any],
) -> ValidationResult:
    issues: List[ValidationIssue] = []
    score = 100

    elements: List[Dict[str, Any]] = slide.get("elements") or []
    content_texts = [e for e in elements if _is_content_text(e)]
    boxes = [_box(e) for e in elements]
    background = (design_system.get("colors") or {}).get("background", "#000000")

    for el in content_texts:
        color = el.get("color")
        if not color or "transparent" in color:
            continue
        ratio = contrast_ratio(_HEX_CHARS.sub("", color)[:7], background)
        font_size = el.get("fontSize") or 20
        minimum = 3 if font_size >= 48 else 4.5
        if ratio < minimum:
            issues.append(ValidationIssue(
                "critical", "contrast", f"contrast {ratio:.1f}:1 (min {minimum}:1)",
                element_id=el.get("id"), auto_fixable=True,
            ))
            score -= 15

    max_elements = pacing.get("maxElements", 12)
    if len(elements) > max_elements:
        issues.append(ValidationIssue(
            "warning", "density", f"{len(elements)} elements (max {max_elements})"
        ))
        score -= 10

    # minWhitespace is a percentage
    min_whitespace = pacing.get("minWhitespace", 30) / 100
    whitespace = 1 - compute_occupied_area(boxes)
    if whitespace < min_whitespace:
        issues.append(ValidationIssue(
            "warning", "whitespace",
            f"Whitespace {round(whitespace * 100)}% (min {round(min_whitespace * 100)}%)",
        ))
        score -= 8

    limit_x = CANVAS_WIDTH - SAFE_ZONE_TOLERANCE
    limit_y = CANVAS_HEIGHT - SAFE_ZONE_TOLERANCE
    for el in content_texts:
        b = _box(el)
        if (
            b["x"] < SAFE_ZONE_TOLERANCE
            or b["x"] + b["width"] > limit_x
            or b["y"] < SAFE_ZONE_TOLERANCE
            or b["y"] + b["height"] > limit_y
        ):
            issues.append(ValidationIssue(
                "warning", "safe-zone", "Content outside safe zone",
                element_id=el.get("id"), auto_fixable=True,
            ))
            score -= 5

    font_sizes = [s for s in ((e.get("fontSize") or 20) for e in content_texts) if s > 0]
    if len(font_sizes) >= 2:
        ratio = max(font_sizes) / min(font_sizes)
        min_ratio = 8 if pacing.get("energy") == "peak" else 4
        if ratio < min_ratio:
            issues.append(ValidationIssue(
                "suggestion", "scale", f"Font ratio {ratio:.1f}:1 (recommend >= {min_ratio}:1)"
            ))
            score -= 5

    has_title = any(e.get("role") == "title" for e in content_texts)
    if not has_title and slide.get("slideType") != "cover":
        issues.append(ValidationIssue("warning", "hierarchy", "No title element"))
        score -= 10

    balance = compute_balance_score(boxes)
    if balance < 0.3:
        issues.append(ValidationIssue("suggestion", "balance", f"Balance {balance * 100:.0f}/100"))
        score -= 5

    return ValidationResult(
        valid=not any(i.severity == "critical" for i in issues),
        score=max(0, score),
        issues=issues,
    )


def auto_fix_slide(
    slide: Dict[str, Any],
    issues: List[ValidationIssue],
    design_system: Dict[str, Any],
) -> Dict[str, Any]:
    """Return a copy of *slide* with contrast and safe-zone issues repaired."""
    fixed = copy.deepcopy(slide)
    elements: List[Dict[str, Any]] = fixed.get("elements") or []
    by_id = {el.get("id"): el for el in elements}
    background = (design_system.get("colors") or {}).get("background", "#000000")

    for issue in issues:
        if not issue.auto_fixable or not issue.element_id:
            continue
        el = by_id.get(issue.element_id)
        if el is None:
            continue

        if issue.category == "contrast" and el.get("type") == "text":
            color = el.get("color") or "#ffffff"
            attempts = 0
            while contrast_ratio(color, background) < 4.5 and attempts < MAX_FIX_ATTEMPTS:
                color = adjust_lightness(color, 0.05)
                attempts += 1
            el["color"] = color

        if issue.category == "safe-zone":
            width = el.get("width") or 200
            height = el.get("height") or 60
            el["x"] = max(SAFE_MARGIN, min(el.get("x") or 0, CANVAS_WIDTH - SAFE_MARGIN - width))
            el["y"] = max(SAFE_MARGIN, min(el.get("y") or 0, CANVAS_HEIGHT - SAFE_MARGIN - height))

    return fixed


def check_visual_consistency(slides: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Snap title y-positions that stray more than 100px from the median, and
    font sizes that drift 6-15px from the median size.  Needs at least three
    titles; cover, closing, bigIdea and insight slides are left alone.
    Title elements are updated in place.
    """
    titles = [
        (slide, el)
        for slide in slides
        for el in slide.get("elements") or []
        if el.get("type") == "text" and el.get("role") == "title"
    ]
    if len(titles) < 3:
        return slides

    regular = [el for slide, el in titles if slide.get("slideType") not in _FREEFORM_TITLE_SLIDES]
    if not regular:
        return slides

    ys = sorted(el.get("y") or 0 for el in regular)
    median_y = ys[len(ys) // 2]
    sizes = sorted(el.get("fontSize") or 48 for el in regular)
    median_size = sizes[len(sizes) // 2]

    for el in regular:
        if abs((el.get("y") or 0) - median_y) > 100:
            el["y"] = median_y
        drift = abs((el.get("fontSize") or 48) - median_size)
        if 6 < drift < 15:
            el["fontSize"] = median_size

    return slides
