"""Prompt construction from a style guide and an image request.

Pure string formatting, no state.
"""

from __future__ import annotations

import logging
import re

from stylegen.core.generation.models import (
    AspectRatio,
    ImageRequest,
    ImageStyle,
    StyleGuide,
)

logger = logging.getLogger(__name__)

DEFAULT_ASPECT_RATIO = AspectRatio.WIDE

_SUPPORTED_RATIOS = {ratio.value: ratio for ratio in AspectRatio}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def format_style_guide(style_guide: StyleGuide) -> str:
    """Format the style guide into a concise prompt section.

    Args:
        style_guide: Brand style guide.

    Returns:
        Style guide text, sections separated by blank lines.
    """
    sections: list[str] = []

    if style_guide.brand_keywords:
        sections.append(f"Style Keywords: {', '.join(style_guide.brand_keywords)}")

    palette = style_guide.palette
    if palette:
        colors = []
        if palette.background:
            colors.append(f"Background: {', '.join(palette.background)}")
        if palette.primary_accents:
            colors.append(f"Primary accents: {', '.join(palette.primary_accents)}")
        if palette.secondary_accents:
            colors.append(f"Secondary accents: {', '.join(palette.secondary_accents)}")
        if palette.neutrals:
            colors.append(f"Neutrals: {', '.join(palette.neutrals)}")
        if colors:
            sections.append("Color Palette:\n" + "\n".join(colors))

    ui = style_guide.ui_style
    if ui:
        ui_parts = []
        if ui.mode:
            ui_parts.append(f"Mode: {ui.mode}")
        if ui.shapes:
            ui_parts.append(f"Shapes: {ui.shapes}")
        if ui.charts:
            ui_parts.append(f"Charts: {ui.charts}")
        if ui.icons:
            ui_parts.append(f"Icons: {ui.icons}")
        if ui_parts:
            sections.append("UI Style:\n" + "\n".join(ui_parts))

    if style_guide.typography_feel:
        sections.append(f"Typography: {', '.join(style_guide.typography_feel)}")

    if style_guide.visual_motifs:
        sections.append(f"Visual Motifs: {'; '.join(style_guide.visual_motifs)}")

    if style_guide.avoid:
        sections.append(f"AVOID: {'; '.join(style_guide.avoid)}")

    return "\n\n".join(sections)


def format_image_style(image_style: ImageStyle | None) -> str:
    """Format image-specific style attributes as one sentence per attribute."""
    if image_style is None:
        return ""

    parts = []
    if image_style.lighting:
        parts.append(f"Lighting: {image_style.lighting}")
    if image_style.detail_level:
        parts.append(f"Detail level: {image_style.detail_level}")
    if image_style.ui_fidelity:
        parts.append(f"UI fidelity: {image_style.ui_fidelity}")
    if image_style.mood:
        parts.append(f"Mood: {image_style.mood}")

    return ". ".join(parts) + "." if parts else ""


def build_prompt(style_guide: StyleGuide, request: ImageRequest) -> str:
    """Build the complete prompt for one image.

    Args:
        style_guide: Brand style guide.
        request: Image request.

    Returns:
        Prompt text with style guide, request metadata, main prompt, and
        optional image-specific style sections.
    """
    prompt_parts = [
        "=== STYLE GUIDE ===",
        format_style_guide(style_guide),
        "",
        "=== IMAGE REQUEST ===",
        f"Title: {request.title}",
        f"Section: {request.section}",
        f"Aspect Ratio: {request.aspect_ratio}",
        "",
        "=== MAIN PROMPT ===",
        request.prompt,
    ]

    image_style_text = format_image_style(request.style)
    if image_style_text:
        prompt_parts.extend(["", "=== IMAGE-SPECIFIC STYLE ===", image_style_text])

    return "\n".join(prompt_parts)


def normalize_aspect_ratio(aspect_ratio: str | None) -> AspectRatio:
    """Normalize an aspect ratio string to a supported value.

    Whitespace is ignored. Unsupported values fall back to 16:9 with a warning.

    Example:
        >>> normalize_aspect_ratio(" 4 : 3 ")
        <AspectRatio.LANDSCAPE_4_3: '4:3'>
    """
    normalized = re.sub(r"\s", "", aspect_ratio or "")
    ratio = _SUPPORTED_RATIOS.get(normalized)
    if ratio is None:
        logger.warning(
            'Aspect ratio "%s" not supported, defaulting to %s',
            aspect_ratio,
            DEFAULT_ASPECT_RATIO.value,
        )
        return DEFAULT_ASPECT_RATIO
    return ratio


def _slug(value: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", value.strip()).strip("_")


def format_filename(template: str, request: ImageRequest) -> str:
    """Render a filename (without extension) from a template.

    Supported placeholders: ``{id}``, ``{section}``, ``{title}``, ``{ratio}``.
    Substituted values are made filesystem-safe; an empty result falls back
    to the request id.

    Example:
        >>> format_filename("{section}-{id}", ImageRequest(id="hero", section="Intro"))
        'Intro-hero'
    """
    values = {
        "{id}": request.id,
        "{section}": request.section,
        "{title}": request.title,
        "{ratio}": request.aspect_ratio.replace(":", "x"),
    }
    name = template
    for placeholder, value in values.items():
        name = name.replace(placeholder, _slug(value))
    name = _slug(name)
    return name or _slug(request.id) or "image"
