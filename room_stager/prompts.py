"""Staging instruction sent to the image-editing model.

The template is configuration: deployments can replace it through
``STAGING_PROMPT`` or ``STAGING_PROMPT_FILE``. Whatever template is used, one of
the two closing clauses below is always appended, depending on whether any
reference images were resolved for the request.
"""

DEFAULT_PROMPT_TEMPLATE = (
    "Transform the uploaded photo of a room. Preserve all architectural details and layout exactly as in "
    "the source image: keep the size, perspective, positions and shapes of windows and doors, placement of "
    "structural beams, and all built-in features intact."
    " Restyle the room to match the textures, color palette, and overall visual style of the attached "
    "example images, if any are provided."
    " Change the surface colors, wall and ceiling hues, flooring, furniture finishes, bedding, and decor "
    "accents so they reflect the style, materials, and mood of the sample images."
    " Adapt staging and arrangement to feel professionally finished, applying cohesive styling and visual "
    "balance."
    " Important:"
    " Do not alter the layout, scale, or structure. Window, door, and beam positions must remain unchanged."
    " Only transform colors, textures, and decorative elements (such as throw blankets, rugs, artwork, and "
    "small objects)."
)

WITH_REFERENCES_CLAUSE = (
    "Use the style and staging approach shown in the example images to create a professionally staged room."
)

WITHOUT_REFERENCES_CLAUSE = (
    "Create a modern, clean, and professionally staged room with appropriate furniture, lighting, and decor "
    "that would appeal to potential buyers or renters."
)


def build_staging_prompt(has_references: bool, template: str = DEFAULT_PROMPT_TEMPLATE) -> str:
    closing = WITH_REFERENCES_CLAUSE if has_references else WITHOUT_REFERENCES_CLAUSE
    return f"{template.rstrip()} {closing}"
