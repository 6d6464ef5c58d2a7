from __future__ import annotations

import json
from typing import Any, List, Optional

from ..db.models import BusinessRecord
from ..schemas.jobs import StylePreset, SubjectContext

DEFAULT_IMAGE_PROMPT = """
You are an expert digital artist and commercial graphic designer.
Create a high-end professional visual for the following business.

BRAND IDENTITY:
- Business Name: {business_name}
- Industry: {industry}
- Brand Colors: Primary {color_primary}, Secondary {color_secondary}, Accent {color_accent}.
- Visual Vibe: {tone}

STRICT VISUAL RULES:
1. Do NOT invent features that are not described in the prompt.
2. TEXT HANDLING:
   - Generally, minimize random text to avoid gibberish.
   - HOWEVER, if the user prompt asks for "Text", "Copy", "Infographic", "Sign", or "Typography", you MUST render the text clearly.
   - When rendering text, prioritize the Business Name, Slogan, or USPs listed above.
   - Ensure perfect spelling.
3. Incorporate the brand colors subtly into the lighting, background, or objects.
4. LOGO INTEGRATION (IF PROVIDED):
   - Treat the logo as a PHYSICAL OBJECT in the scene, not a digital overlay.
   - Apply material properties: Embossed, Neon, Matte Print, Metallic Foil, or Engraved depending on the style.
   - Match the scene's lighting, shadows, and perspective.

SCENE DESCRIPTION (USER REQUEST):
{visual_prompt}

KEYWORDS TO VISUALIZE:
{keywords}

NEGATIVE CONSTRAINTS (DO NOT INCLUDE):
{negative_constraints}
"""

_LOGO_MATERIAL_FALLBACK = """- If the style is NEON/CYBER: The logo must be a glowing light source.
- If the style is LUXURY: The logo must be gold/silver foil or embossed.
- If the style is NATURAL: The logo must be engraved or printed on matte paper.
"""


def _join(items: Optional[List[Any]]) -> str:
    return ", ".join(str(i) for i in (items or []) if str(i).strip())


def build_visual_prompt(prompt: str, subject: Optional[SubjectContext]) -> str:
    visual = prompt
    if subject is not None:
        likeness = "Maintain strict visual likeness." if subject.preserve_likeness else ""
        visual += f"\nPRIMARY SUBJECT: {subject.type}. {likeness}".rstrip()
    return visual


def create_image_prompt(
    business: BusinessRecord,
    prompt: str,
    *,
    subject: Optional[SubjectContext] = None,
    style: Optional[StylePreset] = None,
    strategy: Optional[Any] = None,
) -> str:
    """Assemble the full text instruction sent to the image model.

    The user's prompt is wrapped in the brand template, then optional
    subject, offer and strategy details are appended as plain lines. Logo
    guidance is only added when the business has a logo, because the logo
    is sent as a reference image in that case.
    """
    profile = business.profile()
    colors = profile.get("colors") or {}
    voice = profile.get("voice") or {}
    ad_prefs = profile.get("adPreferences") or {}

    negative = _join([*(style.avoid if style else []), *(voice.get("negativeKeywords") or [])])

    text = DEFAULT_IMAGE_PROMPT.format(
        business_name=business.name,
        industry=business.industry or "",
        color_primary=colors.get("primary", ""),
        color_secondary=colors.get("secondary", ""),
        color_accent=colors.get("accent", ""),
        tone=voice.get("tone", ""),
        visual_prompt=build_visual_prompt(prompt, subject),
        keywords=_join(voice.get("keywords")),
        negative_constraints=negative,
    )

    details: List[str] = []
    if subject is not None:
        if subject.name:
            details.append(f"- Subject name: {subject.name}")
        if subject.is_free:
            details.append("- Price: FREE")
        elif subject.price:
            details.append(f"- Price: {subject.price}")
        if subject.promotion:
            details.append(f"- Promotion: {subject.promotion}")
        if subject.benefits:
            details.append(f"- Key benefits: {_join(subject.benefits)}")
        if subject.terms_and_conditions:
            details.append(f"- Terms: {subject.terms_and_conditions}")
    audience = (subject.target_audience if subject else None) or ad_prefs.get("targetAudience")
    if audience:
        details.append(f"- Target audience: {audience}")
    if strategy:
        rendered = strategy if isinstance(strategy, str) else json.dumps(strategy, ensure_ascii=False)
        details.append(f"- Creative strategy: {rendered}")
    if details:
        text += "\nOFFER DETAILS:\n" + "\n".join(details) + "\n"

    if business.logo_url:
        text += "\nCRITICAL LOGO INSTRUCTION:\nThe BRAND LOGO is provided as a reference image.\n"
        text += "INTEGRATE IT NATURALLY. Do not just paste it flat.\n"
        placement = style.logo_placement if style else None
        material = style.logo_material if style else None
        if placement:
            text += f"- PLACEMENT/COMPOSITION: {placement}\n"
        else:
            text += "- Place it naturally within the composition (e.g., on product packaging, as a watermark, or on a sign).\n"
        if material:
            text += f"- MATERIAL/INTEGRATION: {material}\n"
        else:
            text += _LOGO_MATERIAL_FALLBACK
        text += "- Ensure perspective alignment with the surface it is on.\n"

    return text.strip()
