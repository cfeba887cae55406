import json
import logging
from typing import Dict, List, Optional

from ..config import settings
from ..models.schemas import AppBaseModel, DesignSpecification

logger = logging.getLogger(settings.SERVICE_NAME + ".prompts")


GENERIC_SYSTEM_PROMPT = (
    "You are an expert UI/UX designer. Create a detailed design specification "
    "based on the user's requirements."
)

# Registry of known archetypes. Each entry carries the system instruction sent to
# the model, the design type it is expected to produce and the components a
# typical design of that kind starts from.
DESIGN_PROMPTS: Dict[str, Dict] = {
    "login": {
        "system": (
            "You are an expert UI/UX designer. Create a detailed design specification "
            "for a login screen based on the user's requirements."
        ),
        "design_type": "login-screen",
        "starter_components": [
            {"type": "logo", "position": "top-center", "size": "medium"},
            {"type": "title", "text": "Welcome Back", "style": "heading-1"},
            {"type": "input", "label": "Email", "inputType": "email", "required": True},
            {"type": "input", "label": "Password", "inputType": "password", "required": True},
            {"type": "button", "text": "Sign In", "style": "primary", "action": "submit"},
            {"type": "divider", "text": "or"},
            {"type": "social-buttons", "providers": ["google", "github"]},
            {"type": "link", "text": "Forgot Password?", "action": "forgot-password"},
        ],
    },
    "dashboard": {
        "system": (
            "You are an expert UI/UX designer. Create a detailed design specification "
            "for a dashboard interface based on the user's requirements."
        ),
        "design_type": "dashboard",
        "starter_components": [
            {"type": "sidebar", "items": ["dashboard", "analytics", "projects", "settings"]},
            {"type": "header", "items": ["search", "notifications", "profile"]},
            {"type": "stats-cards", "count": 4},
            {"type": "chart", "chartType": "line", "title": "Analytics Overview"},
            {"type": "data-table", "title": "Recent Activity"},
        ],
    },
    "landing": {
        "system": (
            "You are an expert UI/UX designer. Create a detailed design specification "
            "for a landing page based on the user's requirements."
        ),
        "design_type": "landing-page",
        "starter_components": [
            {"type": "hero", "layout": "center", "cta": True},
            {"type": "features", "layout": "grid", "columns": 3},
            {"type": "testimonials", "layout": "carousel"},
            {"type": "pricing", "layout": "cards"},
            {"type": "cta", "style": "gradient-background"},
            {"type": "footer", "style": "minimal"},
        ],
    },
}

# Output contract appended to every system instruction.
OUTPUT_CONTRACT = """Return a JSON object with the following structure:
{
  "type": "design-type",
  "title": "Design Title",
  "description": "Brief description",
  "components": [
    {
      "id": "unique-id",
      "type": "component-type",
      "properties": {
        "text": "content",
        "style": "styling-info",
        "position": "layout-info"
      }
    }
  ],
  "layout": {
    "width": 1200,
    "height": 800,
    "background": "#ffffff"
  },
  "figmaInstructions": [
    "Step-by-step instructions for Figma plugin"
  ]
}
Respond with the JSON object only, without any surrounding text."""


class ComposedPrompt(AppBaseModel):
    """System instruction and user content, kept as separate chat roles."""

    system: str
    user: str

    def to_messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


def resolve_design_prompt(design_type_hint: Optional[str]) -> Optional[Dict]:
    """Find the registry entry for a hint, matching either its key ("login") or its type ("login-screen")."""
    if not design_type_hint:
        return None
    hint = design_type_hint.strip().lower()
    if hint in DESIGN_PROMPTS:
        return DESIGN_PROMPTS[hint]
    for entry in DESIGN_PROMPTS.values():
        if entry["design_type"] == hint:
            return entry
    return None


def _system_instruction(design_type_hint: Optional[str]) -> str:
    entry = resolve_design_prompt(design_type_hint)
    if entry is None:
        logger.debug(f"No prompt template for design type '{design_type_hint}', using generic instruction.")
        return f"{GENERIC_SYSTEM_PROMPT}\n\n{OUTPUT_CONTRACT}"

    starter = json.dumps(entry["starter_components"], indent=2)
    return (
        f"{entry['system']}\n\n"
        f"Use \"{entry['design_type']}\" as the design type. A typical design of this kind "
        f"starts from these components; adapt, extend or drop them as the request requires:\n"
        f"{starter}\n\n"
        f"{OUTPUT_CONTRACT}"
    )


def compose_generation_prompt(design_type_hint: Optional[str], user_text: str) -> ComposedPrompt:
    return ComposedPrompt(system=_system_instruction(design_type_hint), user=user_text)


def compose_modification_prompt(prior_spec: DesignSpecification, edit_request_text: str) -> ComposedPrompt:
    """
    Build the prompt for editing an existing design.

    The full prior specification is embedded, and the model is asked for a complete
    replacement in the same shape rather than a patch, so receivers only ever
    replace and re-render.
    """
    user = (
        f'Modify the following design based on this request: "{edit_request_text}"\n\n'
        f"Original design: {prior_spec.to_json()}\n\n"
        "Return the complete modified design in the same JSON format, "
        "including every component that should remain."
    )
    return ComposedPrompt(system=_system_instruction(prior_spec.type), user=user)
