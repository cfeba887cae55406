import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..config import settings
from ..exceptions import GenerationFailure
from ..models.schemas import DesignSpecification, parse_design_payload
from .prompts import ComposedPrompt, compose_generation_prompt, compose_modification_prompt

logger = logging.getLogger(settings.SERVICE_NAME + ".generator")


def _normalize_component_ids(components: List[Any]) -> List[Any]:
    """Give every component an id that is unique within the design, keeping order."""
    seen = set()
    normalized = []
    for position, component in enumerate(components, start=1):
        if not isinstance(component, dict):
            # Left for schema validation to reject.
            normalized.append(component)
            continue
        component = dict(component)
        base_id = component.get("id")
        if base_id is None or str(base_id) == "":
            base_id = f"{component.get('type') or 'component'}-{position}"
        candidate = str(base_id)
        suffix = 2
        while candidate in seen:
            candidate = f"{base_id}-{suffix}"
            suffix += 1
        seen.add(candidate)
        component["id"] = candidate
        normalized.append(component)
    return normalized


class DesignGenerator:
    """
    Turns prompts into DesignSpecifications through the external model.

    Any failure along the way (model error, timeout, unusable output) surfaces as
    GenerationFailure. Nothing is retried here.
    """

    def __init__(self, model_client, timeout_s: Optional[float] = None):
        self.model_client = model_client
        self.timeout_s = timeout_s if timeout_s is not None else settings.OPENAI_TIMEOUT_S
        self._last_timestamp: Optional[datetime] = None

    def _next_timestamp(self) -> datetime:
        # Never go backwards, even if the wall clock does.
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    async def _run(self, prompt: ComposedPrompt) -> Dict[str, Any]:
        try:
            raw_text = await asyncio.wait_for(self.model_client.complete(prompt), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            logger.error(f"Model call exceeded {self.timeout_s}s timeout.")
            raise GenerationFailure("Model call timed out") from e
        except Exception as e:
            logger.error(f"Model call failed: {e}", exc_info=True)
            raise GenerationFailure("Model call failed") from e

        try:
            payload = parse_design_payload(raw_text)
        except (ValueError, TypeError) as e:
            logger.error(f"Model returned an unusable design payload: {e}. Raw output: {str(raw_text)[:200]}")
            raise GenerationFailure("Model output is not a valid design") from e

        if "components" in payload:
            payload["components"] = _normalize_component_ids(payload["components"])
        return payload

    def _build(self, payload: Dict[str, Any], **server_fields: Any) -> DesignSpecification:
        try:
            return DesignSpecification.model_validate(
                {
                    **payload,
                    "id": str(uuid.uuid4()),
                    "timestamp": self._next_timestamp(),
                    **server_fields,
                }
            )
        except ValidationError as e:
            logger.error(f"Model output failed design validation: {e}")
            raise GenerationFailure("Model output is not a valid design") from e

    async def generate(self, user_text: str, design_type_hint: Optional[str] = None) -> DesignSpecification:
        """
        Generate a new design from a free-text prompt.

        Args:
            user_text: The user's description, stored verbatim as the design's prompt.
            design_type_hint: Optional archetype hint ("login", "dashboard", ...).

        Returns:
            The completed DesignSpecification with fresh id and timestamp.

        Raises:
            GenerationFailure: on any model or parsing failure.
        """
        logger.info(f"Generating design (hint: {design_type_hint or 'none'}): {user_text[:80]}")
        payload = await self._run(compose_generation_prompt(design_type_hint, user_text))
        design = self._build(payload, prompt=user_text)
        logger.info(f"Generated design {design.id} of type '{design.type}' with {len(design.components)} components.")
        return design

    async def modify(
        self,
        prior_spec: DesignSpecification,
        edit_request_text: str,
        modification_label: Optional[str] = None,
    ) -> DesignSpecification:
        """Derive a new design from `prior_spec`; the prior one is left untouched."""
        logger.info(f"Modifying design {prior_spec.id}: {edit_request_text[:80]}")
        payload = await self._run(compose_modification_prompt(prior_spec, edit_request_text))
        # Keep the archetype unless the model deliberately changed it.
        payload.setdefault("type", prior_spec.type)
        design = self._build(
            payload,
            prompt=edit_request_text,
            parentId=prior_spec.id,
            modification=modification_label,
        )
        logger.info(f"Derived design {design.id} from {prior_spec.id}.")
        return design
