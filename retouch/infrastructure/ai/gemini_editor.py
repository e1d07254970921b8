import logging
from typing import List, Optional

import google.generativeai as genai

from ...application.ports.ai_editor import AIEditResult, AIImageEditor
from ...exceptions import EditFailure

logger = logging.getLogger(__name__)

INPAINT_INSTRUCTIONS = [
    "INPAINTING MODE: You are receiving TWO images.",
    "1. FIRST IMAGE = Original photograph to edit",
    "2. SECOND IMAGE = Black & white mask (white = edit zone, black = keep)",
    "",
    "INSTRUCTION: {prompt}",
    "",
    "RULES:",
    "- Edit ONLY the white areas of the mask. Black areas must be pixel-identical to the original.",
    "- The edited content must blend with the surrounding area: match texture, grain,",
    "  color temperature and lighting so the edit is not visible.",
    "- Do not render the mask shape, borders or halos into the output.",
    "- Same resolution and dimensions as the original. Maximum quality.",
]

FULL_IMAGE_SUFFIX = [
    "",
    "Maintain the exact same image quality, sharpness, and detail level as the original image.",
    "Output the result in the same format and quality as the input image.",
]


def build_prompt(prompt: str, has_mask: bool) -> str:
    if has_mask:
        return "\n".join(INPAINT_INSTRUCTIONS).replace("{prompt}", prompt)
    return "\n".join([prompt] + FULL_IMAGE_SUFFIX)


class GeminiImageEditor(AIImageEditor):
    def __init__(self, api_key: str, default_model: str, fallback_models: Optional[List[str]] = None) -> None:
        genai.configure(api_key=api_key)
        self.default_model = default_model
        self.fallback_models = list(fallback_models or [])

    def _models_to_try(self, model: Optional[str]) -> List[str]:
        if model:
            return [model]
        # Remove duplicates while preserving order
        return list(dict.fromkeys([self.default_model] + self.fallback_models))

    def edit_image(
        self,
        prompt: str,
        image_bytes: bytes,
        mime_type: str,
        mask_png: Optional[bytes] = None,
        model: Optional[str] = None,
    ) -> AIEditResult:
        parts = [{"mime_type": mime_type, "data": image_bytes}]
        if mask_png is not None:
            parts.append({"mime_type": "image/png", "data": mask_png})
        parts.append(build_prompt(prompt, mask_png is not None))

        last_error = "no model attempted"
        for model_name in self._models_to_try(model):
            try:
                result = genai.GenerativeModel(model_name).generate_content(parts)
            except Exception as e:
                # The SDK raises a mix of google.api_core and ValueError types
                logger.warning(f"Gemini model {model_name} failed: {e}")
                last_error = str(e)
                continue
            edited = self._extract(result)
            if edited is not None:
                logger.info(f"Gemini model {model_name} returned {len(edited.image_bytes)} bytes")
                return edited
            last_error = f'Gemini model "{model_name}" did not return an image'
            logger.warning(last_error)
        raise EditFailure(f"AI edit failed: {last_error}")

    @staticmethod
    def _extract(result) -> Optional[AIEditResult]:
        image = None
        text = None
        for candidate in getattr(result, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                if inline is not None and getattr(inline, "data", None):
                    image = AIEditResult(image_bytes=inline.data, mime_type=inline.mime_type or "image/png")
                if getattr(part, "text", None):
                    text = part.text
        if image is not None:
            image.text = text
        return image
