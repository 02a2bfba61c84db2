"""
Adapter for the external image-synthesis service.

The studio treats background and attire synthesis as an opaque
image-in/image-out call.  :class:`PortraitEditor` is the interface the
workflow depends on; :class:`GeminiPortraitEditor` implements it with the
Google Gen AI SDK.  "None" options never reach the service.
"""

import base64
import logging
from typing import Protocol

from google import genai
from google.genai import types as genai_types
from PIL import Image

from portrait_studio import config
from portrait_studio.image_io import decode_image, encode_png
from portrait_studio.models import BackgroundOption, ClothingOption

logger = logging.getLogger(__name__)


class SynthesisError(RuntimeError):
    """The synthesis service did not return a usable image."""


class PortraitEditor(Protocol):
    def apply_background(self, image: Image.Image, option: BackgroundOption) -> Image.Image: ...

    def apply_clothing(self, image: Image.Image, option: ClothingOption) -> Image.Image: ...


# =============================================================================
# Prompts
# =============================================================================
BACKGROUND_DESCRIPTIONS = {
    BackgroundOption.SOFT_BLUE: "a soft sky-blue studio backdrop with a gentle radial gradient from the centre outwards",
    BackgroundOption.SOFT_PINK: "a pale cherry-blossom pink studio backdrop with a warm, refined gradient",
    BackgroundOption.WISTERIA_PURPLE: "a light wisteria-purple studio backdrop with a calm, dignified feel",
    BackgroundOption.FRESH_GREEN: "a fresh light-green studio backdrop with a clean gradient",
    BackgroundOption.WHITE_GREY: "a very light porcelain-grey plain studio backdrop, the most standard and refined choice",
}

CLOTHING_DESCRIPTIONS = {
    ClothingOption.MENS_SUIT_BLACK: "a high-quality men's black formal mourning suit, white dress shirt and black tie",
    ClothingOption.MENS_KIMONO: "a men's formal black crested haori and hakama with a white family crest on the chest",
    ClothingOption.MENS_SUIT_NAVY: "a calm dark-navy business suit",
    ClothingOption.WOMENS_SUIT_BLACK: "a women's black formal mourning ensemble with an elegant single-strand pearl necklace",
    ClothingOption.WOMENS_KIMONO_BLACK: "a women's formal black mourning kimono with a white collar and black obi",
    ClothingOption.WOMENS_KIMONO_COLOR: "an elegant kimono in soft, pale colours (houmongi or iromuji)",
}

BACKGROUND_PROMPT = """\
[ROLE: PROFESSIONAL PHOTO RETOUCHER]
Composite a professional-quality background behind the person in this formal
portrait while keeping their identity completely unchanged.

[1. IDENTITY PRESERVATION]
- Do not change the face, expression, wrinkles or hairstyle in any way.

[2. BACKGROUND: {description}]
- Remove the existing background entirely and generate the specified one.
- Light it like a studio portrait: slightly brighter directly behind the subject.

[3. REFINEMENT]
- Keep the subject's outline sharp and blend the boundary naturally.

[OUTPUT]
- 3:4 aspect ratio, high resolution."""

CLOTHING_PROMPT = """\
[ROLE: DIGITAL TAILOR]
Keep the face in this photo exactly as it is and change only the clothing to
high-quality formal wear.

[1. IDENTITY]
- Do not change the face, expression, hairstyle or gaze by a single pixel.

[2. ATTIRE: {description}]
- Fit the garment naturally to the person's build (shoulder width, neck).
- Reproduce the texture of the fabric realistically.

[3. COMPOSITION]
- Keep the position and size of the head unchanged.

[OUTPUT]
- 3:4 aspect ratio."""


def background_prompt(option: BackgroundOption) -> str:
    return BACKGROUND_PROMPT.format(description=BACKGROUND_DESCRIPTIONS[option])


def clothing_prompt(option: ClothingOption) -> str:
    return CLOTHING_PROMPT.format(description=CLOTHING_DESCRIPTIONS[option])


# =============================================================================
# Gemini implementation
# =============================================================================
class GeminiPortraitEditor:
    """Background and attire synthesis through a Gemini image model."""

    def __init__(self, client=None, api_key: str | None = None, model: str | None = None):
        """
        Args:
            client: A ``genai.Client`` (or compatible object). Built from
                ``api_key`` / the environment when omitted.
            api_key: Gemini API key. Defaults to ``GEMINI_API_KEY``.
            model: Model name. Defaults to ``PORTRAIT_STUDIO_MODEL`` or the
                built-in default.
        """
        if client is None:
            key = api_key or config.api_key()
            if not key:
                raise SynthesisError("GEMINI_API_KEY is not set; image editing is unavailable")
            client = genai.Client(api_key=key, http_options={"timeout": config.REQUEST_TIMEOUT_MS})
        self._client = client
        self._model = model or config.model_name()

    @property
    def model(self) -> str:
        return self._model

    def apply_background(self, image: Image.Image, option: BackgroundOption) -> Image.Image:
        if option == BackgroundOption.NONE:
            return image
        logger.info("Requesting background synthesis: %s", option.value)
        return self._generate(image, background_prompt(option))

    def apply_clothing(self, image: Image.Image, option: ClothingOption) -> Image.Image:
        if option == ClothingOption.NONE:
            return image
        logger.info("Requesting clothing synthesis: %s", option.value)
        return self._generate(image, clothing_prompt(option))

    def _generate(self, image: Image.Image, prompt: str) -> Image.Image:
        parts = [
            genai_types.Part.from_text(text=prompt),
            genai_types.Part.from_bytes(data=encode_png(image), mime_type="image/png"),
        ]
        response = self._client.models.generate_content(
            model=self._model,
            contents=parts,
            config=genai_types.GenerateContentConfig(
                response_modalities=["IMAGE", "TEXT"],
                image_config=genai_types.ImageConfig(aspect_ratio=config.OUTPUT_ASPECT_RATIO),
            ),
        )
        return _first_image(response)


def _first_image(response) -> Image.Image:
    """Return the first inline image of a generate_content response."""
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline and inline.data:
                data = inline.data
                if isinstance(data, str):
                    data = base64.b64decode(data)
                return decode_image(data)
    raise SynthesisError("Synthesis response contained no image")
