"""System prompts and tool definitions sent to the upstream API."""

from __future__ import annotations

from typing import Any

ROUTING_PROMPT = """You are a model routing assistant. Analyze the user's message and choose the BEST single model from this list:

Available models:
- x-ai/grok-4.1-fast: Best for general stuff like questions and stuff
- google/gemini-2.5-flash-lite: Fast, efficient general purpose
- google/gemini-3-flash-preview: Fast, good vision capabilities
- anthropic/claude-4.5-sonnet: Best for coding and writing
- google/gemini-3-pro-image-preview: Best for high-quality image generation (supports 4K, aspect ratios)
- google/gemini-2.5-flash-image: Specialized for image analysis and vision tasks
- black-forest-labs/flux.2-pro: Professional image generation with excellent quality
- black-forest-labs/flux.2-flex: Flexible image generation model

Guidelines:
- For general questions, chat, and common tasks: grok-4.1-fast
- For coding, technical writing, or complex prose: claude-4.5-sonnet
- For quick queries or light tasks: gemini-2.5-flash-lite or gemini-3-flash-preview
- For image generation requests (create, generate, draw an image): google/gemini-3-pro-image-preview or google/gemini-2.5-flash-image
- For analyzing images: gemini-2.5-flash-image or gemini-3-flash-preview
- For creative storytelling: bytedance-seed/seedream-4.5 or claude-4.5-sonnet

Respond ONLY with JSON in this exact format:
{
  "model": "chosen-model-id",
  "reasoning": "brief explanation (max 100 chars)"
}"""

IMAGE_GENERATION_PROMPT = """You are an AI image generation assistant. When the user requests an image, you should generate it and include the image in your response using markdown image syntax: ![description](image_url).

Guidelines:
- Generate the image based on the user's description
- Include the generated image in your response using markdown: ![description](image_url)
- Provide a brief description of what you generated
- If the request is unclear, ask for clarification"""

SUMMARY_PROMPT = """Generate a concise, descriptive title for this conversation (max 60 characters). Focus on the main topic or question. Respond with ONLY the title text, no quotes or extra formatting.

Examples:
- "JavaScript async/await patterns"
- "Python data analysis tips"
- "Debug React rendering issue"
- "Plan marketing strategy"

Keep it short, clear, and specific."""

IMAGE_GENERATION_KEYWORDS: tuple[str, ...] = (
    "generate an image",
    "generate image",
    "generate a picture",
    "generate picture",
    "create an image",
    "create image",
    "create a picture",
    "create picture",
    "draw an image",
    "draw image",
    "draw a picture",
    "draw picture",
    "make an image",
    "make image",
    "make a picture",
    "make picture",
    "render an image",
    "render image",
    "render a picture",
    "render picture",
    "image of",
    "picture of",
    "photo of",
    "drawing of",
    "illustration of",
    "portrait of",
    "scene of",
)
"""Lower-case phrases that mark an image-generation request."""

IMAGE_CONVERSION_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "convert_image",
        "description": (
            "Convert an image from one format to another (e.g., PNG to WebP, JPEG to PNG, "
            "WebP to AVIF). Use this when the user wants to convert an image to a different format."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "image_url": {
                    "type": "string",
                    "description": "The URL or base64 data URL of the image to convert",
                },
                "target_format": {
                    "type": "string",
                    "enum": ["png", "jpeg", "webp", "avif"],
                    "description": "The target format to convert the image to",
                },
                "quality": {
                    "type": "number",
                    "minimum": 1,
                    "maximum": 100,
                    "default": 92,
                    "description": (
                        "Quality setting for lossy formats (JPEG, WebP), 1-100. Higher is better "
                        "quality but larger file size. PNG ignores this value."
                    ),
                },
            },
            "required": ["image_url", "target_format"],
        },
    },
}

AVAILABLE_TOOLS: tuple[dict[str, Any], ...] = (IMAGE_CONVERSION_TOOL,)


__all__ = [
    "AVAILABLE_TOOLS",
    "IMAGE_CONVERSION_TOOL",
    "IMAGE_GENERATION_KEYWORDS",
    "IMAGE_GENERATION_PROMPT",
    "ROUTING_PROMPT",
    "SUMMARY_PROMPT",
]
