"""Add operation: generate a brand-new scene."""

from __future__ import annotations

import logging

from ..client import GeminiClient, build_contents
from ..duration import extract_duration_from_code
from ..models.context import WebContext
from ..models.operations import AddSceneData, AddSceneInput, AddSceneOutput
from ..prompts.code import ADD_REQUEST, CODE_GENERATOR_SYSTEM, WEB_BRAND_CONTEXT
from .base import CodeGenerationMixin, SceneOperation, resolve_code_model

logger = logging.getLogger(__name__)


def format_web_context(web: WebContext) -> str:
    meta = web.page_metadata
    return WEB_BRAND_CONTEXT.format(
        url=web.original_url,
        title=meta.title or "Not available",
        description=meta.description or "Not available",
        headings=", ".join(meta.headings[:5]) or "None",
    )


def _storyboard_summary(inp: AddSceneInput) -> str:
    if not inp.storyboard:
        return "None yet, this is the first scene."
    lines = [
        f"- Scene {i}: {s.name} ({s.duration} frames)"
        for i, s in enumerate(sorted(inp.storyboard, key=lambda s: s.order), start=1)
    ]
    previous = max(inp.storyboard, key=lambda s: s.order)
    lines.append(f"\nPrevious scene code for style reference:\n```tsx\n{previous.code}\n```")
    return "\n".join(lines)


class AddScene(CodeGenerationMixin, SceneOperation[AddSceneInput, AddSceneOutput]):
    name = "addScene"
    output_type = AddSceneOutput

    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    async def execute(self, inp: AddSceneInput) -> AddSceneOutput:
        extras: list[str] = []
        image_urls: list[str] = []
        if inp.web_context:
            extras.append(format_web_context(inp.web_context))
            image_urls.extend(inp.web_context.screenshot_urls())
        if inp.image_urls:
            extras.append(
                f"IMAGE CONTEXT: {len(inp.image_urls)} image(s) attached. "
                "Build the scene from what they show."
            )
            image_urls.extend(inp.image_urls)
        if inp.video_urls:
            extras.append(f"VIDEO CONTEXT: {len(inp.video_urls)} video(s) attached.")

        prompt = ADD_REQUEST.format(
            user_prompt=inp.user_prompt,
            scene_number=inp.scene_number,
            storyboard=_storyboard_summary(inp),
            extras="\n\n".join(extras),
        )
        model = resolve_code_model(self.client.config, inp.model_override)
        generated = await self.generate_code(
            build_contents(prompt, image_urls=image_urls, video_urls=inp.video_urls),
            model=model,
            system_instruction=CODE_GENERATOR_SYSTEM,
        )

        duration = extract_duration_from_code(generated.code)
        if duration is None and generated.new_duration_frames and generated.new_duration_frames >= 1:
            duration = generated.new_duration_frames

        name = (generated.name or "").strip() or f"Scene {inp.scene_number}"
        logger.info("Generated scene %r (%d chars, duration=%s)", name, len(generated.code), duration)
        return AddSceneOutput.ok(AddSceneData(
            name=name,
            code=generated.code,
            duration=duration,
            reasoning=generated.reasoning or f"Created scene: {inp.user_prompt}",
            model_used=model,
        ))
