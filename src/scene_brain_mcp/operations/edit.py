"""Edit operation: rewrite an existing scene's code."""

from __future__ import annotations

import logging

from ..client import GeminiClient, build_contents
from ..models.operations import EditSceneData, EditSceneInput, EditSceneOutput
from ..prompts.code import (
    BRAND_IMAGE_INSTRUCTIONS,
    CODE_EDITOR_SYSTEM,
    EDIT_REQUEST,
    IMAGE_INSTRUCTIONS,
    TEXT_INSTRUCTIONS,
)
from .add import format_web_context
from .base import CodeGenerationMixin, SceneOperation, resolve_code_model
from .healing import apply_rules

logger = logging.getLogger(__name__)


def build_edit_context(inp: EditSceneInput) -> str:
    """Assemble the request, error, brand, media and reference-scene sections."""
    sections = [f'USER REQUEST: "{inp.user_prompt}"']
    if inp.error_details:
        sections.append(f"ERROR TO FIX:\n{inp.error_details}")
    if inp.web_context:
        sections.append(format_web_context(inp.web_context))
    if inp.image_urls:
        sections.append(f"IMAGE CONTEXT: User provided {len(inp.image_urls)} image(s)")
    if inp.video_urls:
        listed = "\n".join(f"Video {i}: {url}" for i, url in enumerate(inp.video_urls, start=1))
        sections.append(f"VIDEO CONTEXT: User provided {len(inp.video_urls)} video(s)\n{listed}")
    if inp.reference_scenes:
        blocks = [
            f"{ref.name} (ID: {ref.id}):\n```tsx\n{ref.code}\n```"
            for ref in inp.reference_scenes
        ]
        sections.append(
            "REFERENCE SCENES FOR STYLE/COLOR MATCHING:\n\n" + "\n\n".join(blocks)
            + "\n\nApply exactly the colors, styles, animations or patterns the user "
            "asked to borrow from these scenes."
        )
    sections.append(f"CURRENT DURATION: {inp.current_duration} frames")
    return "\n\n".join(sections)


class EditScene(CodeGenerationMixin, SceneOperation[EditSceneInput, EditSceneOutput]):
    name = "editScene"
    output_type = EditSceneOutput

    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    async def execute(self, inp: EditSceneInput) -> EditSceneOutput:
        if not inp.code.strip():
            raise ValueError("No scene code provided")

        image_urls: list[str] = []
        if inp.web_context:
            image_urls.extend(inp.web_context.screenshot_urls())
        image_urls.extend(inp.image_urls)

        if inp.web_context and image_urls:
            instructions = BRAND_IMAGE_INSTRUCTIONS
        elif image_urls:
            instructions = IMAGE_INSTRUCTIONS
        else:
            instructions = TEXT_INSTRUCTIONS

        prompt = EDIT_REQUEST.format(
            context=build_edit_context(inp),
            code=inp.code,
            instructions=instructions,
        )
        model = resolve_code_model(self.client.config, inp.model_override)
        generated = await self.generate_code(
            build_contents(prompt, image_urls=image_urls, video_urls=inp.video_urls),
            model=model,
            system_instruction=CODE_EDITOR_SYSTEM,
        )

        code, fired = apply_rules(generated.code)
        duration = generated.new_duration_frames
        if duration is not None and duration < 1:
            duration = None

        logger.info(
            "Edited scene %s (%d -> %d chars, healed=%s, duration=%s)",
            inp.scene_id, len(inp.code), len(code), fired or "none", duration,
        )
        return EditSceneOutput.ok(EditSceneData(
            code=code,
            duration=duration,
            reasoning=generated.reasoning or f"Applied edit: {inp.user_prompt}",
            changes_applied=generated.changes or [f"Applied edit: {inp.user_prompt}"],
            model_used=model,
        ))
