"""Render prompt building and the image job client."""

from .job_client import GenerationJob, ImageJobClient, JobStatus, extract_result_locator
from .prompt_builder import build_render_prompt

__all__ = ["GenerationJob", "ImageJobClient", "JobStatus", "build_render_prompt", "extract_result_locator"]
